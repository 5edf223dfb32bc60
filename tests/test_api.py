"""End-to-end tests for the user management HTTP API."""

from __future__ import annotations

import sqlite3
import tempfile
import unittest
from pathlib import Path
from typing import List

from fastapi.testclient import TestClient

from audit_management.api import create_app
from audit_management.config import Settings
from audit_management.database import Database
from audit_management.models import User


class _UnavailableStore(Database):
    def find_all(self, conn: sqlite3.Connection) -> List[User]:
        raise sqlite3.OperationalError("database is locked")

    def find_by_role(self, conn: sqlite3.Connection, role: str) -> List[User]:
        raise RuntimeError("unexpected failure")


class UserApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tempdir = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tempdir.name) / "audit.sqlite3"
        self.settings = Settings(database_path=self.db_path)
        self.database = Database(self.db_path)
        self.database.initialize()
        self.app = create_app(database=self.database, settings=self.settings)
        self.client = TestClient(self.app)

    def tearDown(self) -> None:
        self.client.close()
        self._tempdir.cleanup()

    def _create(self, username: str, email: str, role: str = "AUDITOR") -> dict:
        response = self.client.post(
            "/api/users",
            json={"username": username, "email": email, "role": role},
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def test_full_crud_scenario(self) -> None:
        created = self._create("integration.test", "integration@test.com", "AUDITOR")
        self.assertIn("id", created)
        self.assertIn("createdAt", created)
        self.assertNotIn("created_at", created)
        self.assertEqual(created["username"], "integration.test")
        user_id = created["id"]

        fetched = self.client.get(f"/api/users/{user_id}")
        self.assertEqual(fetched.status_code, 200, fetched.text)
        self.assertEqual(fetched.json(), created)

        listing = self.client.get("/api/users")
        self.assertEqual(listing.status_code, 200)
        self.assertEqual(len(listing.json()), 1)

        updated = self.client.put(
            f"/api/users/{user_id}",
            json={"username": "integration.updated", "email": "updated@test.com", "role": "ADMIN"},
        )
        self.assertEqual(updated.status_code, 200, updated.text)
        payload = updated.json()
        self.assertEqual(payload["username"], "integration.updated")
        self.assertEqual(payload["role"], "ADMIN")
        self.assertEqual(payload["createdAt"], created["createdAt"])

        deleted = self.client.delete(f"/api/users/{user_id}")
        self.assertEqual(deleted.status_code, 204)
        self.assertEqual(deleted.content, b"")

        missing = self.client.get(f"/api/users/{user_id}")
        self.assertEqual(missing.status_code, 404)

    def test_empty_listing_returns_empty_array(self) -> None:
        response = self.client.get("/api/users")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), [])

    def test_read_only_fields_in_request_are_ignored(self) -> None:
        response = self.client.post(
            "/api/users",
            json={
                "id": 500,
                "username": "john.doe",
                "email": "john.doe@example.com",
                "role": "AUDITOR",
                "createdAt": "2000-01-01T00:00:00",
            },
        )
        self.assertEqual(response.status_code, 201, response.text)
        body = response.json()
        self.assertNotEqual(body["id"], 500)
        self.assertFalse(body["createdAt"].startswith("2000"))

    def test_not_found_error_body(self) -> None:
        response = self.client.get("/api/users/99")
        self.assertEqual(response.status_code, 404)
        body = response.json()
        self.assertEqual(body["status"], 404)
        self.assertEqual(body["error"], "Resource not found")
        self.assertEqual(body["message"], "User not found with id: '99'")
        self.assertEqual(body["path"], "/api/users/99")
        self.assertIn("timestamp", body)
        self.assertNotIn("validationErrors", body)

    def test_out_of_range_id_returns_404(self) -> None:
        user_id = 2**63

        fetched = self.client.get(f"/api/users/{user_id}")
        self.assertEqual(fetched.status_code, 404, fetched.text)
        self.assertEqual(fetched.json()["error"], "Resource not found")

        updated = self.client.put(
            f"/api/users/{user_id}",
            json={"username": "john.doe", "email": "john.doe@example.com", "role": "ADMIN"},
        )
        self.assertEqual(updated.status_code, 404, updated.text)

        deleted = self.client.delete(f"/api/users/{user_id}")
        self.assertEqual(deleted.status_code, 404, deleted.text)

    def test_unsupported_method_uses_error_body(self) -> None:
        response = self.client.patch("/api/users/1", json={"role": "ADMIN"})
        self.assertEqual(response.status_code, 405)
        body = response.json()
        self.assertNotIn("detail", body)
        self.assertEqual(body["status"], 405)
        self.assertEqual(body["error"], "Method Not Allowed")
        self.assertEqual(body["path"], "/api/users/1")
        self.assertIn("timestamp", body)
        self.assertIn("allow", response.headers)

    def test_unknown_route_uses_error_body(self) -> None:
        response = self.client.get("/api/unknown")
        self.assertEqual(response.status_code, 404)
        body = response.json()
        self.assertNotIn("detail", body)
        self.assertEqual(body["status"], 404)
        self.assertEqual(body["path"], "/api/unknown")

    def test_update_and_delete_of_missing_user_return_404(self) -> None:
        update = self.client.put(
            "/api/users/99",
            json={"username": "john.doe", "email": "john.doe@example.com", "role": "ADMIN"},
        )
        self.assertEqual(update.status_code, 404)

        delete = self.client.delete("/api/users/99")
        self.assertEqual(delete.status_code, 404)

    def test_duplicate_username_returns_409(self) -> None:
        self._create("duplicate.user", "first@test.com")

        response = self.client.post(
            "/api/users",
            json={"username": "duplicate.user", "email": "second@test.com", "role": "USER"},
        )
        self.assertEqual(response.status_code, 409)
        body = response.json()
        self.assertEqual(body["error"], "Data conflict")
        self.assertIn("username", body["message"])

    def test_duplicate_email_returns_409(self) -> None:
        self._create("first.user", "same@test.com")

        response = self.client.post(
            "/api/users",
            json={"username": "second.user", "email": "same@test.com", "role": "USER"},
        )
        self.assertEqual(response.status_code, 409)
        self.assertIn("email", response.json()["message"])

    def test_update_to_other_users_email_returns_409(self) -> None:
        self._create("john.doe", "john.doe@example.com")
        jane = self._create("jane.doe", "jane.doe@example.com")

        response = self.client.put(
            f"/api/users/{jane['id']}",
            json={"username": "jane.doe", "email": "john.doe@example.com", "role": "AUDITOR"},
        )
        self.assertEqual(response.status_code, 409)

    def test_validation_errors_are_reported_per_field(self) -> None:
        response = self.client.post(
            "/api/users",
            json={"username": "", "email": "invalid-email", "role": "AUDITOR"},
        )
        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body["status"], 400)
        self.assertEqual(body["error"], "Validation error")
        self.assertIn("username", body["validationErrors"])
        self.assertIn("email", body["validationErrors"])
        self.assertNotIn("role", body["validationErrors"])

    def test_field_length_limits(self) -> None:
        too_short = self.client.post(
            "/api/users",
            json={"username": "ab", "email": "ab@example.com", "role": "AUDITOR"},
        )
        self.assertEqual(too_short.status_code, 400)
        self.assertIn("username", too_short.json()["validationErrors"])

        long_role = self.client.post(
            "/api/users",
            json={"username": "john.doe", "email": "john.doe@example.com", "role": "R" * 31},
        )
        self.assertEqual(long_role.status_code, 400)
        self.assertIn("role", long_role.json()["validationErrors"])

        blank_role = self.client.post(
            "/api/users",
            json={"username": "john.doe", "email": "john.doe@example.com", "role": "   "},
        )
        self.assertEqual(blank_role.status_code, 400)
        self.assertIn("role", blank_role.json()["validationErrors"])

    def test_missing_fields_are_rejected(self) -> None:
        response = self.client.post("/api/users", json={"username": "john.doe"})
        self.assertEqual(response.status_code, 400)
        errors = response.json()["validationErrors"]
        self.assertIn("email", errors)
        self.assertIn("role", errors)

    def test_non_integer_id_is_a_validation_error(self) -> None:
        response = self.client.get("/api/users/abc")
        self.assertEqual(response.status_code, 400)
        self.assertIn("user_id", response.json()["validationErrors"])

    def test_search_by_username(self) -> None:
        self._create("john.doe", "john.doe@example.com")
        self._create("john.smith", "john.smith@example.com")
        self._create("jane.doe", "jane.doe@example.com")

        response = self.client.get("/api/users/search", params={"username": "JOHN"})
        self.assertEqual(response.status_code, 200)
        usernames = {user["username"] for user in response.json()}
        self.assertEqual(usernames, {"john.doe", "john.smith"})

    def test_search_requires_username_parameter(self) -> None:
        response = self.client.get("/api/users/search")
        self.assertEqual(response.status_code, 400)
        self.assertIn("username", response.json()["validationErrors"])

    def test_filter_by_role(self) -> None:
        self._create("auditor1", "auditor1@test.com", "AUDITOR")
        self._create("auditor2", "auditor2@test.com", "AUDITOR")
        self._create("admin1", "admin1@test.com", "ADMIN")

        response = self.client.get("/api/users/role/AUDITOR")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(len(payload), 2)
        self.assertTrue(all(user["role"] == "AUDITOR" for user in payload))

    def test_cors_preflight_from_allowed_origin(self) -> None:
        response = self.client.options(
            "/api/users",
            headers={
                "Origin": "http://localhost:4200",
                "Access-Control-Request-Method": "POST",
            },
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["access-control-allow-origin"], "http://localhost:4200")
        self.assertEqual(response.headers["access-control-allow-credentials"], "true")
        self.assertEqual(response.headers["access-control-max-age"], "3600")

    def test_cors_rejects_unknown_origin(self) -> None:
        response = self.client.options(
            "/api/users",
            headers={
                "Origin": "http://evil.example",
                "Access-Control-Request-Method": "POST",
            },
        )
        self.assertEqual(response.status_code, 400)
        self.assertNotIn("access-control-allow-origin", response.headers)

    def test_openapi_metadata(self) -> None:
        response = self.client.get("/api-docs")
        self.assertEqual(response.status_code, 200)
        info = response.json()["info"]
        self.assertEqual(info["title"], "Audit Management API")
        self.assertEqual(info["version"], "1.0.0")
        self.assertEqual(info["license"]["name"], "MIT License")

        docs = self.client.get("/swagger-ui")
        self.assertEqual(docs.status_code, 200)

    def test_healthcheck(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})


class UserApiFailureTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tempdir = tempfile.TemporaryDirectory()
        db_path = Path(self._tempdir.name) / "audit.sqlite3"
        store = _UnavailableStore(db_path)
        app = create_app(
            database=store,
            settings=Settings(database_path=db_path),
            initialize_database=True,
        )
        self.client = TestClient(app, raise_server_exceptions=False)

    def tearDown(self) -> None:
        self.client.close()
        self._tempdir.cleanup()

    def test_storage_failure_returns_opaque_500(self) -> None:
        response = self.client.get("/api/users")
        self.assertEqual(response.status_code, 500)
        body = response.json()
        self.assertEqual(body["error"], "Internal server error")
        self.assertEqual(body["message"], "An unexpected error occurred")
        self.assertNotIn("locked", response.text)

    def test_unexpected_failure_returns_opaque_500(self) -> None:
        response = self.client.get("/api/users/role/ADMIN")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["status"], 500)
        self.assertNotIn("unexpected failure", response.text)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
