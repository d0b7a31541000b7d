import unittest

from fastapi.testclient import TestClient

from api.main import app
from auth.dependencies import get_auth_service, get_rate_limiter
from auth.stores.memory_store import MemoryRateLimiter
from tests.helpers import ServiceHarness

PREFIX = "/api/v1/auth"


class TestAuthApi(unittest.TestCase):
    def setUp(self):
        self.harness = ServiceHarness()
        limiter = MemoryRateLimiter()
        app.dependency_overrides[get_auth_service] = lambda: self.harness.service
        app.dependency_overrides[get_rate_limiter] = lambda: limiter
        self.client = TestClient(app)
        self.client.__enter__()
        token = self.client.get(f"{PREFIX}/csrf").json()["data"]["csrf_token"]
        self.client.headers["X-CSRF-Token"] = token

    def tearDown(self):
        self.client.__exit__(None, None, None)
        app.dependency_overrides.clear()

    def _register(self, email="api@example.com") -> dict:
        response = self.client.post(
            f"{PREFIX}/register",
            json={"email": email, "password": "s3cret-pass", "first_name": "Api"},
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["data"]

    def test_register_sets_cookies_and_hides_hash(self):
        data = self._register()

        self.assertNotIn("hashed_password", data["user"])
        self.assertEqual(data["user"]["email"], "api@example.com")
        self.assertEqual(data["token_type"], "Bearer")
        self.assertIn("refresh_token", self.client.cookies)

    def test_register_duplicate_returns_conflict(self):
        self._register()

        response = self.client.post(
            f"{PREFIX}/register", json={"email": "api@example.com", "password": "s3cret-pass"}
        )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json(), {"success": False, "message": "User already exists", "data": None})

    def test_validation_errors_are_reported_per_field(self):
        response = self.client.post(f"{PREFIX}/register", json={"email": "nope", "password": "short"})

        self.assertEqual(response.status_code, 422)
        fields = {item["field"] for item in response.json()["data"]["validation_errors"]}
        self.assertEqual(fields, {"email", "password"})

    def test_refresh_reuse_revokes_session(self):
        first = self._register()["refresh_token"]

        rotated = self.client.post(f"{PREFIX}/refresh", json={"refresh_token": first})
        self.assertEqual(rotated.status_code, 200)
        second = rotated.json()["data"]["refresh_token"]
        self.assertNotEqual(first, second)

        reused = self.client.post(f"{PREFIX}/refresh", json={"refresh_token": first})
        self.assertEqual(reused.status_code, 401)
        self.assertEqual(reused.json()["message"], "Invalid refresh token")

        locked_out = self.client.post(f"{PREFIX}/refresh", json={"refresh_token": second})
        self.assertEqual(locked_out.status_code, 401)

    def test_refresh_uses_cookie_when_body_is_empty(self):
        self._register()

        response = self.client.post(f"{PREFIX}/refresh")

        self.assertEqual(response.status_code, 200, response.text)

    def test_logout_then_refresh_fails(self):
        token = self._register()["refresh_token"]

        response = self.client.post(f"{PREFIX}/logout", json={"refresh_token": token})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["message"], "Logout successful")

        response = self.client.post(f"{PREFIX}/refresh", json={"refresh_token": token})
        self.assertEqual(response.status_code, 401)

    def test_me_and_sessions(self):
        data = self._register()
        headers = {"Authorization": f"Bearer {data['access_token']}"}

        me = self.client.get(f"{PREFIX}/me", headers=headers)
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["data"]["user"]["id"], data["user"]["id"])

        sessions = self.client.get(f"{PREFIX}/sessions", headers=headers)
        self.assertEqual(sessions.status_code, 200)
        payload = sessions.json()["data"]
        self.assertEqual(payload["total"], 1)
        self.assertEqual(payload["items"][0]["id"], data["session_id"])

        # Only admins may list another user's sessions
        other = self.client.get(f"{PREFIX}/sessions", params={"userId": "someone-else"}, headers=headers)
        self.assertEqual(other.status_code, 403)

    def test_revoke_own_session(self):
        data = self._register()
        headers = {"Authorization": f"Bearer {data['access_token']}"}

        response = self.client.post(f"{PREFIX}/sessions/{data['session_id']}/revoke", headers=headers)
        self.assertEqual(response.status_code, 200)

        missing = self.client.post(f"{PREFIX}/sessions/unknown/revoke", headers=headers)
        self.assertEqual(missing.status_code, 404)

        refresh = self.client.post(f"{PREFIX}/refresh", json={"refresh_token": data["refresh_token"]})
        self.assertEqual(refresh.status_code, 401)

    def test_me_requires_token(self):
        self.client.cookies.clear()

        response = self.client.get(f"{PREFIX}/me")

        self.assertEqual(response.status_code, 401)

    def test_state_changing_requests_need_matching_header(self):
        del self.client.headers["X-CSRF-Token"]

        missing = self.client.post(f"{PREFIX}/forgot-password", json={"email": "a@example.com"})
        self.assertEqual(missing.status_code, 403)

        mismatched = self.client.post(
            f"{PREFIX}/forgot-password",
            json={"email": "a@example.com"},
            headers={"X-CSRF-Token": "not-the-cookie"},
        )
        self.assertEqual(mismatched.status_code, 403)

    def test_header_without_cookie_is_rejected(self):
        self.client.cookies.clear()

        response = self.client.post(
            f"{PREFIX}/register", json={"email": "api@example.com", "password": "s3cret-pass"}
        )

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["message"], "Missing CSRF token")

    def test_csrf_token_allows_request(self):
        response = self.client.post(f"{PREFIX}/forgot-password", json={"email": "a@example.com"})

        self.assertEqual(response.status_code, 200)

    def test_password_reset_flow(self):
        data = self._register()
        self.client.post(f"{PREFIX}/forgot-password", json={"email": "api@example.com"})
        otp = self.client.portal.call(self.harness.kv.get, "otp:api@example.com")

        verified = self.client.post(f"{PREFIX}/verify-otp", json={"email": "api@example.com", "otp": otp})
        self.assertTrue(verified.json()["data"]["valid"])

        reset = self.client.post(
            f"{PREFIX}/reset-password",
            json={"email": "api@example.com", "otp": otp, "new_password": "brand-new-pass"},
        )
        self.assertEqual(reset.status_code, 200)

        refresh = self.client.post(f"{PREFIX}/refresh", json={"refresh_token": data["refresh_token"]})
        self.assertEqual(refresh.status_code, 401)

        login = self.client.post(
            f"{PREFIX}/login", json={"email": "api@example.com", "password": "brand-new-pass"}
        )
        self.assertEqual(login.status_code, 200)


if __name__ == "__main__":
    unittest.main()
