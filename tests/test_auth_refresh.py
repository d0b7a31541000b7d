import asyncio
import unittest
from datetime import timedelta

from auth.exceptions import UnauthorizedError
from auth.services.auth_service import wait_for_background_tasks
from tests.helpers import FakeClock, ServiceHarness


class TestRefreshRotation(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.harness = ServiceHarness()
        self.service = self.harness.service
        await self.harness.add_user()

    async def asyncTearDown(self):
        await wait_for_background_tasks()

    async def test_refresh_rotates_current_token_id(self):
        token = await self.harness.seed_session("session-1", "token-1")

        tokens = await self.service.refresh(token)

        claims = self.harness.claims(tokens["refresh_token"])
        self.assertEqual(claims["sid"], "session-1")
        self.assertEqual(claims["family"], "family-1")
        self.assertNotEqual(claims["jti"], "token-1")
        self.assertEqual(await self.harness.sessions.get_current_token_id("session-1"), claims["jti"])
        self.assertEqual(tokens["session_id"], "session-1")
        self.assertEqual(tokens["token_type"], "Bearer")

    async def test_access_token_carries_session(self):
        token = await self.harness.seed_session("session-1", "token-1")

        tokens = await self.service.refresh(token)

        claims = self.harness.claims(tokens["access_token"])
        self.assertEqual(claims["type"], "access")
        self.assertEqual(claims["sub"], "user-1")
        self.assertEqual(claims["sid"], "session-1")

    async def test_reused_token_revokes_session(self):
        first = await self.harness.seed_session("session-1", "token-1")
        second = (await self.service.refresh(first))["refresh_token"]

        with self.assertRaises(UnauthorizedError) as ctx:
            await self.service.refresh(first)
        self.assertEqual(ctx.exception.message, "Invalid refresh token")
        self.assertEqual(ctx.exception.status_code, 401)
        self.assertTrue(await self.harness.sessions.is_revoked("session-1"))
        self.assertIsNone(await self.harness.sessions.get_current_token_id("session-1"))

        # The legitimate holder is locked out too
        with self.assertRaises(UnauthorizedError):
            await self.service.refresh(second)

    async def test_reuse_is_audited(self):
        first = await self.harness.seed_session("session-1", "token-1")
        await self.service.refresh(first)

        with self.assertRaises(UnauthorizedError):
            await self.service.refresh(first)

        await wait_for_background_tasks()
        self.harness.audit.record_token_reuse_attempt.assert_awaited_once_with(
            user_id="user-1", session_id="session-1", token_id="token-1"
        )
        failures = [
            call.kwargs["failure_reason"]
            for call in self.harness.audit.log_refresh_token.await_args_list
            if not call.kwargs["success"]
        ]
        self.assertEqual(failures, ["Refresh token reuse detected"])

    async def test_token_for_unknown_session_is_rejected(self):
        token = self.harness.refresh_token("missing-session", "token-1")

        with self.assertRaises(UnauthorizedError):
            await self.service.refresh(token)
        self.assertTrue(await self.harness.sessions.is_revoked("missing-session"))

    async def test_revoked_session_fails_with_reason(self):
        token = await self.harness.seed_session("session-1", "token-1")
        await self.harness.sessions.revoke("session-1", 60)

        with self.assertRaises(UnauthorizedError):
            await self.service.refresh(token)

        await wait_for_background_tasks()
        kwargs = self.harness.audit.log_refresh_token.await_args.kwargs
        self.assertEqual(kwargs["failure_reason"], "Session has been revoked")
        self.harness.audit.record_token_reuse_attempt.assert_not_awaited()

    async def test_logout_then_refresh_fails(self):
        token = await self.harness.seed_session("session-1", "token-1")

        result = await self.service.logout(token)

        self.assertEqual(result, {"message": "Logout successful"})
        self.assertTrue(await self.harness.sessions.is_revoked("session-1"))
        with self.assertRaises(UnauthorizedError):
            await self.service.refresh(token)
        await wait_for_background_tasks()
        self.harness.audit.log_logout.assert_awaited_once()

    async def test_sessions_are_independent(self):
        first = await self.harness.seed_session("session-1", "token-1")
        other = await self.harness.seed_session("session-2", "token-a", family="family-2")
        await self.service.refresh(first)

        with self.assertRaises(UnauthorizedError):
            await self.service.refresh(first)

        tokens = await self.service.refresh(other)
        self.assertEqual(tokens["session_id"], "session-2")
        self.assertFalse(await self.harness.sessions.is_revoked("session-2"))

    async def test_concurrent_refresh_has_one_winner(self):
        token = await self.harness.seed_session("session-1", "token-1")

        results = await asyncio.gather(
            self.service.refresh(token),
            self.service.refresh(token),
            return_exceptions=True,
        )

        successes = [result for result in results if isinstance(result, dict)]
        failures = [result for result in results if isinstance(result, UnauthorizedError)]
        self.assertEqual(len(successes), 1)
        self.assertEqual(len(failures), 1)
        self.assertTrue(await self.harness.sessions.is_revoked("session-1"))

    async def test_inactive_user_cannot_refresh(self):
        token = await self.harness.seed_session("session-1", "token-1")
        await self.harness.users.update_user("user-1", {"is_active": False})

        with self.assertRaises(UnauthorizedError):
            await self.service.refresh(token)
        self.assertTrue(await self.harness.sessions.is_revoked("session-1"))

    async def test_rejects_malformed_tokens(self):
        access = self.harness.codec.sign({"sub": "user-1", "sid": "session-1", "type": "access"})
        missing_sid = self.harness.codec.sign({"sub": "user-1", "jti": "token-1", "type": "refresh"})

        for token in (None, "", "not-a-jwt", access, missing_sid):
            with self.subTest(token=token):
                with self.assertRaises(UnauthorizedError) as ctx:
                    await self.service.refresh(token)
                self.assertEqual(ctx.exception.message, "Invalid refresh token")

    async def test_audit_failure_does_not_block_refresh(self):
        token = await self.harness.seed_session("session-1", "token-1")
        self.harness.audit.log_refresh_token.side_effect = RuntimeError("audit store down")

        tokens = await self.service.refresh(token)
        with self.assertLogs("auth.services.auth_service", level="ERROR"):
            await wait_for_background_tasks()

        self.assertIn("refresh_token", tokens)

    async def test_slow_audit_sink_does_not_delay_refresh(self):
        token = await self.harness.seed_session("session-1", "token-1")
        released = asyncio.Event()

        async def stall(**fields):
            await released.wait()

        self.harness.audit.log_refresh_token.side_effect = stall

        tokens = await asyncio.wait_for(self.service.refresh(token), timeout=1)

        self.assertEqual(tokens["session_id"], "session-1")
        released.set()
        await wait_for_background_tasks()
        self.harness.audit.log_refresh_token.assert_awaited_once()


class TestLongLivedSessions(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.clock = FakeClock()
        self.harness = ServiceHarness(clock=self.clock)
        self.service = self.harness.service
        registered = await self.service.register("long@example.com", "s3cret-pass")
        self.user_id = registered["user"]["id"]
        self.tokens = registered["tokens"]

    async def asyncTearDown(self):
        await wait_for_background_tasks()

    async def _refresh_then_outlive_login(self) -> dict:
        # Refresh on day 6, then move past the 7-day lifetime granted at login
        self.clock.advance(timedelta(days=6).total_seconds())
        rotated = await self.service.refresh(self.tokens["refresh_token"])
        self.clock.advance(timedelta(days=2).total_seconds())
        return rotated

    async def test_refreshed_session_stays_listed(self):
        rotated = await self._refresh_then_outlive_login()

        listing = await self.service.list_sessions_for_user(self.user_id)

        self.assertEqual(listing["total"], 1)
        item = listing["items"][0]
        self.assertEqual(item["id"], rotated["session_id"])
        self.assertTrue(item["active"])

    async def test_revoke_all_reaches_refreshed_session(self):
        rotated = await self._refresh_then_outlive_login()

        revoked = await self.service.revoke_all_sessions_except(self.user_id)

        self.assertEqual(revoked, 1)
        with self.assertRaises(UnauthorizedError):
            await self.service.refresh(rotated["refresh_token"])

    async def test_password_reset_ends_refreshed_session(self):
        rotated = await self._refresh_then_outlive_login()
        await self.service.forgot_password("long@example.com")
        otp = await self.harness.kv.get("otp:long@example.com")

        await self.service.reset_password("long@example.com", otp, "brand-new-pass")

        with self.assertRaises(UnauthorizedError):
            await self.service.refresh(rotated["refresh_token"])

    async def test_logout_revocation_expires_with_token(self):
        clock = FakeClock()
        harness = ServiceHarness(clock=clock, refresh_ttl=timedelta(minutes=5))
        token = await harness.seed_session("session-1", "token-1")

        await harness.service.logout(token)

        clock.advance(200)
        self.assertTrue(await harness.sessions.is_revoked("session-1"))
        # No longer than the five minutes the token had left
        clock.advance(101)
        self.assertFalse(await harness.sessions.is_revoked("session-1"))


if __name__ == "__main__":
    unittest.main()
