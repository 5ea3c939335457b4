import tempfile
import unittest
from pathlib import Path
from time import time

from backend import SIGNED_IN, SIGNED_OUT, TOKEN_REFRESHED, AuthError, BackendAuth
from fakes import FakeSupabase, make_backend


class BackendAuthTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.session_path = Path(self.tmp.name) / "session.json"
        self.fake = FakeSupabase()
        self.fake.add_user("alice@example.com", "password123")
        self.auth, _ = make_backend(self.fake, self.session_path)
        self.events = []
        self.auth.on_auth_state_change(lambda event, session: self.events.append(event))

    def tearDown(self):
        self.tmp.cleanup()

    def _expire(self):
        self.auth._session.expires_at = int(time()) - 10

    def test_sign_in_persists_session(self):
        session = self.auth.sign_in("alice@example.com", "password123")
        self.assertEqual(session.email, "alice@example.com")
        self.assertEqual(self.events, [SIGNED_IN])
        self.assertTrue(self.session_path.exists())

        reloaded = BackendAuth(self.auth.client, self.session_path)
        self.assertEqual(reloaded.get_session().access_token, session.access_token)

    def test_bad_credentials_raise_verbatim_message(self):
        with self.assertRaises(AuthError) as ctx:
            self.auth.sign_in("alice@example.com", "wrong-password")
        self.assertEqual(ctx.exception.message, "Invalid login credentials")
        self.assertEqual(self.events, [])
        self.assertIsNone(self.auth.get_session())

    def test_sign_up_without_confirmation_signs_in(self):
        session = self.auth.sign_up("bob@example.com", "password123")
        self.assertIsNotNone(session)
        self.assertEqual(self.events, [SIGNED_IN])

    def test_sign_up_with_confirmation_returns_none(self):
        self.fake.confirm_email = True
        self.assertIsNone(self.auth.sign_up("bob@example.com", "password123"))
        self.assertEqual(self.events, [])

    def test_duplicate_sign_up(self):
        with self.assertRaises(AuthError) as ctx:
            self.auth.sign_up("alice@example.com", "password123")
        self.assertEqual(ctx.exception.message, "User already registered")

    def test_expiring_session_is_refreshed(self):
        old = self.auth.sign_in("alice@example.com", "password123")
        self._expire()
        refreshed = self.auth.get_session()
        self.assertNotEqual(refreshed.access_token, old.access_token)
        self.assertEqual(self.events, [SIGNED_IN, TOKEN_REFRESHED])

    def test_rejected_refresh_signs_out(self):
        self.auth.sign_in("alice@example.com", "password123")
        self._expire()
        self.fake.refresh_tokens.clear()
        with self.assertLogs("backend", level="WARNING"):
            self.assertIsNone(self.auth.get_session())
        self.assertEqual(self.events, [SIGNED_IN, SIGNED_OUT])
        self.assertFalse(self.session_path.exists())

    def test_offline_refresh_keeps_session(self):
        session = self.auth.sign_in("alice@example.com", "password123")
        self._expire()
        self.fake.offline = True
        with self.assertLogs("backend", level="WARNING"):
            self.assertEqual(self.auth.get_session().access_token, session.access_token)
        self.assertEqual(self.events, [SIGNED_IN])

    def test_sign_out_clears_and_notifies(self):
        session = self.auth.sign_in("alice@example.com", "password123")
        self.auth.sign_out()
        self.assertIsNone(self.auth.get_session())
        self.assertNotIn(session.access_token, self.fake.tokens)
        self.assertEqual(self.events, [SIGNED_IN, SIGNED_OUT])

    def test_unsubscribe_stops_events(self):
        seen = []
        unsubscribe = self.auth.on_auth_state_change(lambda event, session: seen.append(event))
        unsubscribe()
        self.auth.sign_in("alice@example.com", "password123")
        self.assertEqual(seen, [])

    def test_failing_listener_does_not_break_others(self):
        def boom(event, session):
            raise RuntimeError("listener bug")

        self.auth.on_auth_state_change(boom)
        with self.assertLogs("backend", level="ERROR"):
            self.auth.sign_in("alice@example.com", "password123")
        self.assertEqual(self.events, [SIGNED_IN])

    def test_unreadable_session_file_is_ignored(self):
        self.session_path.write_text("{not json", encoding="utf-8")
        with self.assertLogs("backend", level="WARNING"):
            self.assertIsNone(self.auth.get_session())


if __name__ == "__main__":
    unittest.main()
