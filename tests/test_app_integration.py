import unittest
from datetime import datetime, timedelta, timezone
from urllib.parse import unquote_plus

from fastapi.testclient import TestClient

from fakes import FakeSupabase, make_backend
from main import create_app
from security import _reset_rate_limits

ORIGIN = {"origin": "http://testserver"}


class AppIntegrationTests(unittest.TestCase):
    def setUp(self):
        _reset_rate_limits()
        self.fake = FakeSupabase()
        self.fake.add_user("alice@example.com", "password123")
        self.auth, self.store = make_backend(self.fake)
        self.app = create_app(self.auth, self.store)
        self.client = self.enterContext(TestClient(self.app))

    def _login(self):
        resp = self.client.post(
            "/login",
            headers=ORIGIN,
            data={"email": "alice@example.com", "password": "password123"},
            follow_redirects=False,
        )
        self.assertEqual(resp.status_code, 303)
        self.assertEqual(resp.headers["location"], "/")

    def _api_headers(self):
        csrf = self.client.cookies.get("csrf_token")
        self.assertTrue(csrf)
        return {**ORIGIN, "x-csrf-token": csrf}

    def _payload(self, **overrides):
        payload = {
            "started_at": "2024-05-01T10:00:00Z",
            "ended_at": None,
            "intensity": 6,
            "quality": "Pulsante/Martellante",
            "locations": ["Fronte", "Tempia SX"],
            "has_nausea": True,
            "triggers": ["Stress"],
            "notes": "meeting",
        }
        payload.update(overrides)
        return payload

    # -- auth gate --------------------------------------------------------

    def test_pages_redirect_to_login_when_signed_out(self):
        resp = self.client.get("/", follow_redirects=False)
        self.assertEqual(resp.status_code, 303)
        self.assertEqual(resp.headers["location"], "/login")

    def test_api_requires_auth(self):
        resp = self.client.get("/api/episodes")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json(), {"error": "unauthorized"})

    def test_public_pages_render(self):
        self.assertIn("Log In", self.client.get("/login").text)
        self.assertIn("Privacy Policy", self.client.get("/privacy").text)
        self.assertIn("Privacy Policy", self.client.get("/signup").text)

    def test_login_then_dashboard(self):
        self._login()
        resp = self.client.get("/")
        self.assertEqual(resp.status_code, 200)
        self.assertIn("How is your head?", resp.text)

    def test_login_page_redirects_when_signed_in(self):
        self._login()
        resp = self.client.get("/login", follow_redirects=False)
        self.assertEqual(resp.headers["location"], "/")

    def test_bad_password_shows_backend_message(self):
        resp = self.client.post(
            "/login",
            headers=ORIGIN,
            data={"email": "alice@example.com", "password": "not-the-one"},
            follow_redirects=False,
        )
        self.assertIn("Invalid login credentials", unquote_plus(resp.headers["location"]))

    def test_short_password_is_rejected_before_backend(self):
        resp = self.client.post(
            "/signup",
            headers=ORIGIN,
            data={"email": "bob@example.com", "password": "short", "consent": "1"},
            follow_redirects=False,
        )
        self.assertIn("at least 8 characters", unquote_plus(resp.headers["location"]))
        self.assertNotIn("bob@example.com", self.fake.users)

    def test_signup_requires_consent(self):
        resp = self.client.post(
            "/signup",
            headers=ORIGIN,
            data={"email": "bob@example.com", "password": "password123"},
            follow_redirects=False,
        )
        self.assertIn("privacy policy", unquote_plus(resp.headers["location"]))

    def test_signup_with_email_confirmation(self):
        self.fake.confirm_email = True
        resp = self.client.post(
            "/signup",
            headers=ORIGIN,
            data={"email": "bob@example.com", "password": "password123", "consent": "1"},
            follow_redirects=False,
        )
        location = unquote_plus(resp.headers["location"])
        self.assertTrue(location.startswith("/login"))
        self.assertIn("Check your email", location)

    def test_login_is_rate_limited(self):
        for _ in range(10):
            self.client.post(
                "/login",
                headers=ORIGIN,
                data={"email": "alice@example.com", "password": "wrong-pass"},
                follow_redirects=False,
            )
        resp = self.client.post(
            "/login",
            headers=ORIGIN,
            data={"email": "alice@example.com", "password": "password123"},
            follow_redirects=False,
        )
        self.assertIn("Too many attempts", unquote_plus(resp.headers["location"]))

    def test_cross_origin_post_is_refused(self):
        resp = self.client.post(
            "/login",
            headers={"origin": "http://evil.example"},
            data={"email": "alice@example.com", "password": "password123"},
            follow_redirects=False,
        )
        self.assertEqual(resp.status_code, 303)
        self.assertIn("Forbidden", resp.headers["location"])
        self.assertFalse(self.app.state.gate.is_authenticated)

    def test_logout(self):
        self._login()
        resp = self.client.post("/logout", headers=ORIGIN, follow_redirects=False)
        self.assertEqual(resp.headers["location"], "/login")
        self.assertEqual(self.client.get("/api/episodes").status_code, 401)

    # -- JSON API ---------------------------------------------------------

    def test_api_post_requires_csrf_header(self):
        self._login()
        without = self.client.post("/api/episodes", headers=ORIGIN, json=self._payload())
        self.assertEqual(without.status_code, 403)
        self.assertEqual(without.json(), {"error": "forbidden"})

        with_csrf = self.client.post("/api/episodes", headers=self._api_headers(), json=self._payload())
        self.assertEqual(with_csrf.status_code, 200)
        self.assertTrue(with_csrf.json()["ok"])
        self.assertEqual(len(self.fake.rows), 1)

    def test_open_episode_round_trip(self):
        self._login()
        created = self.client.post("/api/episodes", headers=self._api_headers(), json=self._payload())
        episode_id = created.json()["episode"]["id"]

        current = self.client.get("/api/episodes/open").json()["episode"]
        self.assertEqual(current["id"], episode_id)
        self.assertEqual(current["locations"], ["Fronte", "Tempia SX"])

        ended = self.client.post(
            f"/api/episodes/{episode_id}/edit",
            headers=self._api_headers(),
            json=self._payload(ended_at="2024-05-01T12:30:00Z"),
        )
        self.assertTrue(ended.json()["ok"])
        self.assertIsNone(self.client.get("/api/episodes/open").json()["episode"])

        episodes = self.client.get("/api/episodes").json()["episodes"]
        self.assertEqual(episodes[0]["ended_at"], "2024-05-01T12:30:00Z")

    def test_api_delete(self):
        self._login()
        created = self.client.post("/api/episodes", headers=self._api_headers(), json=self._payload())
        episode_id = created.json()["episode"]["id"]
        resp = self.client.post(f"/api/episodes/{episode_id}/delete", headers=self._api_headers())
        self.assertEqual(resp.json(), {"ok": True})
        self.assertEqual(self.fake.rows, [])

    def test_api_validation(self):
        self._login()
        future = (datetime.now(timezone.utc) + timedelta(days=1)).isoformat()
        cases = [
            (self._payload(intensity=11), "Intensity must be between 1 and 10"),
            (self._payload(intensity=0), "Intensity must be between 1 and 10"),
            (self._payload(started_at="whenever"), "Invalid start date"),
            (self._payload(started_at=future), "Start cannot be in the future"),
            (self._payload(ended_at="2024-05-01T09:00:00Z"), "End must be after start"),
        ]
        for payload, message in cases:
            resp = self.client.post("/api/episodes", headers=self._api_headers(), json=payload)
            self.assertEqual(resp.status_code, 400, message)
            self.assertEqual(resp.json(), {"ok": False, "error": message})
        self.assertEqual(self.fake.rows, [])

    def test_api_rejects_wrongly_typed_fields(self):
        self._login()
        cases = [
            (self._payload(notes=42), "Invalid value for notes"),
            (self._payload(medication=["ibuprofen"]), "Invalid value for medication"),
            (self._payload(has_aura="false"), "Invalid value for has_aura"),
            (self._payload(has_nausea=1), "Invalid value for has_nausea"),
            (self._payload(triggers="Stress"), "Invalid value for triggers"),
            (self._payload(locations=["Fronte", 3]), "Invalid value for locations"),
        ]
        for payload, message in cases:
            resp = self.client.post("/api/episodes", headers=self._api_headers(), json=payload)
            self.assertEqual(resp.status_code, 400, message)
            self.assertEqual(resp.json(), {"ok": False, "error": message})
        self.assertEqual(self.fake.rows, [])

    def test_stored_row_with_odd_types_still_renders(self):
        self._login()
        created = self.client.post("/api/episodes", headers=self._api_headers(), json=self._payload())
        episode_id = created.json()["episode"]["id"]
        self.fake.rows[0].update(notes=42, medication=None, has_aura="false")
        detail = self.client.get(f"/episodes/{episode_id}")
        self.assertEqual(detail.status_code, 200)
        self.assertIn("42", detail.text)
        self.assertIn("1 of 1 episodes", self.client.get("/history?q=42").text)
        self.assertFalse(self.client.get("/api/episodes").json()["episodes"][0]["has_aura"])

    def test_repeated_zones_and_triggers_count_once(self):
        self._login()
        payload = self._payload(locations=["Fronte", "Fronte", "Fronte"], triggers=["Stress", "Stress"])
        created = self.client.post("/api/episodes", headers=self._api_headers(), json=payload)
        self.assertEqual(created.json()["episode"]["triggers"], ["Stress"])
        self.client.cookies.set("tz_offset", "0")
        data = self.client.get("/api/analytics?start=2024-05-01&end=2024-05-01").json()
        self.assertEqual(data["zones"], [{"name": "Forehead", "count": 1, "color": "#6366f1"}])
        self.assertEqual(data["triggers"], [{"label": "Stress", "count": 1, "share": 1.0}])

    def test_api_analytics_at_calendar_limits(self):
        self._login()
        resp = self.client.get("/api/analytics?start=9999-12-31&end=9999-12-31")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([p["date"] for p in resp.json()["trend"]], ["9999-12-31"])
        resp = self.client.get("/api/analytics?end=0001-01-01")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["start"], "0001-01-01")
        self.assertEqual(len(resp.json()["trend"]), 1)

    def test_api_write_failure(self):
        self._login()
        self.fake.fail_writes = True
        resp = self.client.post("/api/episodes", headers=self._api_headers(), json=self._payload())
        self.assertEqual(resp.status_code, 502)
        self.assertEqual(resp.json(), {"ok": False, "error": "Could not save. Please try again."})

    def test_api_analytics_defaults_to_thirty_days(self):
        self._login()
        data = self.client.get("/api/analytics").json()
        self.assertEqual(len(data["trend"]), 30)
        self.assertEqual(data["count"], 0)

    def test_api_analytics_window(self):
        self._login()
        self.client.post("/api/episodes", headers=self._api_headers(), json=self._payload())
        self.client.cookies.set("tz_offset", "0")
        data = self.client.get("/api/analytics?start=2024-05-01&end=2024-05-03").json()
        self.assertEqual([p["intensity"] for p in data["trend"]], [6.0, 0.0, 0.0])
        self.assertEqual(data["zones"][0], {"name": "Forehead", "count": 1, "color": "#6366f1"})
        self.assertEqual(data["time_of_day"], [{"bucket": "morning", "label": "Morning", "count": 1}])
        self.assertEqual(data["triggers"], [{"label": "Stress", "count": 1, "share": 1.0}])

    # -- HTML views -------------------------------------------------------

    def test_log_form_creates_and_ends_attack(self):
        self._login()
        resp = self.client.post(
            "/log",
            headers=ORIGIN,
            data={
                "action": "save",
                "intensity": "7",
                "quality": "Trafittivo/Pugnalata",
                "locations": ["Nuca/Occipitale", "Collo"],
                "symptoms": ["has_aura", "is_light_sensitive"],
                "triggers": ["Weather"],
                "custom_triggers": "Perfume, Weather",
                "notes": "woke up with it",
                "started_at": "2024-05-01T07:30",
                "ended_at": "",
            },
            follow_redirects=False,
        )
        self.assertEqual(resp.status_code, 303)
        self.assertEqual(resp.headers["location"], "/")
        row = self.fake.rows[0]
        self.assertIsNone(row["ended_at"])
        self.assertEqual(row["locations"], ["Nuca/Occipitale", "Collo"])
        self.assertEqual(row["triggers"], ["Weather", "Perfume"])
        self.assertTrue(row["has_aura"])
        self.assertFalse(row["has_nausea"])

        dashboard = self.client.get("/")
        self.assertIn("Attack in progress", dashboard.text)
        form = self.client.get("/log")
        self.assertIn(row["id"], form.text)
        self.assertIn("woke up with it", form.text)

        self.client.post(
            "/log",
            headers=ORIGIN,
            data={
                "id": row["id"],
                "editing": "1",
                "action": "end",
                "intensity": "7",
                "quality": "Trafittivo/Pugnalata",
                "started_at": "2024-05-01T07:30",
                "ended_at": "",
            },
            follow_redirects=False,
        )
        self.assertEqual(len(self.fake.rows), 1)
        self.assertIsNotNone(self.fake.rows[0]["ended_at"])
        self.assertIn("How is your head?", self.client.get("/").text)

    def test_log_form_rejects_end_before_start(self):
        self._login()
        resp = self.client.post(
            "/log",
            headers=ORIGIN,
            data={"intensity": "5", "started_at": "2024-05-01T10:00", "ended_at": "2024-05-01T09:00"},
            follow_redirects=False,
        )
        self.assertIn("End must be after start", unquote_plus(resp.headers["location"]))
        self.assertEqual(self.fake.rows, [])

    def test_log_form_write_failure_keeps_user_on_form(self):
        self._login()
        self.fake.fail_writes = True
        resp = self.client.post(
            "/log",
            headers=ORIGIN,
            data={"intensity": "5", "started_at": "2024-05-01T10:00"},
            follow_redirects=False,
        )
        location = unquote_plus(resp.headers["location"])
        self.assertTrue(location.startswith("/log"))
        self.assertIn("Could not save. Please try again.", location)

    def test_detail_and_delete(self):
        self._login()
        created = self.client.post(
            "/api/episodes", headers=self._api_headers(),
            json=self._payload(ended_at="2024-05-01T11:45:00Z"),
        )
        episode_id = created.json()["episode"]["id"]
        detail = self.client.get(f"/episodes/{episode_id}")
        self.assertEqual(detail.status_code, 200)
        self.assertIn("1h 45m", detail.text)
        self.assertIn("Forehead", detail.text)

        resp = self.client.post(f"/episodes/{episode_id}/delete", headers=ORIGIN, follow_redirects=False)
        self.assertEqual(resp.headers["location"], "/history")
        self.assertEqual(self.fake.rows, [])

    def test_history_filters(self):
        self._login()
        headers = self._api_headers()
        self.client.post("/api/episodes", headers=headers, json=self._payload(notes="after the gym", intensity=3))
        self.client.post("/api/episodes", headers=headers,
                         json=self._payload(started_at="2024-05-02T10:00:00Z", notes="red wine", intensity=8,
                                            has_nausea=False))
        resp = self.client.get("/history?q=wine")
        self.assertIn("1 of 2 episodes", resp.text)
        resp = self.client.get("/history?min_intensity=5")
        self.assertIn("1 of 2 episodes", resp.text)
        resp = self.client.get("/history?symptom=nausea")
        self.assertIn("1 of 2 episodes", resp.text)

    def test_history_calendar(self):
        self._login()
        self.client.post("/api/episodes", headers=self._api_headers(), json=self._payload(intensity=8))
        self.client.cookies.set("tz_offset", "0")
        resp = self.client.get("/history?view=calendar&month=2024-05&day=2024-05-01")
        self.assertIn("May 2024", resp.text)
        self.assertIn('class="cal-day high selected"', resp.text)
        self.assertIn("Wednesday 01 May 2024", resp.text)

    def test_history_calendar_selects_today_by_default(self):
        self._login()
        self.client.cookies.set("tz_offset", "0")
        today = datetime.now(timezone.utc).date()
        resp = self.client.get("/history?view=calendar")
        self.assertIn(today.strftime("%B %Y"), resp.text)
        self.assertIn(f'day={today.isoformat()}" class="cal-day selected"', resp.text)
        self.assertIn("No headaches on this day.", resp.text)

    def test_history_calendar_at_calendar_limits(self):
        self._login()
        last = self.client.get("/history?view=calendar&month=9999-12")
        self.assertEqual(last.status_code, 200)
        self.assertIn("December 9999", last.text)
        self.assertIn("31</a>", last.text)
        first = self.client.get("/history?view=calendar&month=0001-01")
        self.assertEqual(first.status_code, 200)
        self.assertIn("month=0001-01", first.text)

    def test_read_failure_renders_empty(self):
        self._login()
        self.fake.fail_reads = True
        with self.assertLogs("ui", level="ERROR"):
            resp = self.client.get("/history")
        self.assertEqual(resp.status_code, 200)
        self.assertIn("No episodes yet.", resp.text)

    def test_analytics_page_and_csv(self):
        self._login()
        self.client.post("/api/episodes", headers=self._api_headers(),
                         json=self._payload(notes='said "ouch", twice'))
        page = self.client.get("/analytics")
        self.assertEqual(page.status_code, 200)
        self.assertIn("window.print()", page.text)
        self.assertIn("@media print", page.text)

        export = self.client.get("/analytics/export.csv")
        self.assertEqual(export.status_code, 200)
        self.assertTrue(export.headers["content-type"].startswith("text/csv"))
        self.assertIn("headache_export_", export.headers["content-disposition"])
        self.assertTrue(export.content.startswith("\ufeff".encode("utf-8")))
        self.assertIn('"said ""ouch"", twice"', export.content.decode("utf-8"))

    # -- error boundary ---------------------------------------------------

    def test_unexpected_errors_render_error_page(self):
        self._login()

        def broken():
            raise RuntimeError("render bug")

        self.store.list_all = broken
        client = self.enterContext(TestClient(self.app, raise_server_exceptions=False))
        with self.assertLogs("main", level="ERROR"):
            page = client.get("/history")
        self.assertEqual(page.status_code, 500)
        self.assertIn("Your data is safe.", page.text)
        api = client.get("/api/episodes")
        self.assertEqual(api.status_code, 500)
        self.assertEqual(api.json(), {"error": "internal"})


if __name__ == "__main__":
    unittest.main()
