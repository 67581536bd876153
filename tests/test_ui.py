import requests

from playwell import ui


class FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload
        self.text = str(payload)

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return self._payload


def test_timer_action_posts_to_the_matching_endpoint(monkeypatch):
    calls = []

    def fake_post(url, timeout):
        calls.append(url)
        return FakeResponse(200, {"state": "PAUSED", "duration_seconds": 3725, "session_count": 2})

    monkeypatch.setattr(ui.requests, "post", fake_post)

    status, data = ui.timer_action(5, "Pause")

    assert calls == [f"{ui.config.API_URL}/playthroughs/5/pause"]
    assert "State: PAUSED" in status
    assert "Played: 01:02:05" in status
    assert data["session_count"] == 2


def test_timer_action_surfaces_api_errors(monkeypatch):
    monkeypatch.setattr(
        ui.requests,
        "post",
        lambda url, timeout: FakeResponse(409, {"detail": "Playthrough is not active"}),
    )

    status, data = ui.timer_action(5, "Pause")

    assert status == "⚠️ Playthrough is not active"
    assert data is None


def test_timer_action_handles_connection_failure(monkeypatch):
    def refuse(url, timeout):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(ui.requests, "post", refuse)

    status, data = ui.timer_action(5, "Start / Resume")
    assert status.startswith("⚠️ Could not reach the API")
    assert data is None


def test_timer_action_requires_id():
    assert ui.timer_action(None, "Pause") == ("Enter a playthrough id first.", None)


def test_load_metrics_formats_summary(monkeypatch):
    payload = {"health_score": 48, "total_hours": 2.0, "session_count": 1, "late_night_minutes": 120}
    monkeypatch.setattr(ui.requests, "get", lambda url, timeout: FakeResponse(200, payload))

    summary, data = ui.load_metrics(3, "2025-01-01")

    assert summary.startswith("Health score 48/100 on 2025-01-01")
    assert "120 late-night minute(s)" in summary
    assert data == payload


def test_load_metrics_without_sessions(monkeypatch):
    monkeypatch.setattr(ui.requests, "get", lambda url, timeout: FakeResponse(404, {"detail": "none"}))

    summary, data = ui.load_metrics(3, "2025-01-01")

    assert summary == "No sessions recorded on 2025-01-01."
    assert data is None


def test_submit_mood(monkeypatch):
    sent = {}

    def fake_post(url, json, timeout):
        sent.update(url=url, json=json)
        return FakeResponse(201, {"id": 1})

    monkeypatch.setattr(ui.requests, "post", fake_post)

    assert ui.submit_mood(3, 4.0, "") == "Mood 4 saved."
    assert sent["url"].endswith("/users/3/moods")
    assert sent["json"] == {"mood_rating": 4, "note": None}


def test_build_demo():
    assert ui.build_demo() is not None
