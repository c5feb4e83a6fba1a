from datetime import datetime, timedelta

import pytest
from bson import ObjectId

import database
from services import analytics

NOW = datetime(2026, 10, 19, 12, 0)
IPHONE = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148"


def _event(mongo, owner_id, type_, when, **extra):
    mongo["analytics"].insert_one({"type": type_, "userId": owner_id, "createdAt": when, "metadata": {}, **extra})


def _session(mongo, owner_id, page_views, when=NOW - timedelta(hours=1)):
    mongo["visitorsession"].insert_one({
        "sessionId": str(ObjectId()),
        "userId": owner_id,
        "pageViews": page_views,
        "isActive": True,
        "lastActivity": when,
        "createdAt": when,
    })


@pytest.mark.parametrize("total,bounced,expected", [
    (0, 0, 0),
    (10, 3, 30),
    (8, 1, 13),
    (3, 1, 33),
    (4, 4, 100),
])
def test_bounce_rate(total, bounced, expected):
    assert analytics.bounce_rate(total, bounced) == expected


@pytest.mark.parametrize("agent,kind", [
    (IPHONE, "mobile"),
    ("Mozilla/5.0 (Linux; Android 14) Mobile", "mobile"),
    ("Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) Mobile/15E148", "tablet"),
    ("Mozilla/5.0 (Windows NT 10.0; Win64; x64)", "desktop"),
    ("", "desktop"),
])
def test_device_type(agent, kind):
    assert analytics.device_type(agent) == kind


def test_window_excludes_older_events(mongo):
    owner = ObjectId()
    for days in (1, 6, 8):
        _event(mongo, owner, "page_view", NOW - timedelta(days=days), page="/")
    _event(mongo, owner, "page_view", NOW - timedelta(days=1), page="/")
    _event(mongo, ObjectId(), "page_view", NOW - timedelta(days=1), page="/")

    result = analytics.dashboard(owner, "7d", now=NOW)
    assert result["period"] == "7d"
    assert result["summary"]["totalViews"] == 3
    assert result["charts"]["pageViews"] == [{"page": "/", "views": 3}]
    assert [row["date"] for row in result["charts"]["dailyStats"]] == ["2026-10-13", "2026-10-18"]
    assert result["charts"]["dailyStats"][1]["page_view"] == 2
    assert result["charts"]["dailyStats"][1]["project_click"] == 0

    assert analytics.dashboard(owner, "30d", now=NOW)["summary"]["totalViews"] == 4
    assert analytics.dashboard(owner, "bogus", now=NOW)["period"] == "7d"


def test_dashboard_bounce_rate_from_sessions(mongo):
    owner = ObjectId()
    for views in (1, 1, 1, 2, 3, 4, 2, 5, 2, 6):
        _session(mongo, owner, views)
    _session(mongo, owner, 1, when=NOW - timedelta(days=10))

    summary = analytics.dashboard(owner, "7d", now=NOW)["summary"]
    assert summary["uniqueVisitors"] == 10
    assert summary["bounceRate"] == 30


def test_top_projects_ranked_and_capped(mongo):
    owner = ObjectId()
    ids = []
    for i in range(6):
        ids.append(mongo["project"].insert_one({"title": f"P{i}", "userId": owner}).inserted_id)
        for _ in range(6 - i):
            _event(mongo, owner, "project_click", NOW - timedelta(hours=2), projectId=ids[-1])

    top = analytics.dashboard(owner, "24h", now=NOW)["charts"]["topProjects"]
    assert [p["title"] for p in top] == ["P0", "P1", "P2", "P3", "P4"]
    assert top[0] == {"id": str(ids[0]), "title": "P0", "clicks": 6}


def test_track_creates_and_extends_session(mongo):
    owner = ObjectId()
    info = analytics.client_info(IPHONE, "10.0.0.1", "https://ref.example")

    session_id = analytics.track_event(owner, {"type": "page_view", "page": "/"}, info, now=NOW)
    session = mongo["visitorsession"].find_one({"sessionId": session_id})
    assert session["pageViews"] == 1
    assert session["deviceInfo"]["type"] == "mobile"
    assert session["deviceInfo"]["os"] == "Mac"

    later = NOW + timedelta(minutes=5)
    analytics.track_event(owner, {"type": "page_view", "page": "/about", "session_id": session_id}, info, now=later)
    analytics.track_event(owner, {"type": "project_click", "session_id": session_id}, info, now=later)

    session = mongo["visitorsession"].find_one({"sessionId": session_id})
    assert session["pageViews"] == 2
    assert session["lastActivity"] == later
    assert mongo["analytics"].count_documents({"userId": owner}) == 3
    assert mongo["analytics"].find_one({"type": "project_click"})["metadata"]["sessionId"] == session_id


def test_track_without_session_only_records_event(mongo):
    owner = ObjectId()
    info = analytics.client_info(None, None, None)
    assert analytics.track_event(owner, {"type": "skill_view"}, info, now=NOW) is None
    assert mongo["visitorsession"].count_documents({}) == 0
    assert mongo["analytics"].count_documents({}) == 1


def test_track_reuses_client_session_id(mongo):
    owner = ObjectId()
    info = analytics.client_info(IPHONE, None, None)
    assert analytics.track_event(owner, {"type": "page_view", "session_id": "abc"}, info, now=NOW) == "abc"
    assert mongo["visitorsession"].find_one({})["sessionId"] == "abc"


def test_track_route_and_realtime(client, mongo, register):
    alice = register()
    first = client.post("/api/analytics/track", json={"type": "page_view", "page": "/", "username": "alice"},
                        headers={"User-Agent": IPHONE})
    assert first.status_code == 200
    session_id = first.json()["sessionId"]
    assert session_id

    project_id = client.post("/api/projects", headers=alice["headers"],
                             json={"title": "Demo", "description": "d"}).json()["project"]["id"]
    click = client.post("/api/analytics/track", json={
        "type": "project_click", "projectId": project_id, "sessionId": session_id,
        "clickPosition": {"x": 10, "y": 20},
    })
    assert click.json()["sessionId"] == session_id

    stored = mongo["analytics"].find_one({"type": "project_click"})
    assert stored["projectId"] == ObjectId(project_id)
    assert stored["metadata"]["clickPosition"] == {"x": 10, "y": 20}

    live = client.get("/api/analytics/realtime", headers=alice["headers"]).json()
    assert live["activeUsers"] == 1
    assert live["recentViews"] == 1
    assert {e["type"] for e in live["liveEvents"]} == {"page_view", "project_click"}
    assert "Demo" in [e["project"] for e in live["liveEvents"]]

    board = client.get("/api/analytics/dashboard", headers=alice["headers"], params={"period": "24h"}).json()
    assert board["summary"]["projectClicks"] == 1
    assert board["charts"]["topProjects"][0]["title"] == "Demo"
    assert board["charts"]["deviceStats"] == [{"device": "mobile", "count": 1}]


def test_track_rejects_unknown_event(client, register):
    register()
    assert client.post("/api/analytics/track", json={"type": "scroll"}).status_code == 400


def test_window_cutoff_is_inclusive(mongo):
    owner = ObjectId()
    cutoff = NOW - timedelta(days=7)
    _event(mongo, owner, "page_view", cutoff, page="/")
    _event(mongo, owner, "page_view", cutoff - timedelta(milliseconds=1), page="/")
    _session(mongo, owner, 1, when=cutoff)
    _session(mongo, owner, 3, when=NOW - timedelta(days=1))
    _session(mongo, owner, 1, when=cutoff - timedelta(milliseconds=1))

    summary = analytics.dashboard(owner, "7d", now=NOW)["summary"]
    assert summary["totalViews"] == 1
    assert summary["uniqueVisitors"] == 2
    assert summary["bounceRate"] == 50


def test_track_survives_concurrent_session_creation(mongo, monkeypatch):
    database.ensure_indexes()
    owner = ObjectId()
    info = analytics.client_info(IPHONE, None, None)
    analytics.track_event(owner, {"type": "page_view", "session_id": "abc"}, info, now=NOW)

    # the other request has not seen the session yet when it inserts
    monkeypatch.setattr(analytics, "_find_session", lambda owner_id, session_id: None)
    later = NOW + timedelta(minutes=1)
    assert analytics.track_event(owner, {"type": "page_view", "session_id": "abc"}, info, now=later) == "abc"

    assert mongo["visitorsession"].count_documents({}) == 1
    session = mongo["visitorsession"].find_one({})
    assert session["pageViews"] == 2
    assert session["lastActivity"] == later
    assert mongo["analytics"].count_documents({}) == 2
