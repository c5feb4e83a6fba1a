"""
Analytics ingestion and dashboard rollups.

Events are append-only. Every query is scoped to the portfolio owner and, for
the dashboard, windowed by a single inclusive cutoff on ``createdAt``.
"""
import logging
import re
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

import database
from schemas import EVENT_TYPES, Analytics, AnalyticsMetadata, DeviceInfo, VisitorSession

logger = logging.getLogger(__name__)

PERIODS = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
}
DEFAULT_PERIOD = "7d"

_MOBILE = re.compile(r"Mobile|Android|iPhone")
_TABLET = re.compile(r"iPad|Tablet")


def device_type(user_agent: str) -> str:
    if _TABLET.search(user_agent or ""):
        return "tablet"
    if _MOBILE.search(user_agent or ""):
        return "mobile"
    return "desktop"


def operating_system(user_agent: str) -> str:
    for marker, name in (("Windows", "Windows"), ("Mac", "Mac"), ("Linux", "Linux")):
        if marker in (user_agent or ""):
            return name
    return "Unknown"


def client_info(user_agent: Optional[str], ip_address: Optional[str], referrer: Optional[str]) -> Dict[str, Any]:
    user_agent = user_agent or ""
    return {
        "user_agent": user_agent,
        "ip_address": ip_address,
        "referrer": referrer or "",
        "device_type": device_type(user_agent),
    }


def new_session_id() -> str:
    return uuid.uuid4().hex


def _find_session(owner_id: ObjectId, session_id: Optional[str]) -> Optional[Dict[str, Any]]:
    if not session_id:
        return None
    return database.collection("visitorsession").find_one({"userId": owner_id, "sessionId": session_id})


def _touch_session(owner_id: ObjectId, session_id: str, now: datetime, is_page_view: bool) -> None:
    changes: Dict[str, Any] = {"$set": {"lastActivity": now, "isActive": True, "updatedAt": now}}
    if is_page_view:
        changes["$inc"] = {"pageViews": 1}
    database.collection("visitorsession").update_one({"userId": owner_id, "sessionId": session_id}, changes)


def track_event(owner_id: ObjectId, event: Dict[str, Any], info: Dict[str, Any], now: Optional[datetime] = None) -> Optional[str]:
    """Record one event and keep the visitor session current. Returns the session id."""
    now = now or datetime.utcnow()
    session_id = event.get("session_id")
    is_page_view = event["type"] == "page_view"

    if _find_session(owner_id, session_id):
        _touch_session(owner_id, session_id, now, is_page_view)
    elif is_page_view:
        session_id = session_id or new_session_id()
        visitor = VisitorSession(
            session_id=session_id,
            ip_address=info.get("ip_address"),
            user_agent=info["user_agent"],
            first_visit=now,
            last_activity=now,
            referrer=info["referrer"],
            device_info=DeviceInfo(
                type=info["device_type"],
                browser=(info["user_agent"].split(" ")[0] or "Unknown"),
                os=operating_system(info["user_agent"]),
                device=info["device_type"],
            ),
            user_id=owner_id,
        )
        try:
            database.create_document("visitorsession", {**visitor.model_dump(by_alias=True), "createdAt": now})
        except DuplicateKeyError:
            # a concurrent request created the same session first
            _touch_session(owner_id, session_id, now, is_page_view)

    record = Analytics(
        type=event["type"],
        page=event.get("page"),
        project_id=event.get("project_id"),
        image_id=event.get("image_id"),
        skill_id=event.get("skill_id"),
        user_id=owner_id,
        metadata=AnalyticsMetadata(
            **info,
            session_id=session_id,
            duration=event.get("duration"),
            click_position=event.get("click_position"),
        ),
    )
    database.create_document("analytics", {**record.model_dump(by_alias=True), "createdAt": now})
    return session_id


def window_start(period: Optional[str], now: Optional[datetime] = None) -> datetime:
    now = now or datetime.utcnow()
    return now - PERIODS.get(period or DEFAULT_PERIOD, PERIODS[DEFAULT_PERIOD])


def bounce_rate(total_sessions: int, bounced: int) -> int:
    """Percentage of single-page-view sessions, rounded half up."""
    if not total_sessions:
        return 0
    return int(bounced * 100 / total_sessions + 0.5)


# Individual rollup queries; each takes the owner id and the window cutoff
def _count_events(owner_id, since, event_type) -> int:
    return database.collection("analytics").count_documents(
        {"userId": owner_id, "type": event_type, "createdAt": {"$gte": since}}
    )


def _count_sessions(owner_id, since, **extra) -> int:
    return database.collection("visitorsession").count_documents(
        {"userId": owner_id, "createdAt": {"$gte": since}, **extra}
    )


def _page_views(owner_id, since) -> List[Dict[str, Any]]:
    rows = database.collection("analytics").aggregate([
        {"$match": {"userId": owner_id, "type": "page_view", "createdAt": {"$gte": since}}},
        {"$group": {"_id": "$page", "count": {"$sum": 1}}},
        {"$sort": {"count": -1}},
    ])
    return [{"page": row["_id"] or "Unknown", "views": row["count"]} for row in rows]


def _top_projects(owner_id, since, limit: int = 5) -> List[Dict[str, Any]]:
    rows = database.collection("analytics").aggregate([
        {"$match": {
            "userId": owner_id,
            "type": "project_click",
            "projectId": {"$ne": None},
            "createdAt": {"$gte": since},
        }},
        {"$group": {"_id": "$projectId", "clicks": {"$sum": 1}}},
        {"$lookup": {"from": "project", "localField": "_id", "foreignField": "_id", "as": "project"}},
        {"$unwind": "$project"},
        {"$project": {"title": "$project.title", "clicks": 1}},
        {"$sort": {"clicks": -1}},
        {"$limit": limit},
    ])
    return [{"id": str(row["_id"]), "title": row["title"], "clicks": row["clicks"]} for row in rows]


def _device_stats(owner_id, since) -> List[Dict[str, Any]]:
    rows = database.collection("analytics").aggregate([
        {"$match": {"userId": owner_id, "type": "page_view", "createdAt": {"$gte": since}}},
        {"$group": {"_id": "$metadata.deviceType", "count": {"$sum": 1}}},
        {"$sort": {"count": -1}},
    ])
    return [{"device": row["_id"] or "Unknown", "count": row["count"]} for row in rows]


def _daily_stats(owner_id, since) -> List[Dict[str, Any]]:
    rows = database.collection("analytics").aggregate([
        {"$match": {"userId": owner_id, "createdAt": {"$gte": since}}},
        {"$group": {
            "_id": {
                "year": {"$year": "$createdAt"},
                "month": {"$month": "$createdAt"},
                "day": {"$dayOfMonth": "$createdAt"},
                "type": "$type",
            },
            "count": {"$sum": 1},
        }},
    ])
    series: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        key = row["_id"]
        date = "%04d-%02d-%02d" % (key["year"], key["month"], key["day"])
        if date not in series:
            series[date] = {"date": date, **{t: 0 for t in EVENT_TYPES}}
        series[date][key["type"]] = row["count"]
    return [series[date] for date in sorted(series)]


def _recent_contacts(owner_id, since, limit: int = 10) -> List[Dict[str, Any]]:
    docs = database.get_documents(
        "contact",
        {"userId": owner_id, "createdAt": {"$gte": since}},
        limit=limit,
        sort=[("createdAt", -1)],
    )
    return [
        {"id": str(d["_id"]), "name": d.get("name"), "email": d.get("email"), "status": d.get("status"), "createdAt": d.get("createdAt")}
        for d in docs
    ]


def dashboard(owner_id: ObjectId, period: Optional[str] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
    period = period if period in PERIODS else DEFAULT_PERIOD
    since = window_start(period, now)

    queries = {
        "total_views": (_count_events, "page_view"),
        "project_clicks": (_count_events, "project_click"),
        "contact_submissions": (_count_events, "contact_form_submit"),
        "unique_visitors": (_count_sessions,),
        "page_views": (_page_views,),
        "top_projects": (_top_projects,),
        "device_stats": (_device_stats,),
        "daily_stats": (_daily_stats,),
        "recent_contacts": (_recent_contacts,),
    }
    with ThreadPoolExecutor(max_workers=len(queries) + 1) as pool:
        futures = {
            name: pool.submit(fn, owner_id, since, *args)
            for name, (fn, *args) in queries.items()
        }
        futures["bounced"] = pool.submit(_count_sessions, owner_id, since, pageViews=1)
        results = {name: future.result() for name, future in futures.items()}

    return {
        "period": period,
        "since": since,
        "summary": {
            "totalViews": results["total_views"],
            "uniqueVisitors": results["unique_visitors"],
            "projectClicks": results["project_clicks"],
            "contactSubmissions": results["contact_submissions"],
            "bounceRate": bounce_rate(results["unique_visitors"], results["bounced"]),
        },
        "charts": {
            "dailyStats": results["daily_stats"],
            "pageViews": results["page_views"],
            "deviceStats": results["device_stats"],
            "topProjects": results["top_projects"],
        },
        "recentActivity": {"contacts": results["recent_contacts"]},
    }


def realtime(owner_id: ObjectId, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.utcnow()
    last_hour = now - timedelta(hours=1)
    last_day = now - timedelta(hours=24)

    active_users = database.collection("visitorsession").count_documents(
        {"userId": owner_id, "isActive": True, "lastActivity": {"$gte": last_hour}}
    )
    recent_views = database.collection("analytics").count_documents(
        {"userId": owner_id, "type": "page_view", "createdAt": {"$gte": last_day}}
    )
    events = database.get_documents(
        "analytics",
        {"userId": owner_id, "createdAt": {"$gte": last_hour}},
        limit=20,
        sort=[("createdAt", -1)],
    )

    project_ids = list({e["projectId"] for e in events if e.get("projectId")})
    titles = {
        p["_id"]: p.get("title")
        for p in database.get_documents("project", {"_id": {"$in": project_ids}})
    } if project_ids else {}

    return {
        "activeUsers": active_users,
        "recentViews": recent_views,
        "liveEvents": [
            {
                "type": e["type"],
                "page": e.get("page"),
                "project": titles.get(e.get("projectId")),
                "device": (e.get("metadata") or {}).get("deviceType"),
                "time": e["createdAt"],
            }
            for e in events
        ],
    }
