from __future__ import annotations

import asyncio
import logging
from functools import wraps

from flask import Flask, jsonify, request, session

from ..activity.model import ActivityEvent
from ..core.constants import DEFAULT_HISTORY_LIMIT
from ..core.enums import ActivityType
from ..core.exceptions import (
    LocationError,
    PersistenceFailure,
    TransitionError,
    UploadFailure,
    ValidationError,
)
from ..container import Container
from ..location.platform import PositionFix, ReportedPositionPlatform
from .model import AttendanceRecord

logger = logging.getLogger(__name__)


def _event_json(e: ActivityEvent) -> dict:
    return {
        "id": e.event_id,
        "type": e.type.value,
        "timestamp": e.timestamp.isoformat(),
        "location": (
            {"latitude": e.location.latitude, "longitude": e.location.longitude} if e.location else None
        ),
        "notes": e.notes,
        "selfie_url": e.selfie_ref,
    }


def _record_json(r: AttendanceRecord) -> dict:
    return {
        "id": r.attendance_id,
        "date": r.work_date.isoformat(),
        "clock_in": r.clock_in.isoformat(),
        "clock_out": r.clock_out.isoformat() if r.clock_out else None,
        "status": r.status.value,
        "office": r.office_name,
        "totals": r.totals.as_hhmm(),
        "totals_seconds": r.totals.as_seconds(),
    }


def _reported_fix(data: dict) -> PositionFix | None:
    if data.get("latitude") is None or data.get("longitude") is None:
        return None
    accuracy = data.get("accuracy_m")
    return PositionFix(
        latitude=float(data["latitude"]),
        longitude=float(data["longitude"]),
        accuracy_m=float(accuracy) if accuracy is not None else None,
    )


def register(app: Flask, container: Container) -> None:
    service = container.attendance_service

    def login_required(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if "user_id" not in session:
                return jsonify({"success": False, "message": "Please sign in to continue"}), 401
            return view(*args, **kwargs)

        return wrapper

    def failure(message: str, status: int):
        return jsonify({"success": False, "message": message}), status

    @app.route("/api/attendance/today", methods=["GET"], endpoint="attendance_today")
    @login_required
    def today():
        async def load():
            async with await service.open_session(str(session["user_id"]), live=False) as s:
                return s.snapshot(), s.activities()

        try:
            snapshot, activities = asyncio.run(load())
        except PersistenceFailure as e:
            return failure(str(e), 503)
        return jsonify(
            {"success": True, "attendance": snapshot.as_dict(), "activities": [_event_json(e) for e in activities]}
        )

    @app.route("/api/attendance/history", methods=["GET"], endpoint="attendance_history")
    @login_required
    def history():
        limit = request.args.get("limit", DEFAULT_HISTORY_LIMIT, type=int)
        try:
            records = asyncio.run(service.get_history(str(session["user_id"]), limit=max(1, min(limit, 366))))
        except PersistenceFailure as e:
            return failure(str(e), 503)
        return jsonify({"success": True, "records": [_record_json(r) for r in records]})

    @app.route("/api/attendance/<activity_type>", methods=["POST"], endpoint="attendance_transition")
    @login_required
    def transition(activity_type: str):
        try:
            kind = ActivityType(activity_type)
        except ValueError:
            return failure(f"Unknown activity: {activity_type}", 404)

        data = request.get_json(silent=True) or {}

        async def run():
            platform = ReportedPositionPlatform(_reported_fix(data))
            async with await service.open_session(str(session["user_id"]), platform=platform, live=False) as s:
                return await service.apply(s, kind, selfie_ref=data.get("selfie_url"), notes=data.get("notes"))

        try:
            snapshot = asyncio.run(run())
        except TransitionError as e:
            return failure(str(e), 409)
        except LocationError as e:
            return failure(str(e), 422)
        except ValidationError as e:
            return failure(str(e), 400)
        except (PersistenceFailure, UploadFailure) as e:
            return failure(str(e), 503)
        except (TypeError, ValueError):
            return failure("Invalid location payload", 400)
        except Exception:
            logger.exception("Unexpected failure applying %s", kind.value)
            return failure("System error, please try again", 500)

        return jsonify({"success": True, "attendance": snapshot.as_dict()})
