"""Example: drive one attendance day through the service layer (no Flask).

The device position is passed in directly, the way the HTTP layer does it.
"""

import asyncio
import importlib

from config import get_settings_module

from attendance_engine.container import build_container
from attendance_engine.location.platform import PositionFix, ReportedPositionPlatform


async def main():
    settings = importlib.import_module(get_settings_module())
    service = build_container(settings).attendance_service
    office = settings.OFFICE_LOCATIONS[0]
    here = ReportedPositionPlatform(PositionFix(office["latitude"], office["longitude"], accuracy_m=10.0))

    async with await service.open_session("demo-user", platform=here) as session:
        if session.record is None:
            await service.clock_in(session, notes="example run")
        print(session.snapshot().as_dict())

    for day in await service.get_history("demo-user", limit=5):
        print(day.work_date, day.status.value, day.totals.as_hhmm())


if __name__ == "__main__":
    asyncio.run(main())
