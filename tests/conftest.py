import pytest

from attendance_engine.attendance.service import AttendanceService
from attendance_engine.selfies.service import SelfieService

from fakes import HQ, FakeUploader, InMemoryAttendance, ManualClock, at


@pytest.fixture
def clock():
    return ManualClock(at(9, 0))


@pytest.fixture
def repo():
    return InMemoryAttendance()


@pytest.fixture
def make_service(repo, clock):
    def factory(**overrides) -> AttendanceService:
        options = dict(
            offices=[HQ],
            selfies=SelfieService(FakeUploader()),
            clock=clock,
            persistence_timeout=2.0,
            tick_interval=0.01,
            location_options={"backoff": 0.0, "attempt_timeout": 1.0, "total_budget": 5.0},
        )
        options.update(overrides)
        return AttendanceService(repo, **options)

    return factory
