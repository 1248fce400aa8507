import asyncio

import pytest

from attendance_engine.core.enums import Accuracy
from attendance_engine.core.exceptions import LocationUnavailable, PermissionDenied
from attendance_engine.location.acquirer import LocationAcquirer
from attendance_engine.location.platform import PositionFix, ReportedPositionPlatform

from fakes import AT_OFFICE, FakeLocationPlatform

NO_FIX = PositionFix(latitude=0.0, longitude=0.0)


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class HangingPlatform(FakeLocationPlatform):
    """Never answers the first ``hangs`` reads."""

    def __init__(self, *readings, hangs=1_000):
        super().__init__(*readings)
        self.hangs = hangs

    async def get_position(self, *, accuracy, timeout):
        if self.hangs > 0:
            self.hangs -= 1
            self.calls.append(accuracy)
            await asyncio.sleep(10)
        return await super().get_position(accuracy=accuracy, timeout=timeout)


@pytest.mark.asyncio
async def test_first_high_accuracy_fix_is_used():
    platform = FakeLocationPlatform(AT_OFFICE)
    sleep = SleepRecorder()

    fix = await LocationAcquirer(platform, sleep=sleep).acquire()

    assert fix == AT_OFFICE
    assert platform.calls == [Accuracy.HIGHEST]
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_retries_with_growing_backoff():
    platform = FakeLocationPlatform(LocationUnavailable("no fix"), RuntimeError("gps glitch"), AT_OFFICE)
    sleep = SleepRecorder()

    fix = await LocationAcquirer(platform, max_attempts=3, backoff=1.0, sleep=sleep).acquire()

    assert fix == AT_OFFICE
    assert platform.calls == [Accuracy.HIGHEST] * 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_zero_zero_fixes_fall_back_to_low_accuracy():
    platform = FakeLocationPlatform(NO_FIX, NO_FIX, NO_FIX, AT_OFFICE)
    sleep = SleepRecorder()

    fix = await LocationAcquirer(platform, max_attempts=3, backoff=1.0, sleep=sleep).acquire()

    assert fix == AT_OFFICE
    assert platform.calls == [Accuracy.HIGHEST] * 3 + [Accuracy.LOWEST]
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_unavailable_when_every_read_fails():
    platform = FakeLocationPlatform(NO_FIX)

    with pytest.raises(LocationUnavailable):
        await LocationAcquirer(platform, max_attempts=2, sleep=SleepRecorder()).acquire()

    assert platform.calls == [Accuracy.HIGHEST, Accuracy.HIGHEST, Accuracy.LOWEST]


@pytest.mark.asyncio
async def test_denied_permission_fails_fast_and_prompts_once():
    platform = FakeLocationPlatform(AT_OFFICE, granted=False, grant_on_request=False)
    acquirer = LocationAcquirer(platform, sleep=SleepRecorder())

    with pytest.raises(PermissionDenied):
        await acquirer.acquire()
    with pytest.raises(PermissionDenied):
        await acquirer.acquire()

    assert platform.prompts == 1
    assert platform.calls == []


@pytest.mark.asyncio
async def test_permission_granted_on_prompt():
    platform = FakeLocationPlatform(AT_OFFICE, granted=False, grant_on_request=True)

    fix = await LocationAcquirer(platform, sleep=SleepRecorder()).acquire()

    assert fix == AT_OFFICE
    assert platform.prompts == 1


@pytest.mark.asyncio
async def test_slow_attempt_times_out_and_next_attempt_wins():
    platform = HangingPlatform(AT_OFFICE, hangs=1)
    acquirer = LocationAcquirer(platform, attempt_timeout=0.05, backoff=0.0, sleep=SleepRecorder())

    fix = await acquirer.acquire()

    assert fix == AT_OFFICE
    assert platform.calls == [Accuracy.HIGHEST, Accuracy.HIGHEST]


@pytest.mark.asyncio
async def test_total_budget_bounds_the_whole_acquisition():
    platform = HangingPlatform(AT_OFFICE)
    acquirer = LocationAcquirer(platform, attempt_timeout=5.0, total_budget=0.05, sleep=SleepRecorder())

    with pytest.raises(LocationUnavailable):
        await acquirer.acquire()


@pytest.mark.asyncio
async def test_reported_position_without_fix_is_unavailable():
    acquirer = LocationAcquirer(ReportedPositionPlatform(None), max_attempts=1, sleep=SleepRecorder())

    with pytest.raises(LocationUnavailable):
        await acquirer.acquire()


def test_max_attempts_must_be_positive():
    with pytest.raises(ValueError):
        LocationAcquirer(FakeLocationPlatform(), max_attempts=0)
