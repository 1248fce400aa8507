from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

from ..activity.model import ActivityEvent


@dataclass(frozen=True)
class ActivityNotification:
    """Push message: an activity row was written by some session/device."""

    event: ActivityEvent


NotificationHandler = Callable[[ActivityNotification], Awaitable[object]]


class Subscription(Protocol):
    def close(self) -> None:
        raise NotImplementedError


class RealtimeChannel(Protocol):
    def subscribe(self, user_id: str, handler: NotificationHandler) -> Subscription:
        """Deliver every activity change for ``user_id`` to ``handler``."""

        raise NotImplementedError
