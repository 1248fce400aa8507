from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

from ..core.enums import ActivityType
from ..core.exceptions import UploadFailure

logger = logging.getLogger(__name__)


class SelfieUploader(Protocol):
    async def upload(self, *, user_id: str, local_ref: str, activity_type: ActivityType) -> str:
        """Store the image and return its durable URL."""

        raise NotImplementedError


def is_durable(ref: str) -> bool:
    return ref.startswith(("http://", "https://"))


class SelfieService:
    """Turn a selfie reference into a durable URL before an event is written.

    References that are already URLs pass through untouched.
    """

    def __init__(self, uploader: Optional[SelfieUploader] = None, *, timeout: float = 30.0):
        self._uploader = uploader
        self._timeout = float(timeout)

    async def resolve(self, *, user_id: str, ref: Optional[str], activity_type: ActivityType) -> Optional[str]:
        if not ref:
            return None
        if is_durable(ref):
            return ref
        if self._uploader is None:
            raise UploadFailure("Selfie upload is not available")

        try:
            url = await asyncio.wait_for(
                self._uploader.upload(user_id=user_id, local_ref=ref, activity_type=activity_type),
                timeout=self._timeout,
            )
        except UploadFailure:
            raise
        except asyncio.TimeoutError as e:
            raise UploadFailure("Selfie upload timed out, please try again") from e
        except Exception as e:
            logger.warning("Selfie upload failed for user %s: %s", user_id, e)
            raise UploadFailure(f"Failed to upload selfie: {e}") from e

        if not url:
            raise UploadFailure("Selfie upload returned no URL")
        return url
