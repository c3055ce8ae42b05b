"""Change notifications for the annotation engine.

Every committed mutation emits exactly one ``changed`` event, after the
state is fully updated, so listeners always observe a consistent engine.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, Field

from quorum.schemas.annotation import BucketKey

logger = logging.getLogger(__name__)


class ChangeEvent(BaseModel):
    """Payload delivered to ``changed`` listeners."""

    operation: str = Field(description="Name of the mutating operation")
    bucket: BucketKey | None = Field(default=None, description="Affected bucket, if any")
    timestamp: float = Field(
        default_factory=time.time,
        description="Unix timestamp when the change was committed",
    )
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Operation details (ids, directions)",
    )


ChangeListener = Callable[[ChangeEvent], Any]
Unsubscribe = Callable[[], None]


class ChangeEventBus:
    """Synchronous observer list for the single ``changed`` event.

    Listener exceptions are logged but never propagate into the mutating
    call that triggered them.
    """

    def __init__(self) -> None:
        self._listeners: list[ChangeListener] = []

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: ChangeListener) -> Unsubscribe:
        """Register a listener and return a handle that removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            self._listeners = [ln for ln in self._listeners if ln is not listener]

        return unsubscribe

    def emit(
        self,
        operation: str,
        bucket: BucketKey | None = None,
        **data: Any,
    ) -> ChangeEvent:
        """Notify every listener registered at the time of the call."""
        event = ChangeEvent(operation=operation, bucket=bucket, data=data)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Change listener error for %s", operation)
        return event
