import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

from loguru import logger
from pydantic import BaseModel, Field

# Lifecycle event names emitted by the orchestrator.
RUN_STARTED = "run_started"
AGENT_COMPLETED = "agent_completed"
STATUS_CHANGED = "status_changed"
RUN_COMPLETED = "run_completed"
CONFIG_UPDATED = "config_updated"
NOTIFY = "notify"


class RunEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    event_type: str
    run_id: str | None = None
    payload: Dict[str, Any] = Field(default_factory=dict)


class EventBus:
    """A lightweight, synchronous event bus owned by one orchestrator."""

    def __init__(self):
        self._subscribers: List[Callable[[RunEvent], None]] = []

    def subscribe(self, callback: Callable[[RunEvent], None]) -> Callable[[], None]:
        """Register a callback. Returns a function that removes it again."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def emit(self, event_type: str, run_id: str | None = None, payload: Dict[str, Any] | None = None) -> RunEvent:
        """Construct and broadcast a RunEvent to all subscribers."""
        event = RunEvent(event_type=event_type, run_id=run_id, payload=payload or {})

        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception as e:
                # A broken observer must not take the run down with it.
                logger.warning(f"[EVENTS] Subscriber failed on {event_type}: {e}")

        return event
