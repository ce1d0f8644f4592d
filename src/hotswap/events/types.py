"""Run event definitions."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class EventType(str, Enum):
    """What a run reports while it executes."""

    PROGRESS = "run.progress"  # {"percent": int | None, "label": str}
    LOG = "run.log"  # {"message": str, "level": LogLevel value}
    STATE_CHANGED = "run.state_changed"  # {"state": RunState value}


class Event(BaseModel):
    """One immutable run event as delivered to bus subscribers."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex[:12])
    type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    data: dict[str, Any] = Field(default_factory=dict)
    run_id: str | None = None

    def to_json(self) -> dict[str, Any]:
        """JSON-safe dict, e.g. for forwarding to a UI over a socket."""
        return self.model_dump(mode="json")
