"""Event and reporting system for update runs."""

from hotswap.events.bus import EventBus
from hotswap.events.reporter import (
    BusReporter,
    CallbackReporter,
    LoggingReporter,
    LogSink,
    MultiReporter,
    ProgressSink,
    Reporter,
)
from hotswap.events.types import Event, EventType

__all__ = [
    "BusReporter",
    "CallbackReporter",
    "Event",
    "EventBus",
    "EventType",
    "LogSink",
    "LoggingReporter",
    "MultiReporter",
    "ProgressSink",
    "Reporter",
]
