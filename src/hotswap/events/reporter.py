"""Progress and log sinks consumed by the orchestrator.

The orchestrator only knows the two narrow protocols below. Marshalling onto
a UI thread, colouring, persistence and so on belong to the implementation.
A reporter may also define ``async on_state(state)`` to observe state changes.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from hotswap.domain.enums import LogLevel, RunState
from hotswap.events.bus import EventBus
from hotswap.events.types import EventType

logger = logging.getLogger(__name__)


@runtime_checkable
class ProgressSink(Protocol):
    """Receives overall progress. ``percent`` is None when indeterminate."""

    async def on_progress(self, percent: int | None, label: str) -> None: ...


@runtime_checkable
class LogSink(Protocol):
    """Receives human-readable run messages."""

    async def on_log(self, message: str, level: LogLevel) -> None: ...


@runtime_checkable
class Reporter(ProgressSink, LogSink, Protocol):
    """Both sinks in one object, as injected into the orchestrator."""


_LOGGING_LEVELS: dict[LogLevel, int] = {
    LogLevel.INFO: logging.INFO,
    LogLevel.SUCCESS: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class LoggingReporter:
    """Reporter that writes everything to the standard logging tree."""

    def __init__(self, name: str = "hotswap.run"):
        self._logger = logging.getLogger(name)

    async def on_progress(self, percent: int | None, label: str) -> None:
        if percent is None:
            self._logger.debug(label)
        else:
            self._logger.debug(f"[{percent:3d}%] {label}")

    async def on_log(self, message: str, level: LogLevel) -> None:
        self._logger.log(_LOGGING_LEVELS[level], message)


class CallbackReporter:
    """Adapts two plain callables (sync or async) to the Reporter protocol."""

    def __init__(
        self,
        progress: Callable[[int | None, str], Any] | None = None,
        log: Callable[[str, LogLevel], Any] | None = None,
    ):
        self._progress = progress
        self._log = log

    async def on_progress(self, percent: int | None, label: str) -> None:
        if self._progress is not None:
            await _call(self._progress, percent, label)

    async def on_log(self, message: str, level: LogLevel) -> None:
        if self._log is not None:
            await _call(self._log, message, level)


class BusReporter:
    """Publishes progress, log and state changes as events on an EventBus."""

    def __init__(self, bus: EventBus, run_id: str | None = None):
        self.bus = bus
        self.run_id = run_id

    async def on_progress(self, percent: int | None, label: str) -> None:
        await self.bus.emit(EventType.PROGRESS, {"percent": percent, "label": label}, run_id=self.run_id)

    async def on_log(self, message: str, level: LogLevel) -> None:
        await self.bus.emit(EventType.LOG, {"message": message, "level": level.value}, run_id=self.run_id)

    async def on_state(self, state: RunState) -> None:
        await self.bus.emit(EventType.STATE_CHANGED, {"state": state.value}, run_id=self.run_id)


class MultiReporter:
    """Forwards to several reporters; one failing reporter does not starve the rest."""

    def __init__(self, *reporters: Reporter):
        self.reporters = list(reporters)

    async def on_progress(self, percent: int | None, label: str) -> None:
        for reporter in self.reporters:
            try:
                await reporter.on_progress(percent, label)
            except Exception as e:
                logger.error(f"Reporter {type(reporter).__name__} failed on progress: {e}")

    async def on_log(self, message: str, level: LogLevel) -> None:
        for reporter in self.reporters:
            try:
                await reporter.on_log(message, level)
            except Exception as e:
                logger.error(f"Reporter {type(reporter).__name__} failed on log: {e}")

    async def on_state(self, state: RunState) -> None:
        for reporter in self.reporters:
            on_state = getattr(reporter, "on_state", None)
            if on_state is None:
                continue
            try:
                await on_state(state)
            except Exception as e:
                logger.error(f"Reporter {type(reporter).__name__} failed on state change: {e}")


async def _call(func: Callable[..., Any], *args: Any) -> None:
    result = func(*args)
    if asyncio.iscoroutine(result):
        await result
