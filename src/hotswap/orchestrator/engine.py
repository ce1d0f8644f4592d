"""Update run state machine.

A run moves through:

    idle -> fetching_manifest -> stopping_processes -> downloading/verifying
         -> replacing -> starting_processes -> cleaning_up -> done

Every download and verification completes before the first replacement, so
the window in which a current path may disagree with the manifest is the
replace phase alone. A failure or cancellation during download, verify or
replace moves to rolling_back, which restores every committed file and then
ends in ``failed`` or ``cancelled``.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from hotswap.cancellation import CancellationToken
from hotswap.config import UpdaterConfig
from hotswap.domain.enums import LogLevel, RunState
from hotswap.domain.errors import (
    CancelledError,
    FileTransactionError,
    HashMismatchError,
    ManifestError,
)
from hotswap.domain.models import FileTarget, Manifest, RunResult, UpdateOutcome
from hotswap.events.reporter import LoggingReporter, Reporter
from hotswap.manifest.provider import ManifestProvider, TransportManifestProvider
from hotswap.process.controller import ProcessController
from hotswap.transactor import FileTransactor
from hotswap.transport.base import Transport, redact
from hotswap.verifier import Verifier, digests_match

logger = logging.getLogger(__name__)

# Download, verify, replace
STEPS_PER_FILE = 3


@dataclass
class _RunContext:
    """State owned by exactly one run; never shared between runs."""

    token: CancellationToken
    transactor: FileTransactor
    outcome: UpdateOutcome = field(default_factory=UpdateOutcome)
    total_steps: int = 0
    completed_steps: int = 0


class UpdateOrchestrator:
    """Drives one manifest through stop, download, verify, replace and restart.

    All collaborators are injected; only ``transport`` is required. The
    orchestrator runs one update at a time, and each run gets its own
    transactor (directory cache) and outcome (rollback scope).
    """

    def __init__(
        self,
        transport: Transport,
        reporter: Reporter | None = None,
        *,
        config: UpdaterConfig | None = None,
        verifier: Verifier | None = None,
        process_controller: ProcessController | None = None,
        manifest_provider: ManifestProvider | None = None,
        transactor_factory: Callable[[], FileTransactor] = FileTransactor,
    ):
        self.config = config or UpdaterConfig()
        self.transport = transport
        self.reporter: Reporter = reporter or LoggingReporter()
        self.verifier = verifier or Verifier()
        self.processes = process_controller or ProcessController(self.config.stop_grace_seconds)
        self.manifest_provider = manifest_provider or TransportManifestProvider(transport)
        self._transactor_factory = transactor_factory

        self.state = RunState.IDLE
        self._token: CancellationToken | None = None

    @property
    def is_running(self) -> bool:
        return self._token is not None

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation of the active run, if any."""
        if self._token is not None:
            self._token.cancel(reason)

    async def run(
        self,
        source: Manifest | str | None = None,
        token: CancellationToken | None = None,
        *,
        raise_on_failure: bool = False,
    ) -> RunResult:
        """Perform an update.

        Args:
            source: A parsed manifest, a locator (URL or path), or None to use
                ``config.manifest_url``.
            token: Cancellation token; a fresh one is created if omitted.
            raise_on_failure: Re-raise the error after rolling back instead of
                only returning it in the result. Cancellation never raises.

        Returns:
            RunResult with the terminal state (done, cancelled or failed).
        """
        if self._token is not None:
            raise RuntimeError("An update run is already in progress")

        token = token or CancellationToken()
        ctx = _RunContext(token=token, transactor=self._transactor_factory())
        self._token = token
        try:
            try:
                manifest = await self._resolve_manifest(source, token)
                await self._apply(ctx, manifest)
            except CancelledError as e:
                return await self._abort(ctx, RunState.CANCELLED, e)
            except asyncio.CancelledError:
                # The host cancelled our task: stop worker threads polling the
                # token, unwind, then let cancellation proceed
                token.cancel("Update task was cancelled")
                await self._abort(ctx, RunState.CANCELLED, CancelledError("Update task was cancelled"))
                raise
            except Exception as e:
                result = await self._abort(ctx, RunState.FAILED, e)
                if raise_on_failure:
                    raise
                return result

            return await self._complete(ctx, manifest)
        finally:
            self._token = None

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _resolve_manifest(self, source: Manifest | str | None, token: CancellationToken) -> Manifest:
        if isinstance(source, Manifest):
            return source

        locator = source if source is not None else self.config.manifest_url
        if not locator:
            raise ManifestError("No manifest given and no manifest_url configured")

        await self._enter(RunState.FETCHING_MANIFEST)
        await self._progress(None, "Fetching update manifest...")
        token.raise_if_cancelled()
        manifest = await self.manifest_provider.get_manifest(locator, token)
        await self._log(f"Manifest {redact(locator)} lists {len(manifest.files)} file(s)")
        return manifest

    async def _apply(self, ctx: _RunContext, manifest: Manifest) -> None:
        ctx.total_steps = len(manifest.files) * STEPS_PER_FILE
        if manifest.is_empty:
            await self._log("Manifest lists no files; nothing to update")
            return

        await self._stop_processes(ctx, manifest)
        await self._download_all(ctx, manifest)
        await self._replace_all(ctx, manifest)

    async def _stop_processes(self, ctx: _RunContext, manifest: Manifest) -> None:
        await self._enter(RunState.STOPPING_PROCESSES)
        ctx.token.raise_if_cancelled()

        for target in manifest.executables:
            if not await asyncio.to_thread(self.processes.is_running, target.current_path):
                continue
            await self._log(f"Stopping process: {target.name}")
            await self.processes.stop(target.current_path)
            ctx.outcome.stopped.append(target)

    async def _download_all(self, ctx: _RunContext, manifest: Manifest) -> None:
        await self._enter(RunState.DOWNLOADING)
        ctx.token.raise_if_cancelled()

        for target in manifest.files:
            ctx.token.raise_if_cancelled()
            if self.config.skip_up_to_date and await self._is_up_to_date(ctx, target):
                ctx.outcome.skipped.append(target)
                ctx.completed_steps += 2
                await self._log(f"{target.name} is already up to date")
                await self._step_progress(ctx, f"{target.name} is up to date")
                continue
            await self._download(ctx, target)

    async def _is_up_to_date(self, ctx: _RunContext, target: FileTarget) -> bool:
        if not target.current_path.is_file():
            return False
        try:
            actual = await self.verifier.digest(target.current_path, ctx.token)
        except OSError as e:
            logger.warning(f"Could not hash {target.current_path}, downloading anyway: {e}")
            return False
        return digests_match(actual, target.expected_hash)

    async def _download(self, ctx: _RunContext, target: FileTarget) -> None:
        """Fetch and verify one target into its new_path."""
        await ctx.transactor.prepare(target)
        try:
            if self.state != RunState.DOWNLOADING:
                await self._enter(RunState.DOWNLOADING)
            await self._log(f"Downloading {target.name}...")
            await self._step_progress(ctx, f"Downloading {target.name}...")

            async def on_chunk(percent: int | None, label: str) -> None:
                await self._step_progress(ctx, f"{target.name}: {label}", percent or 0)

            size = await self.transport.fetch_to_file(target.download_url, target.new_path, ctx.token, on_chunk)
            logger.debug(f"Fetched {size} bytes for {target.name}")
            ctx.completed_steps += 1

            await self._enter(RunState.VERIFYING)
            await self._step_progress(ctx, f"Verifying {target.name}...")
            actual = await self.verifier.digest(target.new_path, ctx.token)
            if not digests_match(actual, target.expected_hash):
                raise HashMismatchError(target.name, target.expected_hash, actual)
            ctx.completed_steps += 1
        except BaseException:
            await self._discard_staged(ctx, target)
            raise

        ctx.outcome.downloaded.append(target)
        await self._log(f"Verified {target.name}")

    async def _replace_all(self, ctx: _RunContext, manifest: Manifest) -> None:
        await self._enter(RunState.REPLACING)
        skipped = {id(target) for target in ctx.outcome.skipped}

        for target in manifest.files:
            if id(target) in skipped:
                ctx.completed_steps += 1
                continue

            ctx.token.raise_if_cancelled()
            await self._log(f"Installing {target.name}...")
            await self._step_progress(ctx, f"Installing {target.name}...")
            try:
                await self._commit(ctx, target)
            except OSError as e:
                await self._recover(ctx, target)
                raise FileTransactionError(target.current_path, str(e)) from e
            ctx.outcome.record_commit(target)
            ctx.completed_steps += 1

    async def _commit(self, ctx: _RunContext, target: FileTarget) -> None:
        """Commit one target; a task cancellation waits for the copy to end.

        The copy runs in a worker thread that cancellation cannot interrupt. On
        cancellation the thread is awaited, then the target is recorded as
        committed or recovered, and the cancellation is re-raised.
        """
        commit = asyncio.ensure_future(ctx.transactor.commit(target))
        try:
            await asyncio.shield(commit)
        except asyncio.CancelledError:
            while not commit.done():
                try:
                    await asyncio.wait({commit})
                except asyncio.CancelledError:
                    continue
            if commit.exception() is None:
                ctx.outcome.record_commit(target)
            else:
                await self._recover(ctx, target)
            raise

    async def _complete(self, ctx: _RunContext, manifest: Manifest) -> RunResult:
        result = RunResult(state=RunState.DONE, outcome=ctx.outcome)

        if manifest.executables and self.config.restart_executables:
            await self._enter(RunState.STARTING_PROCESSES)
            for target in manifest.executables:
                if not target.current_path.exists():
                    logger.warning(f"Not starting {target.name}: {target.current_path} does not exist")
                    continue
                await self._start(target, result)

        if self.config.cleanup_backups and manifest.files:
            await self._enter(RunState.CLEANING_UP)
            # Skipped targets too: a backup left by an earlier run is stale
            for target in manifest.files:
                try:
                    await ctx.transactor.discard_backup(target)
                except OSError as e:
                    await self._log(f"Could not remove backup {target.backup_path}: {e}", LogLevel.WARNING)

        await self._enter(RunState.DONE)
        await self._progress(100, "Update completed successfully")
        await self._log("Update process completed successfully", LogLevel.SUCCESS)
        return result

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    async def _abort(self, ctx: _RunContext, terminal: RunState, error: BaseException) -> RunResult:
        """Roll back committed targets and finish in ``terminal``."""
        result = RunResult(state=terminal, outcome=ctx.outcome, error=error)
        if terminal == RunState.CANCELLED:
            await self._log(f"Update cancelled: {error}", LogLevel.WARNING)
        else:
            logger.debug("Update failed", exc_info=error)
            await self._log(f"Update failed: {error}", LogLevel.ERROR)

        committed = {id(target) for target in ctx.outcome.committed}
        if ctx.outcome.committed:
            await self._enter(RunState.ROLLING_BACK)
            await self._log(f"Rolling back {len(ctx.outcome.committed)} file(s)", LogLevel.WARNING)
            for target in ctx.outcome.committed:
                try:
                    await ctx.transactor.rollback(target)
                except Exception as e:
                    result.rollback_failures.append((target, e))
                    await self._log(f"Failed to roll back {target.name}: {e}", LogLevel.ERROR)
                    continue
                result.rolled_back.append(target)
                await self._log(f"Restored {target.name}", LogLevel.WARNING)

        # Verified downloads that never reached the replace phase
        for target in ctx.outcome.downloaded:
            if id(target) not in committed:
                await self._discard_staged(ctx, target)

        if ctx.outcome.stopped and self.config.restart_executables:
            for target in ctx.outcome.stopped:
                await self._start(target, result)

        await self._enter(terminal)
        label = "Update cancelled" if terminal == RunState.CANCELLED else "Update failed"
        await self._progress(None, label)
        return result

    async def _recover(self, ctx: _RunContext, target: FileTarget) -> None:
        try:
            await ctx.transactor.recover(target)
        except Exception as e:
            await self._log(f"Failed to recover {target.name} after a failed replace: {e}", LogLevel.ERROR)

    async def _discard_staged(self, ctx: _RunContext, target: FileTarget) -> None:
        try:
            await ctx.transactor.discard_staged(target)
        except OSError as e:
            logger.warning(f"Could not remove staged file {target.new_path}: {e}")

    async def _start(self, target: FileTarget, result: RunResult) -> None:
        await self._log(f"Starting process: {target.name}")
        try:
            await self.processes.start(target.current_path)
        except Exception as e:
            result.restart_failures.append((target, e))
            await self._log(f"Failed to start {target.name}: {e}", LogLevel.ERROR)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def _enter(self, state: RunState) -> None:
        logger.debug(f"State {self.state.value} -> {state.value}")
        self.state = state
        on_state = getattr(self.reporter, "on_state", None)
        if on_state is not None:
            await on_state(state)

    async def _step_progress(self, ctx: _RunContext, label: str, fraction: int = 0) -> None:
        """Report overall progress, ``fraction`` percent into the current step."""
        if ctx.total_steps <= 0:
            return
        percent = min(100, (ctx.completed_steps * 100 + fraction) // ctx.total_steps)
        await self._progress(percent, label)

    async def _progress(self, percent: int | None, label: str) -> None:
        await self.reporter.on_progress(percent, label)

    async def _log(self, message: str, level: LogLevel = LogLevel.INFO) -> None:
        await self.reporter.on_log(message, level)
