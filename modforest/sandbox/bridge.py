"""Process-isolated parser: one string in, one string out per call."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from concurrent.futures import BrokenExecutor, Executor, ProcessPoolExecutor

import structlog

from modforest.core.config import Settings
from modforest.exceptions import SandboxUnavailableError
from modforest.parser.models import ManifestRecord
from modforest.sandbox.wire import decode_response
from modforest.sandbox.worker import handle_request

log = structlog.get_logger(__name__)


def _worker_processes(executor: Executor) -> list:
    # ProcessPoolExecutor exposes no public handle on its workers
    processes = getattr(executor, "_processes", None) or {}
    return list(processes.values())


class SandboxBridge:
    """Owns the parser process pool and marshals single requests through it.

    ``epoch`` increments on every (re)start so concurrent callers that saw
    the same failure restart the pool only once.
    """

    def __init__(
        self,
        *,
        workers: int = 1,
        timeout: float = 10.0,
        executor_factory: Callable[[], Executor] | None = None,
    ) -> None:
        self._workers = workers
        self._timeout = timeout
        self._executor_factory = executor_factory or (
            lambda: ProcessPoolExecutor(max_workers=self._workers)
        )
        self._executor: Executor | None = None
        self._stalled = False
        self.epoch = 0

    # ── lifecycle ──────────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._executor is not None

    def start(self) -> None:
        if self._executor is not None:
            return
        self._executor = self._executor_factory()
        self.epoch += 1
        log.debug("sandbox.started", workers=self._workers, epoch=self.epoch)

    def close(self) -> None:
        """Shut the pool down. Workers left hung by a timed-out call are terminated."""
        executor, self._executor = self._executor, None
        if executor is None:
            return
        stalled, self._stalled = self._stalled, False
        hung = _worker_processes(executor) if stalled else []
        executor.shutdown(wait=False, cancel_futures=True)
        for process in hung:
            if process.is_alive():
                process.terminate()
        log.debug("sandbox.closed", epoch=self.epoch, terminated=len(hung))

    def restart(self, stale_epoch: int | None = None) -> None:
        """Replace the pool, unless someone already did since *stale_epoch*."""
        if stale_epoch is not None and stale_epoch != self.epoch and self.is_running:
            return
        self.close()
        self.start()
        log.info("sandbox.restarted", epoch=self.epoch)

    async def __aenter__(self) -> SandboxBridge:
        self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        self.close()

    # ── public ─────────────────────────────────────────────────────────────

    async def invoke(self, text: str) -> str:
        """Send *text* to the sandbox and return its serialized response.

        Raises :class:`SandboxUnavailableError` on any transport failure;
        parse failures come back inside the response string.
        """
        executor = self._executor
        if executor is None:
            raise SandboxUnavailableError("sandbox not started")

        loop = asyncio.get_running_loop()
        try:
            future = loop.run_in_executor(executor, handle_request, text)
            result = await asyncio.wait_for(future, timeout=self._timeout)
        except BrokenExecutor as exc:
            raise SandboxUnavailableError(f"sandbox process died: {exc}") from exc
        except asyncio.TimeoutError as exc:
            if executor is self._executor:
                self._stalled = True
            raise SandboxUnavailableError(
                f"sandbox did not answer within {self._timeout}s"
            ) from exc
        except RuntimeError as exc:
            # raised by executors that were shut down underneath us
            raise SandboxUnavailableError(f"sandbox channel closed: {exc}") from exc

        if not isinstance(result, str):
            raise SandboxUnavailableError(f"unexpected sandbox response type {type(result).__name__}")
        return result


class SandboxedParser:
    """:class:`~modforest.parser.protocol.ManifestParser` backed by a :class:`SandboxBridge`.

    Transport failures are retried with exponential backoff, restarting the
    pool between attempts. Parse errors are returned on the first attempt.
    """

    def __init__(self, bridge: SandboxBridge, *, retries: int = 3, retry_delay: float = 0.5) -> None:
        self._bridge = bridge
        self._retries = max(retries, 1)
        self._retry_delay = retry_delay

    @classmethod
    def from_settings(cls, settings: Settings) -> SandboxedParser:
        bridge = SandboxBridge(workers=settings.sandbox_workers, timeout=settings.sandbox_timeout)
        return cls(bridge, retries=settings.sandbox_retries, retry_delay=settings.sandbox_retry_delay)

    @property
    def bridge(self) -> SandboxBridge:
        return self._bridge

    async def parse(self, text: str) -> ManifestRecord:
        last_exc: SandboxUnavailableError | None = None
        for attempt in range(self._retries):
            epoch = self._bridge.epoch
            try:
                payload = await self._bridge.invoke(text)
                return decode_response(payload)
            except SandboxUnavailableError as exc:
                log.warning(
                    "sandbox.unavailable",
                    error=exc.message,
                    attempt=attempt + 1,
                    max_retries=self._retries,
                )
                last_exc = exc

            if attempt < self._retries - 1:
                await asyncio.sleep(self._retry_delay * (2**attempt))
                self._bridge.restart(stale_epoch=epoch)

        raise last_exc  # type: ignore[misc]
