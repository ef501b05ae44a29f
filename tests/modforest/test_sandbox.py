"""Tests for the sandbox wire format, worker entry point and bridge."""

from __future__ import annotations

import json
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from modforest.core.config import Settings
from modforest.exceptions import (
    EmptyManifestError,
    MalformedManifestError,
    SandboxUnavailableError,
)
from modforest.parser.go_mod import parse_manifest
from modforest.parser.protocol import InProcessParser, ManifestParser
from modforest.sandbox.bridge import SandboxBridge, SandboxedParser
from modforest.sandbox.wire import decode_response, encode_error, encode_record
from modforest.sandbox.worker import handle_request


def _thread_bridge(**kwargs) -> SandboxBridge:
    return SandboxBridge(executor_factory=lambda: ThreadPoolExecutor(max_workers=1), **kwargs)


class WorkerTrackingPool(ThreadPoolExecutor):
    """Thread pool that carries fake worker process handles like a process pool."""

    def __init__(self) -> None:
        super().__init__(max_workers=1)
        self.worker = MagicMock(name="worker")
        self.worker.is_alive.return_value = True
        self._processes = {4242: self.worker}


class FlakyBridge:
    """Bridge double that fails the first *failures* invocations."""

    def __init__(self, failures: int, payload: str) -> None:
        self.failures = failures
        self.payload = payload
        self.calls = 0
        self.epoch = 1
        self.restarts: list[int | None] = []

    async def invoke(self, text: str) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise SandboxUnavailableError("sandbox process died")
        return self.payload

    def restart(self, stale_epoch: int | None = None) -> None:
        self.restarts.append(stale_epoch)
        self.epoch += 1


# ── wire format ──────────────────────────────────────────────────────────


class TestWire:
    def test_record_round_trip(self, svc_manifest):
        record = parse_manifest(svc_manifest)
        assert decode_response(encode_record(record)) == record

    def test_success_shape(self, app_manifest):
        data = json.loads(encode_record(parse_manifest(app_manifest)))
        assert "error" not in data
        assert data["module"] == "example.com/app"
        assert {"go", "toolchain"} <= set(data)
        assert data["require"][1] == {"path": "example.com/dep", "version": "v2.0.0", "indirect": True}

    def test_header_keys_always_present(self):
        data = json.loads(encode_record(parse_manifest("module a.com/x\n")))
        assert set(data) == {"module", "go", "toolchain", "require", "replace", "exclude", "tool"}
        assert data["go"] is None
        assert data["toolchain"] is None
        assert data["require"] == []

    def test_replace_carries_nested_target(self, svc_manifest):
        data = json.loads(encode_record(parse_manifest(svc_manifest)))
        assert data["replace"][0]["replacement"] == {"path": "../"}

    def test_error_shape(self):
        assert json.loads(encode_error("line 1: boom")) == {"error": "line 1: boom"}

    def test_empty_error_decodes_to_empty(self):
        with pytest.raises(EmptyManifestError):
            decode_response(handle_request(""))

    def test_other_errors_decode_to_malformed(self):
        with pytest.raises(MalformedManifestError, match="line 1: boom"):
            decode_response(encode_error("line 1: boom"))

    def test_error_key_wins_over_fields(self):
        with pytest.raises(MalformedManifestError):
            decode_response(json.dumps({"error": "bad", "module": "a.com/x"}))

    @pytest.mark.parametrize("payload", ["not json", "[1, 2]", '"text"', '{"require": "nope"}'])
    def test_broken_channel(self, payload):
        with pytest.raises(SandboxUnavailableError):
            decode_response(payload)


# ── worker ───────────────────────────────────────────────────────────────


class TestHandleRequest:
    def test_success(self, app_manifest):
        assert decode_response(handle_request(app_manifest)).module_path == "example.com/app"

    def test_parse_error_is_returned(self, broken_manifest):
        data = json.loads(handle_request(broken_manifest))
        assert data["error"].startswith("line 1:")

    def test_unexpected_exception_is_returned(self):
        with patch("modforest.sandbox.worker.parse_manifest", side_effect=ValueError("boom")):
            data = json.loads(handle_request("module a.com/x"))
        assert data == {"error": "parser fault: ValueError: boom"}

    def test_recursion_error_is_returned(self):
        with patch("modforest.sandbox.worker.parse_manifest", side_effect=RecursionError()):
            data = json.loads(handle_request("module a.com/x"))
        assert "recursion" in data["error"]


# ── bridge ───────────────────────────────────────────────────────────────


class TestSandboxBridge:
    @pytest.mark.asyncio
    async def test_not_started(self):
        bridge = _thread_bridge()
        with pytest.raises(SandboxUnavailableError, match="not started"):
            await bridge.invoke("module a.com/x")

    @pytest.mark.asyncio
    async def test_invoke_returns_serialized_response(self, app_manifest):
        async with _thread_bridge() as bridge:
            payload = await bridge.invoke(app_manifest)
        assert json.loads(payload)["module"] == "example.com/app"
        assert not bridge.is_running

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self):
        def _slow(text: str) -> str:
            time.sleep(0.5)
            return "{}"

        with patch("modforest.sandbox.bridge.handle_request", _slow):
            async with _thread_bridge(timeout=0.05) as bridge:
                with pytest.raises(SandboxUnavailableError, match="did not answer"):
                    await bridge.invoke("module a.com/x")

    @pytest.mark.asyncio
    async def test_shut_down_executor_is_unavailable(self):
        bridge = _thread_bridge()
        bridge.start()
        bridge._executor.shutdown()
        with pytest.raises(SandboxUnavailableError, match="channel closed"):
            await bridge.invoke("module a.com/x")
        bridge.close()

    @pytest.mark.asyncio
    async def test_restart_after_timeout_terminates_hung_worker(self):
        def _hang(text: str) -> str:
            time.sleep(0.3)
            return "{}"

        pools: list[WorkerTrackingPool] = []

        def _factory() -> WorkerTrackingPool:
            pools.append(WorkerTrackingPool())
            return pools[-1]

        bridge = SandboxBridge(timeout=0.05, executor_factory=_factory)
        bridge.start()
        with patch("modforest.sandbox.bridge.handle_request", _hang):
            with pytest.raises(SandboxUnavailableError, match="did not answer"):
                await bridge.invoke("module a.com/x")
        bridge.restart(stale_epoch=1)
        bridge.close()

        assert len(pools) == 2
        pools[0].worker.terminate.assert_called_once_with()
        pools[1].worker.terminate.assert_not_called()

    @pytest.mark.asyncio
    async def test_clean_close_leaves_workers_alone(self, app_manifest):
        pool = WorkerTrackingPool()
        async with SandboxBridge(executor_factory=lambda: pool) as bridge:
            await bridge.invoke(app_manifest)
        pool.worker.terminate.assert_not_called()

    def test_restart_once_per_epoch(self):
        bridge = _thread_bridge()
        bridge.start()
        assert bridge.epoch == 1
        bridge.restart(stale_epoch=1)
        assert bridge.epoch == 2
        # a second caller that saw the same failure does not restart again
        bridge.restart(stale_epoch=1)
        assert bridge.epoch == 2
        bridge.close()

    @pytest.mark.asyncio
    async def test_real_process_pool(self, svc_manifest):
        async with SandboxBridge(workers=1) as bridge:
            record = await SandboxedParser(bridge).parse(svc_manifest)
        assert record == parse_manifest(svc_manifest)


# ── SandboxedParser ──────────────────────────────────────────────────────


class TestSandboxedParser:
    def test_satisfies_protocol(self):
        assert isinstance(SandboxedParser(_thread_bridge()), ManifestParser)
        assert isinstance(InProcessParser(), ManifestParser)

    def test_from_settings(self):
        parser = SandboxedParser.from_settings(Settings(sandbox_workers=2, sandbox_timeout=3.0))
        assert parser.bridge._workers == 2
        assert parser.bridge._timeout == 3.0

    @pytest.mark.asyncio
    async def test_retries_with_backoff(self, app_manifest):
        bridge = FlakyBridge(failures=2, payload=handle_request(app_manifest))
        parser = SandboxedParser(bridge, retries=3, retry_delay=0.5)
        with patch("modforest.sandbox.bridge.asyncio.sleep", new_callable=AsyncMock) as sleep:
            record = await parser.parse(app_manifest)

        assert record.module_path == "example.com/app"
        assert bridge.calls == 3
        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0]
        assert bridge.restarts == [1, 2]

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self):
        bridge = FlakyBridge(failures=10, payload="")
        parser = SandboxedParser(bridge, retries=3, retry_delay=0)
        with pytest.raises(SandboxUnavailableError):
            await parser.parse("module a.com/x")
        assert bridge.calls == 3
        assert len(bridge.restarts) == 2

    @pytest.mark.asyncio
    async def test_parse_errors_are_not_retried(self, broken_manifest):
        bridge = FlakyBridge(failures=0, payload=handle_request(broken_manifest))
        parser = SandboxedParser(bridge, retries=3, retry_delay=0)
        with pytest.raises(MalformedManifestError):
            await parser.parse(broken_manifest)
        assert bridge.calls == 1
        assert bridge.restarts == []

    @pytest.mark.asyncio
    async def test_matches_in_process_parser(self, svc_manifest):
        async with _thread_bridge() as bridge:
            sandboxed = await SandboxedParser(bridge).parse(svc_manifest)
        assert sandboxed == await InProcessParser().parse(svc_manifest)
