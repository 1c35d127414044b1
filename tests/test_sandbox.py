"""Tests for the sandbox context manager and subprocess host."""

import asyncio
import sys

import pytest

from conftest import FakeSandboxHost
from phishguard.sandbox import (
    InferenceRequest,
    InferenceSandboxManager,
    ProcessSandboxHost,
    SandboxError,
    SandboxStatus,
)

ECHO_SANDBOX = """
import json, sys
for line in sys.stdin:
    message = json.loads(line)
    print(json.dumps({
        "type": "INFERENCE_RESULT",
        "requestId": message["requestId"],
        "classification": "SUSPICIOUS",
        "confidence": 0.5,
        "reasoning": "echo " + message["user"][:10],
    }), flush=True)
"""


def _request(request_id="req-1"):
    return InferenceRequest(system="sys", user="user text", request_id=request_id)


class _ReplyHost(FakeSandboxHost):
    def __init__(self, reply: dict):
        super().__init__()
        self.reply = reply

    async def send_message(self, message: dict) -> dict:
        self.messages.append(message)
        return self.reply


@pytest.mark.asyncio
async def test_ensure_context_is_idempotent(fake_host):
    manager = InferenceSandboxManager(fake_host)
    await manager.ensure_context()
    await manager.ensure_context()
    assert fake_host.created == 1
    assert manager.status == SandboxStatus.IDLE
    assert await manager.is_healthy()


@pytest.mark.asyncio
async def test_close_context_without_context_is_noop(fake_host):
    manager = InferenceSandboxManager(fake_host)
    await manager.close_context()
    assert fake_host.closed == 0

    await manager.ensure_context()
    await manager.close_context()
    assert fake_host.closed == 1
    assert not await manager.is_healthy()


@pytest.mark.asyncio
async def test_run_inference_round_trip():
    host = FakeSandboxHost(classification="LIKELY_PHISHING", confidence=0.8, reasoning="fake login")
    manager = InferenceSandboxManager(host)

    result = await manager.run_inference(_request())

    assert result.classification == "LIKELY_PHISHING"
    assert result.confidence == 0.8
    assert result.request_id == "req-1"
    assert manager.status == SandboxStatus.IDLE
    assert host.created == 1
    assert host.messages == [
        {"type": "INFERENCE_REQUEST", "system": "sys", "user": "user text", "requestId": "req-1"}
    ]


@pytest.mark.asyncio
async def test_host_failure_sets_error_and_reraises():
    host = FakeSandboxHost(error=SandboxError("context crashed"))
    manager = InferenceSandboxManager(host)
    with pytest.raises(SandboxError, match="context crashed"):
        await manager.run_inference(_request())
    assert manager.status == SandboxStatus.ERROR


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "reply",
    [
        {"type": "SOMETHING_ELSE", "requestId": "req-1", "classification": "SAFE", "confidence": 0.5},
        {"type": "INFERENCE_RESULT", "requestId": "other", "classification": "SAFE", "confidence": 0.5},
        {"type": "INFERENCE_RESULT", "requestId": "req-1", "classification": "MAYBE", "confidence": 0.5},
        {"type": "INFERENCE_RESULT", "requestId": "req-1", "classification": "SAFE", "confidence": 1.5},
        {"type": "INFERENCE_RESULT", "requestId": "req-1", "classification": "SAFE", "confidence": "high"},
    ],
)
async def test_invalid_responses_are_rejected(reply):
    manager = InferenceSandboxManager(_ReplyHost(reply))
    with pytest.raises(SandboxError):
        await manager.run_inference(_request())
    assert manager.status == SandboxStatus.ERROR


@pytest.mark.asyncio
async def test_recovers_after_error():
    host = FakeSandboxHost(error=SandboxError("boom"))
    manager = InferenceSandboxManager(host)
    with pytest.raises(SandboxError):
        await manager.run_inference(_request())

    host.error = None
    result = await manager.run_inference(_request("req-2"))
    assert result.request_id == "req-2"
    assert manager.status == SandboxStatus.IDLE


@pytest.mark.asyncio
async def test_process_host_round_trip():
    host = ProcessSandboxHost([sys.executable, "-c", ECHO_SANDBOX])
    manager = InferenceSandboxManager(host)
    try:
        first = await manager.run_inference(_request("a"))
        second = await manager.run_inference(_request("b"))
        assert first.classification == "SUSPICIOUS"
        assert first.reasoning == "echo user text"
        assert second.request_id == "b"
        assert await manager.is_healthy()
    finally:
        await manager.close_context()
    assert not await manager.is_healthy()


@pytest.mark.asyncio
async def test_process_exiting_without_reply_raises():
    host = ProcessSandboxHost([sys.executable, "-c", "import sys; sys.stdin.readline()"])
    manager = InferenceSandboxManager(host)
    try:
        with pytest.raises(SandboxError, match="without a response"):
            await manager.run_inference(_request())
    finally:
        await manager.close_context()


@pytest.mark.asyncio
async def test_process_host_missing_binary():
    host = ProcessSandboxHost(["/nonexistent/phishguard-sandbox"])
    with pytest.raises(SandboxError, match="Failed to start"):
        await host.create_context()
    assert not await host.has_context()


@pytest.mark.asyncio
async def test_process_without_stdout_pipe_raises():
    host = ProcessSandboxHost([sys.executable, "-c", "import sys; sys.stdin.readline()"])
    host._process = await asyncio.create_subprocess_exec(
        *host.argv,
        stdin=asyncio.subprocess.PIPE,
    )
    try:
        with pytest.raises(SandboxError, match="no stdio pipes"):
            await host.send_message({"type": "ping"})
    finally:
        await host.close_context()


def test_process_host_parses_command_string():
    host = ProcessSandboxHost("python -m sandbox_runner --model data/model/model.bin")
    assert host.argv == ["python", "-m", "sandbox_runner", "--model", "data/model/model.bin"]
    with pytest.raises(ValueError):
        ProcessSandboxHost("")
