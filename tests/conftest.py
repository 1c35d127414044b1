"""Global pytest configuration."""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncGenerator

import inspect

import pytest

# Keep tests off the health port and the network even if .env configures them.
os.environ.setdefault("HEALTH_ENABLED", "false")
os.environ.setdefault("MODEL_MANIFEST_URL", "")
os.environ.setdefault("SANDBOX_COMMAND", "")


@pytest.fixture(scope="session")
def event_loop() -> AsyncGenerator[asyncio.AbstractEventLoop, None]:
    """Provide a shared event loop for async tests and fixtures."""

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        yield loop
    finally:
        loop.close()


def _get_loop(request: pytest.FixtureRequest) -> asyncio.AbstractEventLoop:
    try:
        loop = request.getfixturevalue("event_loop")
    except pytest.FixtureLookupError:
        loop = asyncio.new_event_loop()
    if loop.is_closed():
        loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    return loop


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):  # type: ignore[override]
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        testargs = {
            name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames
        }
        loop = testargs.get("event_loop") or asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        loop.run_until_complete(pyfuncitem.obj(**testargs))
        return True
    return None


@pytest.hookimpl(tryfirst=True)
def pytest_fixture_setup(fixturedef, request):  # type: ignore[override]
    func = fixturedef.func
    if inspect.iscoroutinefunction(func):
        loop = _get_loop(request)
        kwargs = {arg: request.getfixturevalue(arg) for arg in fixturedef.argnames}
        return loop.run_until_complete(func(**kwargs))

    if inspect.isasyncgenfunction(func):
        loop = _get_loop(request)
        kwargs = {arg: request.getfixturevalue(arg) for arg in fixturedef.argnames}
        agen = func(**kwargs)
        value = loop.run_until_complete(agen.__anext__())

        def finalize() -> None:
            try:
                loop.run_until_complete(agen.__anext__())
            except StopAsyncIteration:
                pass

        request.addfinalizer(finalize)
        return value

    return None


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "asyncio: mark test as requiring asyncio support")


class FakeSandboxHost:
    """In-memory sandbox host that answers with a canned classification."""

    def __init__(
        self,
        classification: str = "SAFE",
        confidence: float = 0.9,
        reasoning: str = "fake model",
        error: Exception | None = None,
    ):
        self.classification = classification
        self.confidence = confidence
        self.reasoning = reasoning
        self.error = error
        self.context = False
        self.created = 0
        self.closed = 0
        self.messages: list[dict] = []

    async def has_context(self) -> bool:
        return self.context

    async def create_context(self) -> None:
        self.created += 1
        self.context = True

    async def close_context(self) -> None:
        self.closed += 1
        self.context = False

    async def send_message(self, message: dict) -> dict:
        self.messages.append(message)
        if self.error is not None:
            raise self.error
        return {
            "type": "INFERENCE_RESULT",
            "requestId": message["requestId"],
            "classification": self.classification,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
        }


@pytest.fixture
def fake_host() -> FakeSandboxHost:
    return FakeSandboxHost()
