import asyncio

import pytest


@pytest.fixture(autouse=True)
def _test_env(monkeypatch: pytest.MonkeyPatch):
    for name in (
        "INTERVIEWER_LLM_PROVIDER",
        "OPENROUTER_API_KEY",
        "GOOGLE_CLOUD_PROJECT",
        "GOOGLE_APPLICATION_CREDENTIALS",
        "INTERVIEWER_MODEL",
        "INTERVIEWER_TOTAL_QUESTIONS",
        "INTERVIEWER_LOG_FILE",
        "INTERVIEWER_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def wait_until():
    async def _wait(predicate, timeout: float = 2.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.001)

    return _wait


@pytest.fixture
def drain():
    async def _drain():
        # Long enough for queued callbacks and tasks to cascade
        await asyncio.sleep(0.02)

    return _drain
