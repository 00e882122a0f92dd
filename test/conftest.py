import sys
from typing import AsyncGenerator, List

import pytest
import pytest_asyncio
from drawing_api_client.drawing_api_client import ApiClient
from drawing_api_client.models import StackCredential
from drawing_server import DrawingServer
from loguru import logger

ACCESS_KEY = "test-access-key"
SECRET_KEY = "test-secret-key"
BASE_URL_TEMPLATE = "http://127.0.0.1:{}/"


class RecordingSleep:
    """Stands in for asyncio.sleep, remembering each requested delay"""

    def __init__(self, clock=None):
        self.delays: List[float] = []
        self.clock = clock

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if self.clock is not None:
            self.clock.now += seconds


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop sinks a test added, e.g. through the cli logging setup."""
    yield
    logger.remove()
    logger.add(sys.stderr)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep(fake_clock) -> RecordingSleep:
    return RecordingSleep(fake_clock)


@pytest_asyncio.fixture
async def server() -> AsyncGenerator[tuple, None]:
    """Start and yield a DrawingServer on an ephemeral port."""
    server_instance = DrawingServer({ACCESS_KEY: SECRET_KEY}, completion_polls=2)
    port = await server_instance.start()
    try:
        yield server_instance, port
    finally:
        await server_instance.stop()


@pytest.fixture
def credential(server) -> StackCredential:
    _, port = server
    return StackCredential(
        url=BASE_URL_TEMPLATE.format(port),
        accessKey=ACCESS_KEY,
        secretKey=SECRET_KEY,
        companyId="c1",
    )


@pytest_asyncio.fixture
async def client(credential, recording_sleep) -> AsyncGenerator[ApiClient, None]:
    """Client whose backoff and polling sleeps are recorded instead of awaited."""
    api_client = ApiClient(
        credential, stack_name="local", script_name="tests", sleep=recording_sleep
    )
    try:
        yield api_client
    finally:
        await api_client.close()
