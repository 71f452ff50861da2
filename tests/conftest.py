"""
Pytest configuration and shared fixtures for the test suite.
"""
import sys
from pathlib import Path
from typing import Any, Dict, List

import pytest
import pytest_asyncio

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock():
    """Clock the test advances by hand."""
    return FakeClock()


@pytest.fixture
def no_sleep():
    """Sleep replacement recording requested delays without waiting."""
    delays: List[float] = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays
    return sleep


class GatewayScript:
    """Programmable behaviour of the test gateway.

    Each list is consumed front to back; the last entry repeats once the
    list is down to one element.
    """

    def __init__(self):
        self.challenges: List[Any] = ["<html><body><p>Question: What is 2+2?</p></body></html>"]
        self.submit_responses: List[Any] = ['<a href="/files/0_13_4b.txt">Download</a>']
        self.verify_responses: List[Any] = [{"text": "What is the capital of Poland?", "correlationId": "42"}]
        self.llm_responses: List[Any] = ["4"]
        self.requests: List[Dict[str, Any]] = []

    @staticmethod
    def _next(queue: List[Any]) -> Any:
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def calls(self, path: str) -> List[Dict[str, Any]]:
        return [r for r in self.requests if r["path"] == path]


def _respond(item: Any):
    """Turn a scripted item into a response: status ints, dicts as JSON, text."""
    from aiohttp import web

    if isinstance(item, int):
        return web.Response(status=item, text="error")
    if isinstance(item, (dict, list)):
        return web.json_response(item)
    return web.Response(text=item, content_type="text/html")


@pytest_asyncio.fixture
async def gateway_server():
    """Run a scripted gateway and model proxy on a local port.

    Yields:
        (base_url, script) tuple.
    """
    from aiohttp import web

    script = GatewayScript()
    app = web.Application()

    async def challenge(request):
        script.requests.append({"path": "/challenge", "method": request.method})
        return _respond(script._next(script.challenges))

    async def submit(request):
        form = await request.post()
        script.requests.append({"path": "/challenge/submit", "form": dict(form)})
        return _respond(script._next(script.submit_responses))

    async def verify(request):
        payload = await request.json()
        script.requests.append({"path": "/verify", "json": payload})
        return _respond(script._next(script.verify_responses))

    async def llm_text(request):
        payload = await request.json()
        script.requests.append({
            "path": "/llm/text",
            "json": payload,
            "authorization": request.headers.get("Authorization")
        })
        item = script._next(script.llm_responses)
        if isinstance(item, str):
            item = {"choices": [{"message": {"role": "assistant", "content": item}}]}
        return _respond(item)

    async def llm_transcribe(request):
        form = await request.post()
        upload = form["file"]
        script.requests.append({
            "path": "/llm/transcribe",
            "model": form["model"],
            "filename": upload.filename,
            "data": upload.file.read()
        })
        return web.json_response({"text": "transcribed audio"})

    app.router.add_get('/challenge', challenge)
    app.router.add_post('/challenge/submit', submit)
    app.router.add_post('/verify', verify)
    app.router.add_post('/llm/text', llm_text)
    app.router.add_post('/llm/transcribe', llm_transcribe)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, '127.0.0.1', 0)
    await site.start()

    port = site._server.sockets[0].getsockname()[1]
    base_url = f"http://127.0.0.1:{port}"

    yield base_url, script

    await runner.cleanup()


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Mock environment variables for testing."""
    test_env = {
        "GATEWAY_BASE_URL": "http://gateway.test",
        "GATEWAY_IDENTITY": "tester",
        "GATEWAY_SECRET": "s3cret",
        "LLM_API_KEY": "sk-test",
        "REFRESH_WINDOW_SECONDS": "5",
        "TRANSPORT_MAX_RETRIES": "2",
        "LOG_LEVEL": "DEBUG"
    }

    for key, value in test_env.items():
        monkeypatch.setenv(key, value)

    return test_env


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
