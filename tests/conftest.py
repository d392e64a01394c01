import json
import os

os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ["LOG_TO_FILE"] = "false"

import httpx
import pytest
from fastapi.testclient import TestClient

from chat_relay.config import config
from chat_relay.main import app
from chat_relay.services import CompletionService, get_completion_service


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    path = tmp_path / "uploads"
    monkeypatch.setattr(config, "UPLOAD_DIR", str(path))
    return path


class FakeProvider:
    """Подмена completion endpoint через httpx.MockTransport."""
    
    def __init__(self):
        self.requests = []
        self.status_code = 200
        self.body = {
            "choices": [{"message": {"role": "assistant", "content": "Hello from the model"}}],
            "usage": {"total_tokens": 42},
        }
        self.error = None
    
    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if isinstance(self.body, (dict, list)):
            return httpx.Response(self.status_code, json=self.body)
        return httpx.Response(self.status_code, content=self.body)
    
    @property
    def payloads(self):
        return [json.loads(request.content) for request in self.requests]


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def completion_service(provider):
    return CompletionService(config, transport=httpx.MockTransport(provider.handler))


@pytest.fixture
def client(completion_service, upload_dir):
    app.dependency_overrides[get_completion_service] = lambda: completion_service
    yield TestClient(app)
    app.dependency_overrides.clear()
