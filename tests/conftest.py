import json

import httpx
import pytest
from whenever import Instant

from commonplace.database import Database
from commonplace.llm import LLMClient
from commonplace.passwords import hash_password


class FakeOpenAI:
    """Queue of canned OpenAI responses served through httpx.MockTransport.

    Queue entries may be a dict (returned as JSON message content), a str
    (returned as message content, or as the body of a transcription), an
    int (returned as an error status) or an exception instance (raised).
    """

    def __init__(self):
        self.responses = []
        self.requests: list[httpx.Request] = []

    def queue(self, *responses):
        self.responses.extend(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            return httpx.Response(500, json={"error": "no response queued"})

        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, int):
            return httpx.Response(response, json={"error": "failed"})
        if request.url.path.endswith("/audio/transcriptions"):
            return httpx.Response(200, text=response)

        content = json.dumps(response) if isinstance(response, dict) else response
        return httpx.Response(
            200, json={"choices": [{"message": {"role": "assistant", "content": content}}]}
        )

    def request_json(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


@pytest.fixture
def fixed_time():
    """Provide a fixed time for testing."""
    return Instant.from_utc(2025, 1, 1, 12, 0, 0)


@pytest.fixture
def temp_db(fixed_time):
    """Create a temporary database for testing."""
    db = Database(":memory:", now_func=lambda: fixed_time)
    yield db


@pytest.fixture
def user(temp_db):
    """Create a user with no folders."""
    return temp_db.create_user("reader@example.com", hash_password("password123"), name="Reader")


@pytest.fixture
def fake_openai():
    return FakeOpenAI()


@pytest.fixture
def llm(fake_openai):
    """LLM client whose HTTP calls are answered by fake_openai."""
    client = httpx.Client(transport=httpx.MockTransport(fake_openai.handler))
    llm = LLMClient(api_key="test-key", base_url="https://llm.test/v1", client=client)
    yield llm
    llm.close()
