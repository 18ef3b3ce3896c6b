"""Pytest fixtures for llamacpp-cli tests."""

import json
import os
from typing import Any

import pytest

# Keep test runs independent of a developer's .env / environment
os.environ["LLAMACPP_CLI_SERVER"] = "localhost"
os.environ["LLAMACPP_CLI_PORT"] = "8000"

from llamacpp_cli.config import ClientSettings
from llamacpp_cli.transport import TransportError

SAMPLE_RESPONSE = """{
    "id": "cmpl-555e840b-6921-44e8-9f6f-ab9fcd859624",
    "object": "text_completion",
    "created": 1714891381,
    "model": "gpt2",
    "choices": [
        {
            "text": "好",
            "index": 0,
            "logprobs": null,
            "finish_reason": "stop"
        }
    ],
    "usage": {
        "prompt_tokens": 12,
        "completion_tokens": 1,
        "total_tokens": 13
    }
}"""


def completion_body(text: str) -> bytes:
    """Build a minimal completion response body."""
    return json.dumps({"choices": [{"text": text, "index": 0}]}).encode()


class FakeTransport:
    """Scripted transport.

    Each entry of outcomes is either bytes (returned as the body) or an
    exception (raised). The last entry repeats once the script runs out.
    """

    def __init__(self, *outcomes: bytes | Exception):
        self.outcomes = list(outcomes) or [SAMPLE_RESPONSE.encode()]
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def post(self, url: str, body: dict[str, Any]) -> bytes:
        self.calls.append((url, body))
        index = min(len(self.calls), len(self.outcomes)) - 1
        outcome = self.outcomes[index]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def sample_response() -> bytes:
    return SAMPLE_RESPONSE.encode()


@pytest.fixture
def settings(tmp_path) -> ClientSettings:
    """Settings with no retry delay and logs kept in the test directory."""
    return ClientSettings(
        server="backend",
        port=8000,
        endpoint="v1/completions",
        model="gemma-2b-it",
        retry_delay_seconds=0.0,
        log_dir=tmp_path / "logs",
        _env_file=None,
    )


@pytest.fixture
def connection_error() -> TransportError:
    return TransportError("Request to http://backend:8000/v1/completions failed: ConnectError")
