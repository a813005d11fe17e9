"""Shared fixtures for Quorum tests."""

import asyncio
import json
from typing import Optional

import pytest

from quorum.src.cache import MemoryStore, ResultCache
from quorum.src.error_handler import ConsensusErrorHandler
from quorum.src.models import RetryConfig

PARIS_SOURCE = "Paris is the capital of France. The Eiffel Tower is 330m tall."
PARIS_FACT = "Paris is the capital of France"


class FakeAgent:
    """Agent that replays scripted replies. Exceptions in the script are raised."""

    def __init__(self, agent_id: str, replies: list, delay: float = 0.0):
        self.agent_id = agent_id
        self.replies = list(replies)
        self.delay = delay
        self.calls = 0

    async def send(self, prompt: str) -> str:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        reply = self.replies[min(self.calls - 1, len(self.replies) - 1)]
        if isinstance(reply, BaseException):
            raise reply
        return reply


def extraction_json(
    facts: list,
    citations: Optional[list] = None,
    confidence: float = 0.9,
) -> str:
    """Serialize an extraction response the way an agent would send it."""
    return json.dumps({
        "facts": facts,
        "citations": citations or [],
        "confidence": confidence,
    })


def paris_reply(end: int = 30, confidence: float = 0.9) -> str:
    return extraction_json(
        [PARIS_FACT],
        [{
            "start": 0,
            "end": end,
            "text": PARIS_SOURCE[:end],
            "supportsFact": PARIS_FACT,
        }],
        confidence,
    )


@pytest.fixture
def paris_source():
    return PARIS_SOURCE


@pytest.fixture
def no_delay_handler():
    """Error handler whose backoff is always zero seconds."""
    return ConsensusErrorHandler(RetryConfig(base_delay_seconds=0.0, max_delay_seconds=0.0))


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def cache(memory_store):
    cache = ResultCache(memory_store)
    cache.initialize()
    return cache


@pytest.fixture
def consensus_result():
    """Minimal payload that passes the consensus result shape check."""
    return {
        "quiz": {"questions": [{"question": "Capital of France?", "answer": "Paris"}]},
        "audit_trail": {"rounds": 1},
        "success": True,
    }


@pytest.fixture
def council_result():
    """Minimal payload that passes the council result shape check."""
    return {
        "quiz": {"questions": []},
        "debate_trail": {"phases": []},
        "success": True,
    }


@pytest.fixture
def sample_config(tmp_path):
    """Configuration mirroring config.yaml, with the cache under tmp_path."""
    return {
        "similarity": {"fact_threshold": 0.7},
        "retry": {
            "max_retries": 3,
            "base_delay_seconds": 0.5,
            "max_delay_seconds": 4.0,
            "backoff_multiplier": 3.0,
        },
        "consensus": {
            "enabled": True,
            "min_models_required": 2,
            "timeout_seconds": 15,
            "agents": [
                {"agent_id": "gemini"},
                {"agent_id": "chatgpt"},
                {"agent_id": "claude", "enabled": False},
            ],
        },
        "cache": {"path": str(tmp_path / "cache.json"), "ttl_seconds": 120},
        "pool": {"url": "http://pool:9000/"},
    }
