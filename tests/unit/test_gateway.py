"""
Tests for the provider gateway.

The gateway makes one attempt per call and owns the provider status state
machine: unconfigured, available, and quota_exceeded with a cool-down.
"""

import asyncio
from datetime import timedelta

import pytest
from farmadvisor.gateway import (
    Gateway,
    ProviderFailure,
    ProviderUnavailable,
    QuotaExceeded,
)
from farmadvisor.models import ASSISTANT_ROLE, SYSTEM_ROLE, USER_ROLE, ChatMessage
from farmadvisor.prompts import SYSTEM_PROMPT


class RateLimited(Exception):
    status_code = 429


@pytest.fixture
def rate_limited_llm(mock_llm):
    mock_llm.generate_response.side_effect = RateLimited("429 quota exceeded")
    mock_llm.is_rate_limit_error.side_effect = lambda e: getattr(e, "status_code", None) == 429
    return mock_llm


class TestStatus:
    def test_unconfigured_without_llm(self):
        gateway = Gateway(None)
        assert gateway.status.state == "unconfigured"
        with pytest.raises(ProviderUnavailable):
            asyncio.run(gateway.ask("hi", ""))

    def test_available_with_llm(self, mock_llm):
        assert Gateway(mock_llm).status.available


class TestAsk:
    def test_success(self, mock_llm):
        gateway = Gateway(mock_llm, max_tokens=800, temperature=0.7)
        response = asyncio.run(gateway.ask("Should I water?", "CURRENT FARM DATA:"))
        assert response.content.startswith("Here is my advice:")
        assert response.suggested_actions == ["Irrigate in the morning", "Mulch the beds"]
        assert response.confidence == 0.9
        mock_llm.generate_response.assert_awaited_once()
        kwargs = mock_llm.generate_response.await_args.kwargs
        assert kwargs == {"max_tokens": 800, "temperature": 0.7}

    def test_transient_failure_leaves_status(self, mock_llm):
        mock_llm.generate_response.side_effect = ConnectionError("network down")
        gateway = Gateway(mock_llm)
        with pytest.raises(ProviderFailure) as exc_info:
            asyncio.run(gateway.ask("hi", ""))
        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert gateway.status.available

    def test_empty_completion_is_a_failure(self, mock_llm):
        mock_llm.extract_content.return_value = "   "
        with pytest.raises(ProviderFailure):
            asyncio.run(Gateway(mock_llm).ask("hi", ""))

    def test_malformed_response_is_a_failure(self, mock_llm):
        mock_llm.extract_content.side_effect = KeyError("choices")
        with pytest.raises(ProviderFailure):
            asyncio.run(Gateway(mock_llm).ask("hi", ""))


class TestQuotaCooldown:
    def test_cooldown_short_circuits_then_recovers(self, rate_limited_llm, clock):
        """After a rate limit no call is made until the cool-down elapses."""
        gateway = Gateway(rate_limited_llm, cooldown=timedelta(minutes=5), clock=clock)

        with pytest.raises(QuotaExceeded) as exc_info:
            asyncio.run(gateway.ask("hi", ""))
        assert exc_info.value.reset_at == clock() + timedelta(minutes=5)
        assert gateway.status.state == "quota_exceeded"
        assert rate_limited_llm.generate_response.await_count == 1

        clock.advance(minutes=4)
        with pytest.raises(QuotaExceeded):
            asyncio.run(gateway.ask("hi", ""))
        assert rate_limited_llm.generate_response.await_count == 1

        clock.advance(minutes=2)
        rate_limited_llm.generate_response.side_effect = None
        assert gateway.status.available
        asyncio.run(gateway.ask("hi", ""))
        assert rate_limited_llm.generate_response.await_count == 2


class TestBuildMessages:
    def test_system_context_history_and_message(self, mock_llm):
        gateway = Gateway(mock_llm, prompt_history=2)
        history = [
            ChatMessage(role=SYSTEM_ROLE, content="pinned persona"),
            ChatMessage(role=USER_ROLE, content="one"),
            ChatMessage(role=ASSISTANT_ROLE, content="two"),
            ChatMessage(role=USER_ROLE, content="three"),
        ]
        messages = gateway.build_messages("four", "FARM CONTEXT", history)
        assert messages[0] == {"role": "system", "content": "pinned persona\n\nFARM CONTEXT"}
        assert [m["content"] for m in messages[1:]] == ["two", "three", "four"]

    def test_default_persona(self, mock_llm):
        messages = Gateway(mock_llm).build_messages("hi", "", [])
        assert messages == [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": "hi"},
        ]

    def test_zero_prompt_history(self, mock_llm, sample_messages):
        messages = Gateway(mock_llm, prompt_history=0).build_messages("hi", "", sample_messages)
        assert len(messages) == 2
