"""Tests for agent failure classification and recovery policy."""

import asyncio

import pytest

from quorum.src.error_handler import (
    ABORT_SUGGESTIONS,
    CATEGORY_SUGGESTIONS,
    ConsensusErrorHandler,
    format_suggestions,
)
from quorum.src.errors import AgentInvocationError
from quorum.src.models import (
    AgentErrorAction,
    ConsensusFailureAction,
    ConsensusFailureReason,
    ConsensusSettings,
    CouncilSettings,
    ErrorCategory,
    ErrorContext,
    RetryConfig,
)


def context(retry_count=0, total=3, successful=1, required=2, agent_id="gemini"):
    return ErrorContext(
        agent_id=agent_id,
        retry_count=retry_count,
        total_agents=total,
        successful_agents=successful,
        min_agents_required=required,
    )


@pytest.fixture
def handler():
    return ConsensusErrorHandler()


class TestCategorizeError:
    """Tests for keyword classification."""

    @pytest.mark.parametrize("error,category", [
        (Exception("read ECONNRESET"), ErrorCategory.NETWORK),
        (Exception("Request timeout"), ErrorCategory.NETWORK),
        (Exception("fetch failed"), ErrorCategory.NETWORK),
        (Exception("429 Too Many Requests"), ErrorCategory.RATE_LIMIT),
        (Exception("Rate limit exceeded"), ErrorCategory.RATE_LIMIT),
        (Exception("401 Unauthorized"), ErrorCategory.AUTHENTICATION),
        (Exception("Missing API key"), ErrorCategory.AUTHENTICATION),
        (Exception("Invalid model name"), ErrorCategory.VALIDATION),
        (Exception("400 Bad Request"), ErrorCategory.VALIDATION),
        (Exception("Unexpected token < in response"), ErrorCategory.PARSE_ERROR),
        (Exception("503 Service Unavailable"), ErrorCategory.SERVICE_UNAVAILABLE),
        (Exception("Bad gateway"), ErrorCategory.SERVICE_UNAVAILABLE),
        (RuntimeError("boom"), ErrorCategory.UNKNOWN),
    ])
    def test_keywords(self, handler, error, category):
        assert handler.categorize_error(error) == category

    def test_first_matching_category_wins(self, handler):
        error = Exception("Network error: invalid response")
        assert handler.categorize_error(error) == ErrorCategory.NETWORK

    def test_case_insensitive(self, handler):
        assert handler.categorize_error(Exception("RATE LIMIT")) == ErrorCategory.RATE_LIMIT

    def test_only_message_is_inspected(self, handler):
        class ConnectionTimeoutJsonError(Exception):
            pass

        assert handler.categorize_error(ConnectionTimeoutJsonError("boom")) == ErrorCategory.UNKNOWN
        assert handler.categorize_error(asyncio.TimeoutError()) == ErrorCategory.UNKNOWN

    def test_class_name_does_not_override_message(self, handler):
        class ConnectionPoolFailure(Exception):
            pass

        error = ConnectionPoolFailure("401 Unauthorized")
        assert handler.categorize_error(error) == ErrorCategory.AUTHENTICATION

    def test_timeout_message_is_network(self, handler):
        error = AgentInvocationError("gemini", "Request timeout after 60.0s")
        assert handler.categorize_error(error) == ErrorCategory.NETWORK

    def test_json_message_is_parse(self, handler):
        assert handler.categorize_error(ValueError("Invalid JSON body")) == ErrorCategory.VALIDATION
        assert handler.categorize_error(ValueError("Could not parse JSON")) == ErrorCategory.PARSE_ERROR

    def test_connection_is_not_a_network_keyword(self, handler):
        error = RuntimeError("Invalid API key for this connection")
        assert handler.categorize_error(error) == ErrorCategory.AUTHENTICATION

        decision = handler.handle_agent_error(error, context())
        assert decision.action == AgentErrorAction.SKIP

    def test_agent_invocation_error_uses_message(self, handler):
        error = AgentInvocationError("gemini", "rate limited: try later")
        assert handler.categorize_error(error) == ErrorCategory.RATE_LIMIT


class TestBackoff:
    """Tests for exponential backoff."""

    @pytest.mark.parametrize("retry_count,delay", [(0, 1.0), (1, 2.0), (2, 4.0), (3, 8.0), (4, 10.0)])
    def test_default_schedule(self, handler, retry_count, delay):
        assert handler.calculate_backoff_delay(retry_count) == delay

    def test_custom_config(self):
        handler = ConsensusErrorHandler(RetryConfig(
            base_delay_seconds=0.5,
            max_delay_seconds=3.0,
            backoff_multiplier=3.0,
        ))
        assert handler.calculate_backoff_delay(0) == 0.5
        assert handler.calculate_backoff_delay(1) == 1.5
        assert handler.calculate_backoff_delay(2) == 3.0


class TestHandleAgentError:
    """Tests for the retry / skip / abort decision."""

    def test_retryable_error_is_retried(self, handler):
        result = handler.handle_agent_error(Exception("Connection refused"), context())

        assert result.action == AgentErrorAction.RETRY
        assert result.category == ErrorCategory.NETWORK
        assert result.retry_delay_seconds == 1.0
        assert result.user_message == (
            "Model gemini encountered a network error. Retrying in 1s..."
        )
        assert result.technical_details == "Connection refused"
        assert result.suggestions == CATEGORY_SUGGESTIONS[ErrorCategory.NETWORK]

    def test_retry_message_uses_backoff(self, handler):
        result = handler.handle_agent_error(Exception("503"), context(retry_count=1))
        assert result.retry_delay_seconds == 2.0
        assert "Retrying in 2s" in result.user_message

    def test_exhausted_retries_never_retry(self, handler):
        result = handler.handle_agent_error(Exception("network down"), context(retry_count=2))
        assert result.action != AgentErrorAction.RETRY

    def test_exhausted_retries_skip_when_quorum_possible(self, handler):
        result = handler.handle_agent_error(Exception("network down"), context(retry_count=2))

        assert result.action == AgentErrorAction.SKIP
        assert result.retry_delay_seconds is None
        assert result.user_message == (
            "Model gemini failed (network). Continuing with remaining models..."
        )

    def test_non_retryable_skips_immediately(self, handler):
        result = handler.handle_agent_error(Exception("401 Unauthorized"), context())
        assert result.action == AgentErrorAction.SKIP
        assert result.category == ErrorCategory.AUTHENTICATION

    def test_abort_when_quorum_unreachable(self, handler):
        result = handler.handle_agent_error(
            Exception("Invalid API key"),
            context(total=2, successful=0, required=2),
        )

        assert result.action == AgentErrorAction.ABORT
        assert result.user_message == (
            "Model gemini failed and insufficient models remain for consensus. Aborting."
        )
        assert result.suggestions[:2] == ABORT_SUGGESTIONS
        assert result.suggestions[2:] == CATEGORY_SUGGESTIONS[ErrorCategory.AUTHENTICATION]

    def test_abort_boundary(self, handler):
        # 0 successes + 2 remaining agents < 3 required
        result = handler.handle_agent_error(
            Exception("boom"),
            context(total=3, successful=0, required=3),
        )
        assert result.action == AgentErrorAction.ABORT

        result = handler.handle_agent_error(
            Exception("boom"),
            context(total=2, successful=1, required=2),
        )
        assert result.action == AgentErrorAction.SKIP

    def test_retry_wins_over_abort(self, handler):
        result = handler.handle_agent_error(
            Exception("timeout"),
            context(total=1, successful=0, required=2),
        )
        assert result.action == AgentErrorAction.RETRY

    def test_to_dict(self, handler):
        data = handler.handle_agent_error(Exception("429"), context()).to_dict()
        assert data["action"] == "retry"
        assert data["category"] == "rate_limit"
        assert data["retry_delay_seconds"] == 1.0


class TestResolveConsensusFailure:
    """Tests for the consensus failure decision table."""

    @pytest.fixture
    def settings(self):
        return ConsensusSettings(min_models_required=2, fallback_to_single_model=True)

    @pytest.fixture
    def strict_settings(self):
        return ConsensusSettings(min_models_required=2, fallback_to_single_model=False)

    def test_insufficient_agents_falls_back(self, handler, settings):
        action = handler.resolve_consensus_failure(
            ConsensusFailureReason.INSUFFICIENT_AGENTS, settings, 1
        )
        assert action == ConsensusFailureAction.FALLBACK_SINGLE_AGENT

    def test_insufficient_agents_none_available(self, handler, settings):
        action = handler.resolve_consensus_failure(
            ConsensusFailureReason.INSUFFICIENT_AGENTS, settings, 0
        )
        assert action == ConsensusFailureAction.ABORT

    def test_insufficient_agents_without_fallback(self, handler, strict_settings):
        action = handler.resolve_consensus_failure(
            ConsensusFailureReason.INSUFFICIENT_AGENTS, strict_settings, 1
        )
        assert action == ConsensusFailureAction.ABORT

    @pytest.mark.parametrize("reason", [
        ConsensusFailureReason.MAX_ITERATIONS_EXCEEDED,
        ConsensusFailureReason.VALIDATION_FAILURE,
    ])
    def test_partial_when_quorum_met(self, handler, strict_settings, reason):
        action = handler.resolve_consensus_failure(reason, strict_settings, 2)
        assert action == ConsensusFailureAction.NOTIFY_PARTIAL

    @pytest.mark.parametrize("reason", [
        ConsensusFailureReason.MAX_ITERATIONS_EXCEEDED,
        ConsensusFailureReason.VALIDATION_FAILURE,
    ])
    def test_fallback_below_quorum(self, handler, settings, strict_settings, reason):
        assert handler.resolve_consensus_failure(reason, settings, 1) == (
            ConsensusFailureAction.FALLBACK_SINGLE_AGENT
        )
        assert handler.resolve_consensus_failure(reason, strict_settings, 1) == (
            ConsensusFailureAction.ABORT
        )

    def test_circular_reasoning_is_partial(self, handler, strict_settings):
        action = handler.resolve_consensus_failure(
            ConsensusFailureReason.CIRCULAR_REASONING, strict_settings, 0
        )
        assert action == ConsensusFailureAction.NOTIFY_PARTIAL

    def test_all_agents_failed_aborts(self, handler, settings):
        action = handler.resolve_consensus_failure(
            ConsensusFailureReason.ALL_AGENTS_FAILED, settings, 3
        )
        assert action == ConsensusFailureAction.ABORT

    def test_accepts_council_settings(self, handler):
        settings = CouncilSettings(min_models_required=3, fallback_to_single_model=True)
        action = handler.resolve_consensus_failure(
            ConsensusFailureReason.MAX_ITERATIONS_EXCEEDED, settings, 2
        )
        assert action == ConsensusFailureAction.FALLBACK_SINGLE_AGENT


class TestFallbackAndMessages:
    """Tests for fallback checks, failure messages and suggestions."""

    def test_should_fallback(self, handler):
        settings = ConsensusSettings(min_models_required=3, fallback_to_single_model=True)
        assert handler.should_fallback(1, settings)
        assert handler.should_fallback(2, settings)
        assert not handler.should_fallback(0, settings)
        assert not handler.should_fallback(3, settings)

    def test_should_fallback_disabled(self, handler):
        settings = ConsensusSettings(min_models_required=3, fallback_to_single_model=False)
        assert not handler.should_fallback(1, settings)

    def test_insufficient_message(self, handler):
        message = handler.get_consensus_failure_message(
            ConsensusFailureReason.INSUFFICIENT_AGENTS, 1, 3
        )
        assert message == (
            "Consensus failed: Only 1 of 3 required models responded successfully."
        )

    def test_every_reason_has_message(self, handler):
        for reason in ConsensusFailureReason:
            assert handler.get_consensus_failure_message(reason, 0, 2)

    def test_every_category_has_suggestions(self, handler):
        for category in ErrorCategory:
            assert handler.get_suggestions_for_category(category)

    def test_format_suggestions_dedupes_in_order(self):
        assert format_suggestions(["a", "b"], ["b", "c", "a"]) == ["a", "b", "c"]
