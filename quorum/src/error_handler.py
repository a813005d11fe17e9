"""
Consensus Error Handler - Failure policy for multi-agent runs.

Two levels:
- Per agent: classify the failure, then retry, skip the agent, or abort
  the whole run when quorum can no longer be reached.
- Per run: map a consensus failure reason to a recovery action.
"""

from typing import Iterable, Optional, Union

from shared.logging import get_logger

from .models import (
    RETRYABLE_CATEGORIES,
    AgentErrorAction,
    ConsensusFailureAction,
    ConsensusFailureReason,
    ConsensusSettings,
    CouncilSettings,
    ErrorCategory,
    ErrorContext,
    ErrorHandlingResult,
    RetryConfig,
)

log = get_logger("quorum", "error_handler")

Settings = Union[ConsensusSettings, CouncilSettings]

# Checked in order; first category with a matching keyword wins
CATEGORY_KEYWORDS: tuple[tuple[ErrorCategory, tuple[str, ...]], ...] = (
    (ErrorCategory.NETWORK, (
        "network", "timeout", "econnreset", "enotfound", "econnrefused",
        "fetch failed", "socket hang up",
    )),
    (ErrorCategory.RATE_LIMIT, ("rate limit", "too many requests", "429")),
    (ErrorCategory.AUTHENTICATION, (
        "unauthorized", "api key", "authentication", "401", "403",
    )),
    (ErrorCategory.VALIDATION, ("invalid", "validation", "bad request", "400")),
    (ErrorCategory.PARSE_ERROR, ("json", "parse", "syntax", "unexpected")),
    (ErrorCategory.SERVICE_UNAVAILABLE, (
        "503", "502", "504", "service unavailable", "gateway",
    )),
)

CATEGORY_SUGGESTIONS: dict[ErrorCategory, list[str]] = {
    ErrorCategory.NETWORK: [
        "Check your internet connection",
        "Verify the API endpoint is accessible",
        "Check if firewall is blocking requests",
    ],
    ErrorCategory.RATE_LIMIT: [
        "Wait a few minutes and try again",
        "Reduce the number of parallel models",
        "Upgrade your API plan if available",
    ],
    ErrorCategory.AUTHENTICATION: [
        "Verify your API key is correct",
        "Check if your API key has expired",
        "Ensure API key has necessary permissions",
    ],
    ErrorCategory.VALIDATION: [
        "Check your model configuration",
        "Verify the model name is correct",
        "Review your request parameters",
    ],
    ErrorCategory.PARSE_ERROR: [
        "Try again - LLM responses can vary",
        "Try with simpler source content",
        "Reduce the number of questions requested",
    ],
    ErrorCategory.SERVICE_UNAVAILABLE: [
        "The AI service is temporarily unavailable",
        "Try again in a few minutes",
        "Check the provider's status page",
    ],
    ErrorCategory.UNKNOWN: [
        "Try again",
        "Check the console for more details",
        "Report this issue if it persists",
    ],
}

ABORT_SUGGESTIONS = [
    "Enable fallback to single-model generation in settings",
    "Configure additional models for consensus",
]


def format_suggestions(*groups: Iterable[str]) -> list[str]:
    """Concatenate suggestion lists, dropping repeats, keeping first-seen order."""
    return list(dict.fromkeys(s for group in groups for s in group))


class ConsensusErrorHandler:
    """
    Decides what to do when an agent or a whole consensus run fails.

    Stateless apart from its retry configuration, so one instance can be
    shared across concurrent runs.
    """

    def __init__(self, retry_config: Optional[RetryConfig] = None):
        self.retry_config = retry_config or RetryConfig()

    def categorize_error(self, error: BaseException) -> ErrorCategory:
        """
        Classify a failure by keyword inspection of its message.

        Only the message is read. Callers that catch message-less errors
        (e.g. asyncio.TimeoutError) wrap them in one that has a message.
        """
        text = str(error).lower()
        for category, keywords in CATEGORY_KEYWORDS:
            if any(keyword in text for keyword in keywords):
                return category
        return ErrorCategory.UNKNOWN

    def calculate_backoff_delay(self, retry_count: int) -> float:
        """Exponential backoff in seconds, capped at max_delay_seconds."""
        cfg = self.retry_config
        delay = cfg.base_delay_seconds * (cfg.backoff_multiplier ** retry_count)
        return min(delay, cfg.max_delay_seconds)

    def get_suggestions_for_category(self, category: ErrorCategory) -> list[str]:
        return list(CATEGORY_SUGGESTIONS.get(category, CATEGORY_SUGGESTIONS[ErrorCategory.UNKNOWN]))

    def handle_agent_error(self, error: BaseException, context: ErrorContext) -> ErrorHandlingResult:
        """
        Decide RETRY, SKIP or ABORT for one failed agent call.

        - RETRY: retryable category and retries remain
        - ABORT: even if every other agent succeeds, quorum is out of reach
        - SKIP: everything else

        Args:
            error: The failure raised by the agent call
            context: Situation at the time of failure

        Returns:
            ErrorHandlingResult with a user message and suggestions
        """
        category = self.categorize_error(error)
        details = str(error) or type(error).__name__
        suggestions = self.get_suggestions_for_category(category)

        if category in RETRYABLE_CATEGORIES and context.retry_count < self.retry_config.max_retries:
            delay = self.calculate_backoff_delay(context.retry_count)
            log.info(
                "quorum.agent.retry",
                agent=context.agent_id,
                category=category.value,
                retry_count=context.retry_count,
                delay=delay,
            )
            return ErrorHandlingResult(
                action=AgentErrorAction.RETRY,
                category=category,
                user_message=(
                    f"Model {context.agent_id} encountered a {category.value} error. "
                    f"Retrying in {round(delay)}s..."
                ),
                technical_details=details,
                suggestions=suggestions,
                retry_delay_seconds=delay,
            )

        # Best case: this agent is dropped and every other agent succeeds
        best_case = context.successful_agents + (context.total_agents - 1)
        if best_case < context.min_agents_required:
            log.error(
                "quorum.agent.abort",
                agent=context.agent_id,
                category=category.value,
                best_case=best_case,
                required=context.min_agents_required,
            )
            return ErrorHandlingResult(
                action=AgentErrorAction.ABORT,
                category=category,
                user_message=(
                    f"Model {context.agent_id} failed and insufficient models "
                    f"remain for consensus. Aborting."
                ),
                technical_details=details,
                suggestions=format_suggestions(ABORT_SUGGESTIONS, suggestions),
            )

        log.warning(
            "quorum.agent.skip",
            agent=context.agent_id,
            category=category.value,
            error=details[:200],
        )
        return ErrorHandlingResult(
            action=AgentErrorAction.SKIP,
            category=category,
            user_message=(
                f"Model {context.agent_id} failed ({category.value}). "
                f"Continuing with remaining models..."
            ),
            technical_details=details,
            suggestions=suggestions,
        )

    def resolve_consensus_failure(
        self,
        reason: ConsensusFailureReason,
        settings: Settings,
        available_agents: int,
    ) -> ConsensusFailureAction:
        """
        Map a run-level failure to a recovery action.

        Args:
            reason: Why consensus failed
            settings: Consensus or council settings (fallback flag, quorum size)
            available_agents: Agents that responded successfully

        Returns:
            ConsensusFailureAction
        """
        can_fallback = settings.fallback_to_single_model and available_agents > 0
        has_quorum = available_agents >= settings.min_models_required

        if reason == ConsensusFailureReason.INSUFFICIENT_AGENTS:
            action = (
                ConsensusFailureAction.FALLBACK_SINGLE_AGENT if can_fallback
                else ConsensusFailureAction.ABORT
            )
        elif reason in (
            ConsensusFailureReason.MAX_ITERATIONS_EXCEEDED,
            ConsensusFailureReason.VALIDATION_FAILURE,
        ):
            if has_quorum:
                action = ConsensusFailureAction.NOTIFY_PARTIAL
            elif can_fallback:
                action = ConsensusFailureAction.FALLBACK_SINGLE_AGENT
            else:
                action = ConsensusFailureAction.ABORT
        elif reason == ConsensusFailureReason.CIRCULAR_REASONING:
            action = ConsensusFailureAction.NOTIFY_PARTIAL
        else:
            action = ConsensusFailureAction.ABORT

        log.info(
            "quorum.failure.resolved",
            reason=reason.value,
            available=available_agents,
            action=action.value,
        )
        return action

    def should_fallback(self, available_agents: int, settings: Settings) -> bool:
        """Fallback applies only with some, but too few, successful agents."""
        return (
            settings.fallback_to_single_model
            and 0 < available_agents < settings.min_models_required
        )

    def get_consensus_failure_message(
        self,
        reason: ConsensusFailureReason,
        available_agents: int,
        required_agents: int,
    ) -> str:
        if reason == ConsensusFailureReason.INSUFFICIENT_AGENTS:
            return (
                f"Consensus failed: Only {available_agents} of {required_agents} "
                f"required models responded successfully."
            )
        if reason == ConsensusFailureReason.MAX_ITERATIONS_EXCEEDED:
            return (
                "Consensus failed: Maximum iterations reached without agreement. "
                "Models could not agree on some answers."
            )
        if reason == ConsensusFailureReason.CIRCULAR_REASONING:
            return (
                "Consensus failed: Circular reasoning detected. "
                "Models are oscillating between different answers."
            )
        if reason == ConsensusFailureReason.ALL_AGENTS_FAILED:
            return "Consensus failed: All configured models encountered errors."
        if reason == ConsensusFailureReason.VALIDATION_FAILURE:
            return (
                "Source validation failed: Could not verify source material "
                "through multiple models."
            )
        return "Consensus failed: An unexpected error occurred."
