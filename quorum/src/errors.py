"""Exceptions raised by Quorum components."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ErrorHandlingResult


class QuorumError(Exception):
    """Base class for Quorum errors."""
    pass


class NoAgentsConfiguredError(QuorumError):
    """Raised when validation is requested with no agents to ask."""
    pass


class AgentInvocationError(QuorumError):
    """A single agent call failed. The message is what gets classified."""

    def __init__(self, agent_id: str, message: str):
        super().__init__(message)
        self.agent_id = agent_id


class ConsensusAbortError(QuorumError):
    """Raised when too few agents remain for consensus to be possible."""

    def __init__(self, decision: "ErrorHandlingResult"):
        super().__init__(decision.user_message)
        self.decision = decision


class CachePersistenceError(QuorumError):
    """Raised when the cache cannot be written to its store."""
    pass
