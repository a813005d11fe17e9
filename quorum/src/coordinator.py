"""
Model Coordinator - Sends one prompt to every agent concurrently.

Each agent call gets its own timeout, so a slow agent never holds back
the others. Failures are routed through ConsensusErrorHandler, which
decides whether to back off and retry, drop the agent, or give up on
quorum. All calls settle before invoke_all returns.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

import aiohttp

from shared.logging import get_logger

from .error_handler import ConsensusErrorHandler
from .errors import AgentInvocationError
from .models import AgentErrorAction, ErrorContext, ErrorHandlingResult

log = get_logger("quorum", "coordinator")

DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_POOL_URL = "http://127.0.0.1:9000"


class Agent(Protocol):
    """Anything that can answer a prompt with text."""
    agent_id: str

    async def send(self, prompt: str) -> str: ...


@dataclass
class AgentResponse:
    """Settled outcome of one agent's call (after any retries)."""
    agent_id: str
    raw_text: Optional[str]
    success: bool
    error: Optional[str] = None
    attempts: int = 1
    decision: Optional[ErrorHandlingResult] = None  # Set when the agent failed

    @property
    def aborted(self) -> bool:
        return self.decision is not None and self.decision.action == AgentErrorAction.ABORT


class PoolAgent:
    """
    Agent backed by the pool service's /send endpoint.

    Raises AgentInvocationError on transport errors, error responses and
    empty text. The message names the failure so it can be classified.
    """

    def __init__(
        self,
        backend: str,
        pool_url: str = DEFAULT_POOL_URL,
        session: Optional[aiohttp.ClientSession] = None,
        agent_id: Optional[str] = None,
        deep_mode: bool = False,
        timeout_seconds: int = int(DEFAULT_TIMEOUT_SECONDS),
    ):
        self.backend = backend
        self.agent_id = agent_id or backend
        self.pool_url = pool_url.rstrip("/")
        self.deep_mode = deep_mode
        self.timeout_seconds = timeout_seconds
        self._http_session = session
        self._owns_session = session is None

    async def _get_http_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session for pool calls."""
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession()
            self._owns_session = True
        return self._http_session

    async def close(self):
        """Close the HTTP session if this agent created it."""
        if self._owns_session and self._http_session and not self._http_session.closed:
            await self._http_session.close()
            self._http_session = None

    async def send(self, prompt: str) -> str:
        request_data = {
            "backend": self.backend,
            "prompt": prompt,
            "options": {
                "deep_mode": self.deep_mode,
                "new_chat": True,
                "timeout_seconds": self.timeout_seconds,
                "priority": "normal",
            },
        }

        try:
            session = await self._get_http_session()
            async with session.post(
                f"{self.pool_url}/send",
                json=request_data,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds + 30),
            ) as resp:
                if resp.status >= 400:
                    raise AgentInvocationError(
                        self.agent_id, f"Pool returned status {resp.status}"
                    )
                data = await resp.json()
        except aiohttp.ClientError as e:
            log.error("quorum.pool.request_failed", backend=self.backend, error=str(e))
            raise AgentInvocationError(self.agent_id, f"Network error contacting pool: {e}") from e

        if not data.get("success", False):
            error = (data.get("error") or "unknown").replace("_", " ")
            message = data.get("message") or ""
            raise AgentInvocationError(self.agent_id, f"{error}: {message}".strip(": "))

        text = data.get("response")
        if not text:
            raise AgentInvocationError(self.agent_id, "Empty response from pool")
        return text


class _RunState:
    """Mutable tally shared by the concurrent calls of one invoke_all."""

    def __init__(self, total_agents: int):
        self.total_agents = total_agents
        self.successful_agents = 0


class ModelCoordinator:
    """
    Fans a prompt out to agents in parallel.

    Usage:
        coordinator = ModelCoordinator([PoolAgent("gemini"), PoolAgent("chatgpt")])
        responses = await coordinator.invoke_all(prompt, timeout=60)
    """

    def __init__(
        self,
        agents: Sequence[Agent],
        error_handler: Optional[ConsensusErrorHandler] = None,
        min_agents_required: int = 1,
    ):
        self.agents = list(agents)
        self.error_handler = error_handler or ConsensusErrorHandler()
        self.min_agents_required = min_agents_required

    @property
    def enabled_agent_count(self) -> int:
        return len(self.agents)

    async def invoke_all(
        self,
        prompt: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        continue_on_error: bool = True,
    ) -> list[AgentResponse]:
        """
        Send the prompt to every agent and wait for all of them to settle.

        Args:
            prompt: Prompt text
            timeout: Seconds allowed per call attempt
            continue_on_error: If False, raise for the first failed agent
                once every call has settled

        Returns:
            One AgentResponse per agent, in agent order
        """
        state = _RunState(total_agents=len(self.agents))
        results = await asyncio.gather(
            *(self._invoke_agent(agent, prompt, timeout, state) for agent in self.agents),
            return_exceptions=True,
        )

        responses = []
        for agent, result in zip(self.agents, results):
            if isinstance(result, BaseException):
                responses.append(AgentResponse(
                    agent_id=agent.agent_id,
                    raw_text=None,
                    success=False,
                    error=str(result),
                ))
            else:
                responses.append(result)

        succeeded = sum(1 for r in responses if r.success)
        log.info(
            "quorum.coordinator.settled",
            agents=len(responses),
            succeeded=succeeded,
            failed=len(responses) - succeeded,
        )

        if not continue_on_error:
            for response in responses:
                if not response.success:
                    raise AgentInvocationError(response.agent_id, response.error or "Agent failed")

        return responses

    async def _invoke_agent(
        self,
        agent: Agent,
        prompt: str,
        timeout: float,
        state: _RunState,
    ) -> AgentResponse:
        retry_count = 0
        while True:
            try:
                text = await asyncio.wait_for(agent.send(prompt), timeout=timeout)
                state.successful_agents += 1
                return AgentResponse(
                    agent_id=agent.agent_id,
                    raw_text=text,
                    success=True,
                    attempts=retry_count + 1,
                )
            except asyncio.TimeoutError:
                error: Exception = AgentInvocationError(
                    agent.agent_id, f"Request timeout after {timeout}s"
                )
            except Exception as e:
                error = e

            decision = self.error_handler.handle_agent_error(error, ErrorContext(
                agent_id=agent.agent_id,
                retry_count=retry_count,
                total_agents=state.total_agents,
                successful_agents=state.successful_agents,
                min_agents_required=self.min_agents_required,
            ))

            if decision.action == AgentErrorAction.RETRY:
                retry_count += 1
                await asyncio.sleep(decision.retry_delay_seconds or 0)
                continue

            return AgentResponse(
                agent_id=agent.agent_id,
                raw_text=None,
                success=False,
                error=decision.technical_details,
                attempts=retry_count + 1,
                decision=decision,
            )
