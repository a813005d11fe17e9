"""Tests for the end-to-end source validation pipeline."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import PARIS_FACT, PARIS_SOURCE, FakeAgent, extraction_json, paris_reply

from quorum.src.coordinator import AgentResponse, ModelCoordinator
from quorum.src.errors import ConsensusAbortError, NoAgentsConfiguredError
from quorum.src.models import AgentErrorAction, Citation, FactExtraction
from quorum.src.validator import SourceValidator


def mock_coordinator(responses):
    coordinator = MagicMock()
    coordinator.enabled_agent_count = len(responses)
    coordinator.invoke_all = AsyncMock(return_value=responses)
    return coordinator


class TestValidateSource:
    """Tests for validate_source."""

    @pytest.mark.asyncio
    async def test_two_agents_agree(self, no_delay_handler):
        coordinator = ModelCoordinator(
            [FakeAgent("a", [paris_reply(end=30)]), FakeAgent("b", [paris_reply(end=31)])],
            error_handler=no_delay_handler,
        )
        validator = SourceValidator(coordinator)

        result = await validator.validate_source(PARIS_SOURCE)

        assert result.source_content == PARIS_SOURCE
        assert [len(e.citations) for e in result.extractions] == [1, 1]
        assert result.fact_consensus.agreed_facts == ("paris is the capital of france",)
        assert result.fact_consensus.partial_agreement_facts == ()
        assert result.fact_consensus.disagreed_facts == ()
        assert result.discrepancies == ()
        assert result.validation_confidence == pytest.approx(0.95)

    @pytest.mark.asyncio
    async def test_no_agents(self):
        validator = SourceValidator(ModelCoordinator([]))

        with pytest.raises(NoAgentsConfiguredError):
            await validator.validate_source(PARIS_SOURCE)

    @pytest.mark.asyncio
    async def test_failed_agent_becomes_empty_extraction(self, no_delay_handler):
        coordinator = ModelCoordinator(
            [
                FakeAgent("a", [paris_reply()]),
                FakeAgent("b", [paris_reply()]),
                FakeAgent("c", [Exception("401 Unauthorized")]),
            ],
            error_handler=no_delay_handler,
            min_agents_required=2,
        )
        validator = SourceValidator(coordinator)

        result = await validator.validate_source(PARIS_SOURCE)

        assert result.extractions[2] == FactExtraction.empty("c")
        partial = result.fact_consensus.partial_agreement_facts
        assert len(partial) == 1
        assert partial[0].disagreeing_agents == ("c",)
        # 0.5 * mean(0.9, 0.9, 0) + 0.5 * (0.5 / 1)
        assert result.validation_confidence == pytest.approx(0.55)

    @pytest.mark.asyncio
    async def test_unparsable_reply_becomes_empty_extraction(self):
        coordinator = mock_coordinator([
            AgentResponse("a", paris_reply(), True),
            AgentResponse("b", "I am unable to help with that.", True),
        ])
        validator = SourceValidator(coordinator)

        result = await validator.validate_source(PARIS_SOURCE)

        assert result.extractions[1] == FactExtraction.empty("b")
        assert result.fact_consensus.disagreed_facts == ("paris is the capital of france",)

    @pytest.mark.asyncio
    async def test_abort_raises(self, no_delay_handler):
        coordinator = ModelCoordinator(
            [FakeAgent("a", [Exception("Invalid API key")]), FakeAgent("b", [paris_reply()], delay=0.05)],
            error_handler=no_delay_handler,
            min_agents_required=2,
        )
        validator = SourceValidator(coordinator)

        with pytest.raises(ConsensusAbortError) as exc_info:
            await validator.validate_source(PARIS_SOURCE)

        assert exc_info.value.decision.action == AgentErrorAction.ABORT
        assert "Aborting" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_prompt_and_timeout_forwarded(self):
        coordinator = mock_coordinator([AgentResponse("a", paris_reply(), True)])
        validator = SourceValidator(coordinator, timeout=12.5)

        await validator.validate_source(PARIS_SOURCE, question_context="European capitals")

        args, kwargs = coordinator.invoke_all.call_args
        assert PARIS_SOURCE in args[0]
        assert "quiz questions about: European capitals" in args[0]
        assert kwargs["timeout"] == 12.5
        assert kwargs["continue_on_error"] is True

    @pytest.mark.asyncio
    async def test_conflicting_agents_reported(self):
        source = "The tower is 330 m tall."
        coordinator = mock_coordinator([
            AgentResponse("a", extraction_json(["The tower is 330 m tall"]), True),
            AgentResponse("b", extraction_json(["The tower is 300 m tall"]), True),
        ])
        validator = SourceValidator(coordinator)

        result = await validator.validate_source(source)

        assert len(result.discrepancies) == 1
        assert result.discrepancies[0].agents_involved == ("a", "b")
        assert result.fact_consensus.agreed_facts == ()
        assert len(result.fact_consensus.disagreed_facts) == 2

    @pytest.mark.asyncio
    async def test_result_serializes(self):
        coordinator = mock_coordinator([AgentResponse("a", paris_reply(), True)])
        result = await SourceValidator(coordinator).validate_source(PARIS_SOURCE)

        data = result.to_dict()
        assert data["extractions"][0]["citations"][0]["supports_fact"] == PARIS_FACT
        assert data["fact_consensus"]["agreed_facts"] == ["paris is the capital of france"]
        assert data["discrepancies"] == []

    @pytest.mark.asyncio
    async def test_fact_threshold_applies_to_citations(self):
        wordier = "Paris is the capital city of France and Europe"
        reply = extraction_json(
            [PARIS_FACT],
            [{"start": 0, "end": 30, "text": PARIS_FACT, "supportsFact": wordier}],
        )
        coordinator = mock_coordinator([AgentResponse("a", reply, True)])

        strict = await SourceValidator(coordinator).validate_source(PARIS_SOURCE)
        loose = await SourceValidator(
            coordinator, fact_similarity_threshold=0.4
        ).validate_source(PARIS_SOURCE)

        assert strict.extractions[0].citations == ()
        assert loose.extractions[0].citations == (Citation(0, 30, PARIS_FACT, wordier),)


class TestParseExtractions:
    """Tests for turning responses into extractions."""

    def test_bad_citations_filtered(self):
        reply = extraction_json(
            [PARIS_FACT],
            [
                {"start": 0, "end": 30, "text": PARIS_FACT, "supportsFact": PARIS_FACT},
                {"start": 10, "end": 5, "text": "x", "supportsFact": PARIS_FACT},
                {"start": 0, "end": 30, "text": "Berlin is a city in Germany", "supportsFact": PARIS_FACT},
            ],
            confidence=0.7,
        )
        validator = SourceValidator(mock_coordinator([]))

        [extraction] = validator.parse_extractions([AgentResponse("a", reply, True)], PARIS_SOURCE)

        assert extraction.citations == (Citation(0, 30, PARIS_FACT, PARIS_FACT),)
        assert extraction.facts == (PARIS_FACT,)
        assert extraction.confidence == 0.7

    def test_failed_response(self):
        validator = SourceValidator(mock_coordinator([]))
        [extraction] = validator.parse_extractions(
            [AgentResponse("a", None, False, error="boom")],
            PARIS_SOURCE,
        )
        assert extraction == FactExtraction.empty("a")
