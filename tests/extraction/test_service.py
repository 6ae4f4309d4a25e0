"""
Test the contact extraction service end to end.
"""

import asyncio

import pytest

from callsheet.core.config import Settings
from callsheet.extraction.ai import AnthropicContactEnhancer
from callsheet.extraction.cache import InMemoryExtractionCache
from callsheet.extraction.cleaners import is_address_like
from callsheet.extraction.service import ContactExtractionService
from callsheet.extraction.types import (
    AIEnhancementError, ContactSource, ExtractionConfig, ExtractionOptions, StrategyKind
)


PHOTOGRAPHER_LINE = "PHOTOGRAPHER: John Doe / 917-555-1234"

AI_PAYLOAD = {"contacts": [
    {"name": "John Doe", "role": "PHOTOGRAPHER", "phone": "917-555-1234",
     "email": "john@example.com", "confidence": 0.9},
    {"name": "Jane Smith", "role": "STYLIST", "email": "jane@example.com"},
]}

# Thresholds forcing each decision band regardless of the classifier
VALIDATE_BAND = dict(high_confidence_threshold=1.1, medium_confidence_threshold=0.0)
ENHANCE_BAND = dict(
    high_confidence_threshold=1.1, medium_confidence_threshold=1.1, low_confidence_threshold=0.0
)
AI_ONLY_BAND = dict(
    high_confidence_threshold=1.1, medium_confidence_threshold=1.1, low_confidence_threshold=1.1
)


class FakeEnhancer:
    """AI collaborator answering with a fixed payload."""

    def __init__(self, payload=None, error=None, delay=0.0):
        self.payload = payload if payload is not None else {"contacts": []}
        self.error = error
        self.delay = delay
        self.calls = []

    def is_available(self):
        return True

    async def enhance(self, text, contacts, mode):
        self.calls.append(mode)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.payload


class FailingStrategy:
    """Strategy that always raises."""

    kind = StrategyKind.HYBRID
    name = "failing"

    def is_available(self):
        return True

    def confidence(self, analysis):
        return 0.5

    async def extract(self, text, deadline):
        raise RuntimeError("boom")


def assert_valid_contacts(result):
    for contact in result.contacts:
        assert len(contact.name) >= 2
        assert contact.phone or contact.email
        assert 0.0 <= contact.confidence <= 1.0


@pytest.mark.integration
class TestContactExtractionService:
    """Test extraction without the AI collaborator."""

    def setup_method(self):
        """Set up test fixtures."""
        self.service = ContactExtractionService()

    @pytest.mark.asyncio
    async def test_single_line(self):
        """Test the basic call sheet line."""
        result = await self.service.extract(PHOTOGRAPHER_LINE)

        assert result.success
        assert result.contact_count == 1
        contact = result.contacts[0]
        assert contact.role == "PHOTOGRAPHER"
        assert contact.name == "John Doe"
        assert contact.phone == "+19175551234"
        assert contact.confidence > 0.7

    @pytest.mark.asyncio
    async def test_no_contact_method(self):
        """Test a name without phone or email yields nothing."""
        result = await self.service.extract("PHOTOGRAPHER: John Doe")

        assert result.success
        assert result.contacts == ()

    @pytest.mark.asyncio
    async def test_address_role_rejected(self):
        """Test address text never ends up as a role."""
        result = await self.service.extract("72 Greene Ave, Brooklyn NY: John Doe / 917-555-1234")

        assert result.success
        assert all(not is_address_like(c.role) for c in result.contacts)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   \n\t "])
    async def test_empty_input(self, text):
        """Test empty input is a successful empty extraction."""
        result = await self.service.extract(text)

        assert result.success
        assert result.contacts == ()

    @pytest.mark.asyncio
    async def test_non_string_input(self):
        """Test non-string input fails."""
        result = await self.service.extract(None)

        assert not result.success
        assert result.error == "Text must be a string"

    @pytest.mark.asyncio
    async def test_too_short(self):
        """Test input below the minimum length fails."""
        result = await self.service.extract("hi there")

        assert not result.success
        assert result.error == "Text is too short"

    @pytest.mark.asyncio
    async def test_synthetic_sheet(self, synthetic_call_sheet):
        """Test one hundred generated lines."""
        result = await self.service.extract(synthetic_call_sheet)

        assert result.success
        assert result.contact_count >= 95
        assert result.metadata["processing_time"] < 1.0
        assert_valid_contacts(result)

    @pytest.mark.asyncio
    async def test_call_sheet_order(self, sample_call_sheet):
        """Test contacts come back in role priority order."""
        result = await self.service.extract(sample_call_sheet)

        assert [c.role for c in result.contacts] == ["PRODUCER", "PHOTOGRAPHER", "MUA", "MODEL"]
        assert [c.name for c in result.contacts] == [
            "Sarah Connor", "John Doe", "Emily Blunt", "Grace Jones",
        ]
        assert result.contacts[3].section == "talent"
        assert_valid_contacts(result)

    @pytest.mark.asyncio
    async def test_metadata(self, sample_call_sheet):
        """Test result metadata."""
        result = await self.service.extract(sample_call_sheet)
        metadata = result.metadata

        assert metadata["document_type"] == "call_sheet"
        assert metadata["cache_hit"] is False
        assert metadata["timed_out"] is False
        assert metadata["truncated"] is False
        assert metadata["ai"]["status"] == "skipped"
        assert metadata["quality"]["total_contacts"] == 4
        assert metadata["validation"]["with_email"] == 3
        assert sum(metadata["patterns_used"].values()) == 4
        assert len(metadata["extraction_id"]) == 32

    @pytest.mark.asyncio
    async def test_idempotent(self, sample_call_sheet):
        """Test repeated extraction gives the same contacts."""
        first = await self.service.extract(sample_call_sheet)
        second = await self.service.extract(sample_call_sheet)

        assert [c.to_dict() for c in first.contacts] == [c.to_dict() for c in second.contacts]

    @pytest.mark.asyncio
    async def test_no_duplicate_keys(self, sample_call_sheet):
        """Test one contact per dedup key."""
        text = sample_call_sheet + "\nPHOTOGRAPHER: John Doe / 917-555-1234\n"
        result = await self.service.extract(text)

        keys = [c.dedup_key for c in result.contacts]
        assert len(keys) == len(set(keys))

    @pytest.mark.asyncio
    async def test_max_contacts(self, sample_call_sheet):
        """Test the per-call contact cap."""
        result = await self.service.extract(sample_call_sheet, ExtractionOptions(max_contacts=2))

        assert [c.role for c in result.contacts] == ["PRODUCER", "PHOTOGRAPHER"]

    @pytest.mark.asyncio
    async def test_role_preferences(self, sample_call_sheet):
        """Test role preference filtering."""
        result = await self.service.extract(
            sample_call_sheet, ExtractionOptions(role_preferences=["Model"])
        )

        assert [c.name for c in result.contacts] == ["Grace Jones"]

    @pytest.mark.asyncio
    async def test_preferred_strategy(self, sample_call_sheet):
        """Test a preferred strategy is used."""
        result = await self.service.extract(
            sample_call_sheet, ExtractionOptions(preferred_strategy="component")
        )

        assert result.metadata["strategy"] == "component"
        assert result.contact_count == 4
        assert all(c.source == ContactSource.COMPONENT for c in result.contacts)

    @pytest.mark.asyncio
    async def test_input_truncated(self, sample_call_sheet):
        """Test oversized input is cut and flagged."""
        service = ContactExtractionService(ExtractionConfig(max_text_length=300))

        result = await service.extract(sample_call_sheet)

        assert result.success
        assert result.metadata["truncated"] is True

    @pytest.mark.asyncio
    async def test_deadline(self, sample_call_sheet):
        """Test an exhausted time budget returns partial results."""
        result = await self.service.extract(
            sample_call_sheet, ExtractionOptions(max_processing_time=1e-9)
        )

        assert result.success
        assert result.metadata["timed_out"] is True

    @pytest.mark.asyncio
    async def test_all_strategies_failing(self):
        """Test a failed result when no strategy produces an outcome."""
        self.service.strategies[StrategyKind.HYBRID] = FailingStrategy()

        result = await self.service.extract(PHOTOGRAPHER_LINE)

        assert not result.success
        assert result.error.startswith("All extraction strategies failed")
        assert "boom" in result.error
        assert result.metadata["strategy_failures"][0]["strategy"] == "hybrid"

    @pytest.mark.asyncio
    async def test_statistics(self):
        """Test running statistics."""
        await self.service.extract(PHOTOGRAPHER_LINE)
        await self.service.extract("hi there")

        stats = self.service.get_extraction_statistics()

        assert stats["total_extractions"] == 2
        assert stats["successful_extractions"] == 1
        assert stats["failed_extractions"] == 1
        assert stats["total_contacts"] == 1
        assert stats["success_rate"] == 0.5
        assert stats["ai_available"] is False
        assert "cache" not in stats

    def test_health_check(self):
        """Test service health without AI or cache."""
        health = self.service.health_check()

        assert health["healthy"] is True
        assert health["ai_available"] is False
        assert health["cache_enabled"] is False


@pytest.mark.integration
class TestExtractionCaching:
    """Test the injected result cache."""

    def setup_method(self):
        """Set up test fixtures."""
        self.cache = InMemoryExtractionCache()
        self.service = ContactExtractionService(cache=self.cache)

    @pytest.mark.asyncio
    async def test_cache_hit(self, sample_call_sheet):
        """Test a repeated extraction is served from the cache."""
        first = await self.service.extract(sample_call_sheet)
        second = await self.service.extract(sample_call_sheet)

        assert first.metadata["cache_hit"] is False
        assert second.metadata["cache_hit"] is True
        assert second.metadata["extraction_id"] != first.metadata["extraction_id"]
        assert [c.to_dict() for c in second.contacts] == [c.to_dict() for c in first.contacts]
        assert second.contacts[0] is not first.contacts[0]
        assert self.service.stats["cache_hits"] == 1
        assert self.service.get_extraction_statistics()["cache"]["hits"] == 1

    @pytest.mark.asyncio
    async def test_bypass_cache(self, sample_call_sheet):
        """Test bypassing the cache still refreshes it."""
        await self.service.extract(sample_call_sheet)
        result = await self.service.extract(sample_call_sheet, ExtractionOptions(bypass_cache=True))

        assert result.metadata["cache_hit"] is False
        assert len(self.cache) == 1

    @pytest.mark.asyncio
    async def test_options_change_key(self, sample_call_sheet):
        """Test different options are cached separately."""
        await self.service.extract(sample_call_sheet)
        result = await self.service.extract(sample_call_sheet, ExtractionOptions(max_contacts=1))

        assert result.metadata["cache_hit"] is False
        assert result.contact_count == 1

    @pytest.mark.asyncio
    async def test_empty_results_not_cached(self):
        """Test extractions without contacts are not stored."""
        await self.service.extract("PHOTOGRAPHER: John Doe")

        assert len(self.cache) == 0


@pytest.mark.integration
class TestAIExtraction:
    """Test extraction with a fake AI collaborator."""

    def make_service(self, enhancer, **config):
        return ContactExtractionService(ExtractionConfig(**config), enhancer=enhancer)

    @pytest.mark.asyncio
    async def test_validation_band(self):
        """Test the AI corrects local contacts without adding people."""
        enhancer = FakeEnhancer(AI_PAYLOAD)
        service = self.make_service(enhancer, **VALIDATE_BAND)

        result = await service.extract(PHOTOGRAPHER_LINE)

        assert result.success
        assert [c.name for c in result.contacts] == ["John Doe"]
        assert result.contacts[0].email == "john@example.com"
        assert result.contacts[0].source == ContactSource.AI_ENHANCED
        assert result.metadata["ai"]["mode"] == "validate"
        assert result.metadata["ai"]["status"] == "succeeded"
        assert result.metadata["ai"]["enhanced"] == 1
        assert service.stats["ai_calls"] == 1

    @pytest.mark.asyncio
    async def test_enhancement_band(self):
        """Test the AI adds people the patterns missed."""
        service = self.make_service(FakeEnhancer(AI_PAYLOAD), **ENHANCE_BAND)

        result = await service.extract(PHOTOGRAPHER_LINE)

        assert [c.name for c in result.contacts] == ["John Doe", "Jane Smith"]
        assert result.contacts[1].source == ContactSource.AI_DISCOVERED
        assert result.metadata["ai"]["mode"] == "enhance"
        assert_valid_contacts(result)

    @pytest.mark.asyncio
    async def test_ai_failure_keeps_local_contacts(self):
        """Test a failing AI step falls back to local output."""
        enhancer = FakeEnhancer(error=AIEnhancementError("service unavailable"))
        service = self.make_service(enhancer, **VALIDATE_BAND)

        result = await service.extract(PHOTOGRAPHER_LINE)

        assert result.success
        assert [c.name for c in result.contacts] == ["John Doe"]
        assert result.contacts[0].source == ContactSource.PATTERN
        assert result.metadata["ai"]["status"] == "failed"
        assert result.metadata["ai"]["error"] == "service unavailable"
        assert service.stats["ai_failures"] == 1

    @pytest.mark.asyncio
    async def test_ai_timeout_keeps_local_contacts(self):
        """Test a slow AI step falls back to local output."""
        service = self.make_service(FakeEnhancer(AI_PAYLOAD, delay=1.0), ai_timeout=0.05, **ENHANCE_BAND)

        result = await service.extract(PHOTOGRAPHER_LINE)

        assert result.success
        assert [c.name for c in result.contacts] == ["John Doe"]
        assert result.metadata["ai"]["status"] == "timed_out"

    @pytest.mark.asyncio
    async def test_ai_only_band(self):
        """Test very low confidence lets the AI extract from scratch."""
        enhancer = FakeEnhancer({"contacts": [AI_PAYLOAD["contacts"][1]]})
        service = self.make_service(enhancer, **AI_ONLY_BAND)

        result = await service.extract(PHOTOGRAPHER_LINE)

        assert result.metadata["strategy"] == "ai_only"
        assert [c.name for c in result.contacts] == ["Jane Smith"]
        assert result.contacts[0].source == ContactSource.AI_DISCOVERED
        assert result.metadata["ai"]["status"] == "succeeded"

    @pytest.mark.asyncio
    async def test_ai_only_failure_falls_back_to_hybrid(self):
        """Test a failing AI extraction falls back to local strategies."""
        enhancer = FakeEnhancer(error=AIEnhancementError("rate limited"))
        service = self.make_service(enhancer, **AI_ONLY_BAND)

        result = await service.extract(PHOTOGRAPHER_LINE)

        assert result.success
        assert result.metadata["strategy"] == "hybrid"
        assert [c.name for c in result.contacts] == ["John Doe"]
        assert result.metadata["ai"]["status"] == "failed"
        assert result.metadata["strategy_failures"][0]["strategy"] == "ai_only"

    @pytest.mark.asyncio
    async def test_ai_only_empty_answer_falls_back(self):
        """Test an empty AI answer lets local strategies run."""
        service = self.make_service(FakeEnhancer({"contacts": []}), **AI_ONLY_BAND)

        result = await service.extract(PHOTOGRAPHER_LINE)

        assert result.metadata["strategy"] == "hybrid"
        assert result.contact_count == 1

    @pytest.mark.asyncio
    async def test_disable_ai(self):
        """Test the per-call switch keeps the collaborator idle."""
        enhancer = FakeEnhancer(AI_PAYLOAD)
        service = self.make_service(enhancer, **ENHANCE_BAND)

        result = await service.extract(PHOTOGRAPHER_LINE, ExtractionOptions(disable_ai=True))

        assert enhancer.calls == []
        assert result.metadata["ai"]["status"] == "skipped"

    @pytest.mark.asyncio
    async def test_ai_disabled_in_config(self):
        """Test the configuration switch keeps the collaborator idle."""
        enhancer = FakeEnhancer(AI_PAYLOAD)
        service = self.make_service(enhancer, ai_enabled=False, **ENHANCE_BAND)

        await service.extract(PHOTOGRAPHER_LINE)

        assert enhancer.calls == []
        assert service.ai_available is False


@pytest.mark.unit
class TestServiceFromSettings:
    """Test wiring from application settings."""

    def test_without_api_key(self):
        """Test no collaborator is built without a key."""
        settings = Settings(_env_file=None, anthropic_api_key=None)

        service = ContactExtractionService.from_settings(settings)

        assert service.ai_runner is None
        assert isinstance(service.cache, InMemoryExtractionCache)

    def test_with_api_key(self):
        """Test the Anthropic collaborator is built with a key."""
        settings = Settings(_env_file=None, anthropic_api_key="sk-test", cache_enabled=False)

        service = ContactExtractionService.from_settings(settings)

        assert isinstance(service.ai_runner.enhancer, AnthropicContactEnhancer)
        assert service.ai_available is True
        assert service.cache is None
