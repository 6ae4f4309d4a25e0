"""
Test extraction data types.
"""

import pytest

from callsheet.core.config import Settings
from callsheet.extraction.normalizer import TextNormalizer
from callsheet.extraction.types import (
    Contact, ContactSource, Deadline, ExtractionConfig, ExtractionOptions,
    ExtractionResult, InputValidationError, PhoneStyle, StrategyKind
)


@pytest.mark.unit
class TestContact:
    """Test contact records."""

    def test_dedup_key(self):
        """Test the canonical key ignores case, spacing and phone formatting."""
        a = Contact(name="John  Doe", phone="(917) 555-1234", email="John@Example.com")
        b = Contact(name="john doe", phone="917.555.1234", email="john@example.com ")

        assert a.dedup_key == b.dedup_key == "john doe_9175551234_john@example.com"

    def test_copy_is_independent(self):
        """Test copies share no mutable state."""
        contact = Contact(name="John Doe", merged_from=["pattern"])
        copy = contact.copy()
        copy.merged_from.append("component")

        assert contact.merged_from == ["pattern"]

    def test_to_dict(self):
        """Test dictionary representation."""
        data = Contact(
            name="John Doe", confidence=0.87654, source=ContactSource.MERGED,
            merged_from=["pattern", "component"],
        ).to_dict()

        assert data["confidence"] == 0.877
        assert data["source"] == "merged"
        assert data["merged_from"] == ["pattern", "component"]
        assert "ai_confidence" not in data


@pytest.mark.unit
class TestExtractionOptions:
    """Test per-call option validation."""

    def test_strategy_from_string(self):
        """Test strategy names are parsed."""
        assert ExtractionOptions(preferred_strategy=" Hybrid ").preferred_strategy == StrategyKind.HYBRID

    def test_unknown_strategy(self):
        """Test unknown strategies are rejected."""
        with pytest.raises(InputValidationError):
            ExtractionOptions(preferred_strategy="magic")

    def test_invalid_limits(self):
        """Test negative limits are rejected."""
        with pytest.raises(InputValidationError):
            ExtractionOptions(max_contacts=-1)
        with pytest.raises(InputValidationError):
            ExtractionOptions(max_processing_time=0)


@pytest.mark.unit
class TestExtractionResult:
    """Test extraction results."""

    def test_succeeded(self):
        """Test successful results."""
        result = ExtractionResult.succeeded(
            [Contact(name="John Doe", phone="+19175551234", confidence=0.9)]
        )

        assert result.success
        assert result.contact_count == 1
        assert result.has_high_confidence()
        assert len(result.contacts_with_phone()) == 1
        assert result.contacts_with_email() == []
        assert "error" not in result.to_dict()

    def test_failed(self):
        """Test failed results."""
        result = ExtractionResult.failed("Text is too short")

        assert not result.success
        assert not result.has_contacts
        assert not result.has_high_confidence()
        assert result.to_dict()["error"] == "Text is too short"


@pytest.mark.unit
class TestDeadline:
    """Test soft deadlines."""

    def test_expired(self):
        """Test a zero budget is expired at once."""
        assert Deadline(0).expired
        assert Deadline(0).remaining == 0.0

    def test_child_is_bounded(self):
        """Test a child deadline never outlives its parent."""
        assert Deadline(1.0).child(60).seconds <= 1.0
        assert Deadline(60).child(1.0).seconds <= 1.0


@pytest.mark.unit
class TestExtractionConfig:
    """Test configuration presets."""

    def test_from_settings(self):
        """Test settings are mapped onto the extraction configuration."""
        settings = Settings(_env_file=None, phone_format="display", max_contacts=7, ai_enabled=False)

        config = ExtractionConfig.from_settings(settings)

        assert config.phone_style == PhoneStyle.DISPLAY
        assert config.max_contacts == 7
        assert config.ai_enabled is False

    def test_presets(self):
        """Test precision and recall presets."""
        assert ExtractionConfig.create_high_precision().min_contact_confidence == 0.7
        assert ExtractionConfig.create_high_recall().max_contacts == 1000

    def test_tabs_preserved_by_default(self):
        """Test tab columns survive normalization under the default configuration."""
        config = ExtractionConfig()
        normalizer = TextNormalizer(preserve_tabs=config.preserve_tabs)

        assert config.preserve_tabs is True
        assert normalizer.normalize("John Doe\t\tPRODUCER") == "John Doe\tPRODUCER"
