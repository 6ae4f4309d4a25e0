"""
Test component-first contact extraction.
"""

import pytest

from callsheet.extraction.components import ComponentExtractor
from callsheet.extraction.types import ContactSource, Deadline, DEFAULT_ROLE


@pytest.mark.unit
class TestComponentExtractor:
    """Test line component decomposition and assembly."""

    def setup_method(self):
        """Set up test fixtures."""
        self.extractor = ComponentExtractor()

    def test_role_name_phone_line(self):
        """Test one labelled line becomes one contact."""
        result = self.extractor.extract("PHOTOGRAPHER: John Doe / 917-555-1234")

        assert len(result.contacts) == 1
        contact = result.contacts[0]
        assert contact.name == "John Doe"
        assert contact.role == "PHOTOGRAPHER"
        assert contact.phone == "+19175551234"
        assert contact.source == ContactSource.COMPONENT
        assert contact.line_number == 1
        assert contact.confidence == pytest.approx(1.0)

    def test_role_synonym_and_email(self):
        """Test role labels are canonicalized."""
        result = self.extractor.extract("MAKEUP ARTIST: Emily Blunt / emily@example.com")

        assert len(result.contacts) == 1
        assert result.contacts[0].role == "MUA"
        assert result.contacts[0].email == "emily@example.com"

    def test_name_without_contact_method(self):
        """Test lines without phone or email yield nothing."""
        result = self.extractor.extract("PRODUCER: Jane Smith\nCall Time: 7:00 AM")

        assert result.contacts == []
        assert result.metadata["candidates"] == 0

    def test_short_phone_rejected(self):
        """Test seven digit phones do not count without an email."""
        result = self.extractor.extract("PA: Jane Smith / 555-1234")

        assert result.contacts == []
        assert result.metadata["rejection_reasons"] == {"no_contact_method": 1}

    def test_short_phone_accepted_with_lower_minimum(self):
        """Test the phone digit minimum is configurable."""
        extractor = ComponentExtractor(min_phone_digits=7)
        result = extractor.extract("PA: Jane Smith / 555-1234")

        assert len(result.contacts) == 1
        assert result.contacts[0].phone == "5551234"

    def test_email_digits_not_phone(self):
        """Test digits inside an email are not read as a phone."""
        result = self.extractor.extract("ASSISTANT: Mark Lee / mark2125550101@example.com")

        assert len(result.contacts) == 1
        assert result.contacts[0].phone == ""
        assert result.contacts[0].email == "mark2125550101@example.com"

    def test_role_inferred_from_line(self):
        """Test the role comes from line context without a label."""
        result = self.extractor.extract("Jane Smith stylist jane@example.com")

        assert len(result.contacts) == 1
        assert result.contacts[0].role == "STYLIST"

    def test_default_role(self):
        """Test lines without any role get the default role."""
        result = self.extractor.extract("Jane Smith jane@example.com")

        assert len(result.contacts) == 1
        assert result.contacts[0].role == DEFAULT_ROLE

    def test_line_numbers_count_blank_lines(self):
        """Test line numbers refer to raw lines."""
        result = self.extractor.extract("\n\nPRODUCER: Sarah Connor / sarah@example.com")

        assert result.contacts[0].line_number == 3

    def test_sample_call_sheet(self, sample_call_sheet):
        """Test a full call sheet."""
        result = self.extractor.extract(sample_call_sheet)

        names = {c.name for c in result.contacts}
        assert names == {"Sarah Connor", "John Doe", "Emily Blunt", "Grace Jones"}

    def test_empty_text(self):
        """Test empty text."""
        result = self.extractor.extract("   ")

        assert result.contacts == []
        assert result.metadata["lines"] == 0
        assert result.metadata["method"] == "component"

    def test_expired_deadline(self):
        """Test an expired deadline stops the line sweep."""
        result = self.extractor.extract("PHOTOGRAPHER: John Doe / 917-555-1234", Deadline(0))

        assert result.contacts == []
        assert result.metadata["timed_out"] is True

    def test_metadata_counts(self):
        """Test component counters."""
        result = self.extractor.extract("PHOTOGRAPHER: John Doe / john@example.com / 917-555-1234")

        components = result.metadata["components"]
        assert components["role"] == 1
        assert components["name"] == 1
        assert components["email"] == 1
        assert components["phone"] == 1
        assert result.metadata["accepted"] == 1
