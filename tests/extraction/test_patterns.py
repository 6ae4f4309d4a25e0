"""
Test pattern-set contact extraction.
"""

import time

import pytest

from callsheet.extraction.patterns import (
    ContactPattern, PatternCategory, PatternLibrary, PatternSetExtractor
)
from callsheet.extraction.types import DEFAULT_ROLE, ContactSource, Deadline


class BrokenRegex:
    """Regex stand-in that fails on use."""

    def finditer(self, text):
        raise RuntimeError("catastrophic backtracking")


class SlowRegex:
    """Regex wrapper that uses up time before yielding its matches."""

    def __init__(self, regex, delay):
        self.regex = regex
        self.delay = delay

    def finditer(self, text):
        matches = list(self.regex.finditer(text))
        time.sleep(self.delay)
        return iter(matches)


def library_pattern(name):
    """Pattern of the default bank by name."""
    return next(p for p in PatternLibrary() if p.name == name)


@pytest.mark.unit
class TestPatternLibrary:
    """Test the pattern bank."""

    def test_priority_order(self):
        """Test structured layouts are tried before fallbacks."""
        library = PatternLibrary()
        categories = [p.category for p in library]

        assert categories[0] == PatternCategory.STRUCTURED
        assert categories[-1] == PatternCategory.FALLBACK
        assert library.names()[-2] == "email_derived_name"
        assert len(set(library.names())) == len(library)


@pytest.mark.unit
class TestPatternSetExtractor:
    """Test pattern-set extraction."""

    def setup_method(self):
        """Set up test fixtures."""
        self.extractor = PatternSetExtractor()

    def test_role_name_phone(self):
        """Test the basic call sheet layout."""
        result = self.extractor.extract("PHOTOGRAPHER: John Doe / 917-555-1234")

        assert len(result.contacts) == 1
        contact = result.contacts[0]
        assert contact.name == "John Doe"
        assert contact.role == "PHOTOGRAPHER"
        assert contact.phone == "+19175551234"
        assert contact.source == ContactSource.PATTERN
        assert contact.pattern_name == "role_name_phone_slash"
        assert contact.confidence == pytest.approx(0.95)

    def test_sample_call_sheet(self, sample_call_sheet):
        """Test a full call sheet with sections."""
        result = self.extractor.extract(sample_call_sheet)

        by_name = {c.name: c for c in result.contacts}
        assert set(by_name) == {"Sarah Connor", "John Doe", "Emily Blunt", "Grace Jones"}

        assert by_name["Sarah Connor"].email == "sarah.connor@example.com"
        assert by_name["Sarah Connor"].phone == "+12125550101"
        assert by_name["Sarah Connor"].section == "production"
        assert by_name["Emily Blunt"].role == "MUA"
        assert by_name["Grace Jones"].phone == "+16465550199"
        assert by_name["Grace Jones"].section == "talent"
        assert result.metadata["patterns_used"]["role_name_email_phone_slash"] == 2

    def test_pipe_table(self):
        """Test a pipe-delimited table row."""
        result = self.extractor.extract(
            "| Photographer | John Doe | john@example.com | 917-555-1234 |"
        )

        assert len(result.contacts) == 1
        contact = result.contacts[0]
        assert contact.role == "PHOTOGRAPHER"
        assert contact.email == "john@example.com"
        assert contact.phone == "+19175551234"
        assert contact.pattern_name == "table_pipe"

    def test_tab_delimited_row(self):
        """Test a tab-delimited row."""
        result = self.extractor.extract("John Doe\tPhotographer\tjohn@example.com\t917-555-1234")

        assert len(result.contacts) == 1
        assert result.contacts[0].pattern_name == "tabular_name_role_email_phone"
        assert result.contacts[0].role == "PHOTOGRAPHER"

    def test_skipped_logistics_lines(self):
        """Test logistics lines never become contacts."""
        result = self.extractor.extract("Location: Jane Smith / 917-555-1234")

        assert result.contacts == []

    def test_name_derived_from_email(self):
        """Test first.last addresses without a nearby name."""
        result = self.extractor.extract("reach out to jane.smith@example.com for details")

        assert len(result.contacts) == 1
        assert result.contacts[0].name == "Jane Smith"
        assert result.contacts[0].pattern_name == "email_derived_name"

    def test_max_contacts_truncates(self, synthetic_call_sheet):
        """Test the output cap."""
        extractor = PatternSetExtractor(max_contacts=2)
        result = extractor.extract(synthetic_call_sheet)

        assert len(result.contacts) == 2
        assert result.truncated is True
        assert result.metadata["truncated"] is True

    def test_match_cap_per_pattern(self, synthetic_call_sheet):
        """Test each pattern examines at most the capped number of matches."""
        extractor = PatternSetExtractor(max_matches_per_pattern=3)

        result = extractor.extract(synthetic_call_sheet)
        uncapped = self.extractor.extract(synthetic_call_sheet)

        assert len(result.contacts) == 3
        assert result.metadata["patterns_used"] == {"role_name_email_phone_slash": 3}
        assert 3 <= result.metadata["matches_examined"] <= 3 * result.metadata["patterns_tried"]
        assert result.metadata["matches_examined"] < uncapped.metadata["matches_examined"]
        assert len(uncapped.contacts) > 3
        assert result.truncated is False
        assert result.timed_out is False

    def test_timeout_keeps_contacts_found(self):
        """Test a budget running out after the first pattern keeps its contacts."""
        first = library_pattern("role_name_phone_slash")
        library = [
            ContactPattern(first.name, first.category, SlowRegex(first.regex, 0.2), first.confidence),
            library_pattern("name_phone_only"),
        ]
        extractor = PatternSetExtractor(library=library, timeout=0.1)

        result = extractor.extract("PHOTOGRAPHER: John Doe / 917-555-1234\nJane Smith 646-555-0199")

        assert [c.name for c in result.contacts] == ["John Doe"]
        assert result.timed_out is True
        assert result.metadata["timed_out"] is True
        assert result.metadata["patterns_tried"] == 1

    def test_name_run_into_role(self):
        """Test role words caught at the end of a loose name become the role."""
        result = self.extractor.extract("Jane Smith    Producer    jane@x.com    917-555-1234")

        assert len(result.contacts) == 1
        contact = result.contacts[0]
        assert contact.name == "Jane Smith"
        assert contact.role == "PRODUCER"
        assert contact.email == "jane@x.com"
        assert contact.phone == "+19175551234"

    def test_comma_separated_row(self):
        """Test a Name, Role, email, phone row keeps every field."""
        result = self.extractor.extract("Jane Smith, Producer, jane@x.com, 917-555-1234")

        assert len(result.contacts) == 1
        contact = result.contacts[0]
        assert contact.pattern_name == "csv_name_role_contact"
        assert (contact.name, contact.role) == ("Jane Smith", "PRODUCER")
        assert contact.email == "jane@x.com"
        assert contact.phone == "+19175551234"

    def test_comma_separated_row_unknown_role(self):
        """Test a free-text second column is kept as the company."""
        result = self.extractor.extract("Jane Smith, Acme Studios, jane@x.com, 917-555-1234")

        assert len(result.contacts) == 1
        assert result.contacts[0].role == DEFAULT_ROLE
        assert result.contacts[0].company == "Acme Studios"

    def test_role_inferred_from_line(self):
        """Test a role mentioned elsewhere on the line is used."""
        result = self.extractor.extract("Contact our producer Jane Smith at jane@x.com")

        assert len(result.contacts) == 1
        assert result.contacts[0].name == "Jane Smith"
        assert result.contacts[0].role == "PRODUCER"

    def test_role_not_inferred_from_email(self):
        """Test role words inside an address are ignored."""
        result = self.extractor.extract("Jane Smith <jane.producer@x.com>")

        assert len(result.contacts) == 1
        assert result.contacts[0].role == DEFAULT_ROLE

    def test_timeout(self):
        """Test a zero timeout returns what was found so far."""
        extractor = PatternSetExtractor(timeout=0)
        result = extractor.extract("PHOTOGRAPHER: John Doe / 917-555-1234")

        assert result.contacts == []
        assert result.timed_out is True

    def test_outer_deadline(self):
        """Test an expired outer deadline wins over the extractor timeout."""
        result = self.extractor.extract("PHOTOGRAPHER: John Doe / 917-555-1234", Deadline(0))

        assert result.timed_out is True

    def test_failing_pattern_is_skipped(self):
        """Test one failing pattern does not stop the others."""
        library = [
            ContactPattern("broken", PatternCategory.STRUCTURED, BrokenRegex(), 0.9),
            *PatternLibrary(),
        ]
        extractor = PatternSetExtractor(library=library)

        result = extractor.extract("PHOTOGRAPHER: John Doe / 917-555-1234")

        assert len(result.contacts) == 1
        assert result.metadata["errors"][0]["pattern"] == "broken"

    def test_empty_text(self):
        """Test empty text."""
        result = self.extractor.extract("")

        assert result.contacts == []
        assert result.metadata["method"] == "pattern"
        assert result.metadata["patterns_tried"] == 0
