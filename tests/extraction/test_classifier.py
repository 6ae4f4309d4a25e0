"""
Test document classification.
"""

import pytest

from callsheet.extraction.classifier import DocumentClassifier
from callsheet.extraction.types import Complexity, DocumentType, Structure


@pytest.mark.unit
class TestDocumentClassifier:
    """Test document classification."""

    def setup_method(self):
        """Set up test fixtures."""
        self.classifier = DocumentClassifier()

    def test_call_sheet(self, sample_call_sheet):
        """Test a call sheet is recognized."""
        analysis = self.classifier.classify(sample_call_sheet)

        assert analysis.document_type == DocumentType.CALL_SHEET
        assert 0.0 < analysis.confidence <= 1.0
        assert analysis.structure == Structure.STRUCTURED
        assert analysis.estimated_contact_count >= 3
        assert "production" in analysis.sections
        assert "talent" in analysis.sections
        assert analysis.production_type == "photography"

    def test_empty_text(self):
        """Test empty text gets the default analysis."""
        analysis = self.classifier.classify("")

        assert analysis.document_type == DocumentType.UNKNOWN
        assert analysis.confidence == 0.5

    def test_unknown_document(self):
        """Test text matching no signature."""
        analysis = self.classifier.classify("lorem ipsum dolor sit amet")

        assert analysis.document_type == DocumentType.UNKNOWN
        assert analysis.confidence == 0.5

    def test_file_name_hint(self):
        """Test the file name tips an otherwise tied score."""
        text = "Jane Smith 917-555-1234"

        assert self.classifier.classify(text).document_type == DocumentType.CONTACT_DIRECTORY
        assert self.classifier.classify(text, "crew_list.txt").document_type == DocumentType.CREW_LIST

    def test_type_scores_reported(self, sample_call_sheet):
        """Test every signature is scored."""
        analysis = self.classifier.classify(sample_call_sheet)

        assert set(analysis.type_scores) == {
            "call_sheet", "contact_directory", "production_schedule", "crew_list", "talent_sheet",
        }

    def test_detect_structure(self):
        """Test layout detection."""
        assert self.classifier.detect_structure(["a\tb", "c\td"]) == Structure.TABULAR
        assert self.classifier.detect_structure(["Role: a", "Role: b"]) == Structure.STRUCTURED
        assert self.classifier.detect_structure(["a, b", "c, d"]) == Structure.CSV_LIKE
        assert self.classifier.detect_structure(["plain", "text"]) == Structure.UNSTRUCTURED
        assert self.classifier.detect_structure([]) == Structure.UNSTRUCTURED

    def test_assess_complexity(self):
        """Test complexity bands."""
        assert self.classifier.assess_complexity("x" * 100, 5, 2) == Complexity.LOW
        assert self.classifier.assess_complexity("x" * 2000, 30, 20) == Complexity.MEDIUM
        assert self.classifier.assess_complexity("x" * 20000, 30, 20) == Complexity.HIGH
        assert self.classifier.assess_complexity("x" * 100, 5, 60) == Complexity.HIGH

    def test_estimate_contact_count_capped(self):
        """Test the contact estimate is capped."""
        text = "\n".join(f"user{i}@example.com" for i in range(150))

        assert self.classifier.estimate_contact_count(text) == 100

    def test_to_dict(self, sample_call_sheet):
        """Test dictionary representation."""
        data = self.classifier.classify(sample_call_sheet).to_dict()

        assert data["type"] == "call_sheet"
        assert data["structure"] == "structured"
