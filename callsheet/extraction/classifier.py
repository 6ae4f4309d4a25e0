"""
Document classification for production documents.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern, Tuple

import structlog

from .types import Complexity, DocumentAnalysis, DocumentType, Structure


logger = structlog.get_logger(__name__)


@dataclass
class DocumentSignature:
    """Keyword and pattern signature of one document type."""

    document_type: DocumentType
    keywords: List[str]
    patterns: List[Pattern] = field(default_factory=list)
    confidence_multiplier: float = 1.0
    filename_hints: List[str] = field(default_factory=list)


class DocumentClassifier:
    """
    Scores document text against known type and layout signatures.

    The analysis feeds strategy selection: document type and confidence,
    layout structure, complexity band and an estimate of how many
    contacts the document holds.
    """

    KEYWORD_WEIGHT = 0.6
    PATTERN_WEIGHT = 0.4

    MAX_ESTIMATED_CONTACTS = 100

    # Structure thresholds, as share of non-empty lines
    TABULAR_THRESHOLD = 0.3
    STRUCTURED_THRESHOLD = 0.2
    CSV_THRESHOLD = 0.5

    def __init__(self):
        """Initialize document classifier."""
        self.logger = logger.bind(component="DocumentClassifier")

        self.signatures = self._initialize_signatures()
        self._compile_patterns()

    def _initialize_signatures(self) -> List[DocumentSignature]:
        """Initialize document type signatures."""
        time_of_day = re.compile(r"\b\d{1,2}:\d{2}\s*(?:am|pm)?\b", re.IGNORECASE)
        role_colon = re.compile(r"^[ \t]*[A-Z][A-Za-z &/]{1,30}:[ \t]*\S", re.MULTILINE)
        phone = re.compile(r"\(?\d{3}\)?[\s.\-]?\d{3}[\s.\-]?\d{4}")
        email = re.compile(r"[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}")

        return [
            DocumentSignature(
                document_type=DocumentType.CALL_SHEET,
                keywords=[
                    "call sheet", "call time", "crew call", "general call", "shoot date",
                    "location", "wrap", "talent", "crew", "producer", "photographer",
                    "nearest hospital", "weather", "parking",
                ],
                patterns=[
                    re.compile(r"call\s*time", re.IGNORECASE),
                    time_of_day,
                    role_colon,
                    re.compile(r"\bcrew\s+call\b", re.IGNORECASE),
                ],
                confidence_multiplier=0.9,
                filename_hints=["call", "callsheet", "call_sheet", "call-sheet"],
            ),
            DocumentSignature(
                document_type=DocumentType.CONTACT_DIRECTORY,
                keywords=[
                    "directory", "contact list", "contacts", "email", "phone",
                    "mobile", "cell", "office",
                ],
                patterns=[
                    email,
                    phone,
                    re.compile(r"^[ \t]*[A-Z][a-z]+ [A-Z][a-z]+[ \t]*[,|\t]", re.MULTILINE),
                ],
                confidence_multiplier=0.85,
                filename_hints=["contacts", "directory", "contact_list"],
            ),
            DocumentSignature(
                document_type=DocumentType.PRODUCTION_SCHEDULE,
                keywords=[
                    "schedule", "shooting schedule", "day 1", "scene", "setup",
                    "lunch", "wrap", "breakfast",
                ],
                patterns=[
                    time_of_day,
                    re.compile(r"\bscene\s+\d+", re.IGNORECASE),
                    re.compile(r"\bday\s+\d+\b", re.IGNORECASE),
                ],
                confidence_multiplier=0.8,
                filename_hints=["schedule", "shooting"],
            ),
            DocumentSignature(
                document_type=DocumentType.CREW_LIST,
                keywords=[
                    "crew list", "crew", "department", "grip", "electric", "camera",
                    "gaffer", "sound", "wardrobe",
                ],
                patterns=[
                    role_colon,
                    re.compile(r"\b(?:gaffer|grip|dit|ac|boom)\b", re.IGNORECASE),
                    phone,
                ],
                confidence_multiplier=0.85,
                filename_hints=["crew"],
            ),
            DocumentSignature(
                document_type=DocumentType.TALENT_SHEET,
                keywords=[
                    "talent", "model", "agency", "agent", "casting", "booking",
                    "measurements",
                ],
                patterns=[
                    re.compile(r"\b(?:model|talent)\s*:", re.IGNORECASE),
                    re.compile(r"\bagen(?:cy|t)\b", re.IGNORECASE),
                    re.compile(r"\b(?:height|bust|waist|hips)\b", re.IGNORECASE),
                ],
                confidence_multiplier=0.9,
                filename_hints=["talent", "casting", "models"],
            ),
        ]

    def _compile_patterns(self) -> None:
        """Compile estimation, section and production type patterns."""
        self.phone_pattern = re.compile(r"(?:\+?\d{1,3}[\s.\-]?)?\(?\d{3}\)?[\s.\-]?\d{3}[\s.\-]?\d{4}")
        self.email_pattern = re.compile(r"[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}")
        self.name_pattern = re.compile(r"\b[A-Z][a-z]+ [A-Z][a-z]+\b")

        section_keywords = {
            "crew": ["crew", "camera", "grip", "electric", "gaffer", "sound"],
            "talent": ["talent", "model", "cast", "actor", "actress"],
            "production": ["production", "producer", "director"],
            "client": ["client", "agency", "brand"],
            "location": ["location", "address", "parking", "hospital"],
            "schedule": ["schedule", "call time", "wrap", "lunch"],
        }
        self.section_patterns: List[Tuple[str, Pattern]] = [
            (section, self._keyword_regex(words))
            for section, words in section_keywords.items()
        ]

        production_keywords = {
            "film": ["film", "feature", "scene", "take", "shooting script"],
            "television": ["episode", "series", "television", "tv", "network"],
            "commercial": ["commercial", "spot", "client", "brand", "agency"],
            "documentary": ["documentary", "interview", "subject", "b-roll"],
            "photography": ["photo shoot", "photoshoot", "photographer", "lookbook", "editorial", "campaign"],
        }
        self.production_patterns: List[Tuple[str, Pattern]] = [
            (production_type, self._keyword_regex(words))
            for production_type, words in production_keywords.items()
        ]

    def _keyword_regex(self, words: List[str]) -> Pattern:
        return re.compile(
            r"\b(?:" + "|".join(re.escape(w) for w in words) + r")\b", re.IGNORECASE
        )

    def classify(self, text: str, file_name: Optional[str] = None) -> DocumentAnalysis:
        """
        Classify a document.

        Args:
            text: Normalized document text
            file_name: Optional original file name, used as a type hint

        Returns:
            Populated document analysis; the default analysis when nothing scores
        """
        if not text or not text.strip():
            return DocumentAnalysis.default()

        try:
            lowered = text.lower()
            lines = [line for line in text.split("\n") if line.strip()]

            type_scores = self._score_types(text, lowered, file_name)
            best_type, best_score = max(type_scores.items(), key=lambda item: item[1])

            estimated = self.estimate_contact_count(text)
            structure = self.detect_structure(lines)
            complexity = self.assess_complexity(text, len(lines), estimated)

            if best_score <= 0:
                document_type = DocumentType.UNKNOWN
                confidence = 0.5
            else:
                document_type = best_type
                signature = self._signature_for(best_type)
                confidence = min(1.0, best_score * signature.confidence_multiplier)

            analysis = DocumentAnalysis(
                document_type=document_type,
                confidence=confidence,
                complexity=complexity,
                structure=structure,
                estimated_contact_count=estimated,
                sections=self.identify_sections(text),
                production_type=self.detect_production_type(text),
                type_scores={t.value: s for t, s in type_scores.items()},
            )

            self.logger.debug(
                "Document classified",
                document_type=analysis.document_type.value,
                confidence=round(analysis.confidence, 3),
                structure=analysis.structure.value,
                complexity=analysis.complexity.value,
                estimated_contacts=estimated,
            )

            return analysis

        except Exception as e:
            self.logger.warning("Error classifying document, using default analysis", error=str(e))
            return DocumentAnalysis.default()

    def _score_types(
        self, text: str, lowered: str, file_name: Optional[str]
    ) -> Dict[DocumentType, float]:
        """Score every signature: keyword share and pattern share."""
        file_hint = (file_name or "").lower()
        scores: Dict[DocumentType, float] = {}

        for signature in self.signatures:
            keyword_hits = sum(1 for keyword in signature.keywords if keyword in lowered)
            if file_hint and any(hint in file_hint for hint in signature.filename_hints):
                keyword_hits += 1
            keyword_hits = min(keyword_hits, len(signature.keywords))

            pattern_hits = sum(1 for pattern in signature.patterns if pattern.search(text))

            keyword_score = keyword_hits / len(signature.keywords) if signature.keywords else 0.0
            pattern_score = pattern_hits / len(signature.patterns) if signature.patterns else 0.0

            scores[signature.document_type] = (
                keyword_score * self.KEYWORD_WEIGHT + pattern_score * self.PATTERN_WEIGHT
            )

        return scores

    def _signature_for(self, document_type: DocumentType) -> DocumentSignature:
        for signature in self.signatures:
            if signature.document_type == document_type:
                return signature
        raise KeyError(document_type)

    def estimate_contact_count(self, text: str) -> int:
        """Largest of phone, email and two-word-name counts, capped."""
        phones = len(self.phone_pattern.findall(text))
        emails = len(self.email_pattern.findall(text))
        names = len(self.name_pattern.findall(text))
        return min(max(phones, emails, names), self.MAX_ESTIMATED_CONTACTS)

    def detect_structure(self, lines: List[str]) -> Structure:
        """Layout structure from tab, colon and comma density."""
        if not lines:
            return Structure.UNSTRUCTURED

        total = len(lines)
        tab_ratio = sum(1 for line in lines if "\t" in line) / total
        colon_ratio = sum(1 for line in lines if ":" in line) / total
        comma_ratio = sum(1 for line in lines if "," in line) / total

        if tab_ratio > self.TABULAR_THRESHOLD:
            return Structure.TABULAR
        if colon_ratio > self.STRUCTURED_THRESHOLD:
            return Structure.STRUCTURED
        if comma_ratio > self.CSV_THRESHOLD:
            return Structure.CSV_LIKE
        return Structure.UNSTRUCTURED

    def assess_complexity(self, text: str, line_count: int, estimated_contacts: int) -> Complexity:
        """Complexity band from size and contact density."""
        length = len(text)

        if length < 1000 and line_count < 20 and estimated_contacts < 10:
            return Complexity.LOW
        if length > 10000 or line_count > 100 or estimated_contacts > 50:
            return Complexity.HIGH
        return Complexity.MEDIUM

    def identify_sections(self, text: str) -> Tuple[str, ...]:
        """Call sheet sections mentioned in the document."""
        return tuple(
            section for section, pattern in self.section_patterns if pattern.search(text)
        )

    def detect_production_type(self, text: str) -> Optional[str]:
        """Production type with the most keyword hits, if any."""
        best_type = None
        best_hits = 0
        for production_type, pattern in self.production_patterns:
            hits = len(pattern.findall(text))
            if hits > best_hits:
                best_type, best_hits = production_type, hits
        return best_type
