"""
Type definitions for the contact extraction module.
"""

import copy
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


DEFAULT_ROLE = "Contact"


class ExtractionError(Exception):
    """Base exception for contact extraction errors."""

    def __init__(self, message: str, text: Optional[str] = None, pattern: Optional[str] = None):
        self.text = text
        self.pattern = pattern
        super().__init__(message)


class InputValidationError(ExtractionError):
    """Input text or options were rejected before extraction."""


class PatternError(ExtractionError):
    """A single extraction pattern failed."""


class AIEnhancementError(ExtractionError):
    """The AI collaborator failed, timed out or was unreachable."""


class AIResponseError(AIEnhancementError):
    """The AI collaborator answered with JSON that violates the contract."""


class ConfigurationError(ExtractionError):
    """The extraction pipeline was assembled with an invalid configuration."""


class ContactSource(Enum):
    """Where a contact record came from."""
    PATTERN = "pattern"
    COMPONENT = "component"
    AI_ENHANCED = "ai_enhanced"
    AI_DISCOVERED = "ai_discovered"
    MERGED = "merged"


class DocumentType(Enum):
    """Known production document types."""
    CALL_SHEET = "call_sheet"
    CONTACT_DIRECTORY = "contact_directory"
    PRODUCTION_SCHEDULE = "production_schedule"
    CREW_LIST = "crew_list"
    TALENT_SHEET = "talent_sheet"
    UNKNOWN = "unknown"


class Complexity(Enum):
    """Document complexity bands."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Structure(Enum):
    """Document layout structure."""
    TABULAR = "tabular"
    STRUCTURED = "structured"
    CSV_LIKE = "csv_like"
    UNSTRUCTURED = "unstructured"


class StrategyKind(Enum):
    """Closed set of extraction strategies."""
    PATTERN = "pattern"
    COMPONENT = "component"
    HYBRID = "hybrid"
    AI_ONLY = "ai_only"


class AIMode(Enum):
    """How the AI collaborator is used for one extraction."""
    NONE = "none"
    VALIDATE = "validate"    # review and correct local output
    ENHANCE = "enhance"      # add to local output
    EXTRACT = "extract"      # extract from scratch


class StrategyCost(Enum):
    FREE = "free"
    VARIABLE = "variable"


class StrategySpeed(Enum):
    FAST = "fast"
    MEDIUM = "medium"


class PhoneStyle(Enum):
    """Output format for cleaned phone numbers."""
    E164 = "e164"          # +19175551234
    DISPLAY = "display"    # (917) 555-1234


def digits_only(value: Optional[str]) -> str:
    """Strip everything except digits."""
    if not value:
        return ""
    return "".join(ch for ch in value if ch.isdigit())


@dataclass
class Contact:
    """A contact record, either a raw candidate or a final result entry."""

    # Core fields
    name: str = ""
    role: str = DEFAULT_ROLE
    email: str = ""
    phone: str = ""
    company: str = ""
    section: str = ""

    # Scoring
    confidence: float = 0.5
    validation_score: float = 0.0
    source: ContactSource = ContactSource.PATTERN

    # Provenance
    line_number: Optional[int] = None
    raw_match: str = ""
    pattern_name: str = ""
    original_source: Optional[ContactSource] = None
    ai_confidence: Optional[float] = None
    merged_from: List[str] = field(default_factory=list)

    @property
    def dedup_key(self) -> str:
        """Canonical key: lowercase name, phone digits and lowercase email."""
        name = " ".join(self.name.lower().split())
        return f"{name}_{digits_only(self.phone)}_{self.email.strip().lower()}"

    @property
    def has_phone(self) -> bool:
        return bool(self.phone)

    @property
    def has_email(self) -> bool:
        return bool(self.email)

    @property
    def has_role(self) -> bool:
        return bool(self.role) and self.role != DEFAULT_ROLE

    def copy(self) -> "Contact":
        """Return an independent copy of this contact."""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        data: Dict[str, Any] = {
            "name": self.name,
            "role": self.role,
            "email": self.email,
            "phone": self.phone,
            "company": self.company,
            "section": self.section,
            "confidence": round(self.confidence, 3),
            "source": self.source.value,
            "line_number": self.line_number,
        }
        if self.pattern_name:
            data["pattern"] = self.pattern_name
        if self.original_source is not None:
            data["original_source"] = self.original_source.value
        if self.ai_confidence is not None:
            data["ai_confidence"] = self.ai_confidence
        if self.merged_from:
            data["merged_from"] = list(self.merged_from)
        return data


class Deadline:
    """Soft wall-clock budget for one extraction."""

    def __init__(self, seconds: float):
        self.seconds = max(0.0, float(seconds))
        self._started = time.monotonic()

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._started

    @property
    def remaining(self) -> float:
        return max(0.0, self.seconds - self.elapsed)

    @property
    def expired(self) -> bool:
        return self.elapsed >= self.seconds

    def child(self, seconds: float) -> "Deadline":
        """Deadline bounded by both this budget and ``seconds``."""
        return Deadline(min(self.remaining, seconds))


@dataclass(frozen=True)
class DocumentAnalysis:
    """Read-only classification of a document, derived once per extraction."""

    document_type: DocumentType = DocumentType.UNKNOWN
    confidence: float = 0.5
    complexity: Complexity = Complexity.MEDIUM
    structure: Structure = Structure.UNSTRUCTURED
    estimated_contact_count: int = 0
    sections: Tuple[str, ...] = ()
    production_type: Optional[str] = None
    type_scores: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def default(cls) -> "DocumentAnalysis":
        """Analysis used when nothing about the document is known."""
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "type": self.document_type.value,
            "confidence": round(self.confidence, 3),
            "complexity": self.complexity.value,
            "structure": self.structure.value,
            "estimated_contact_count": self.estimated_contact_count,
            "sections": list(self.sections),
            "production_type": self.production_type,
            "type_scores": {k: round(v, 3) for k, v in self.type_scores.items()},
        }


@dataclass(frozen=True)
class StrategyDescriptor:
    """Pure value describing one candidate strategy."""

    kind: StrategyKind
    name: str
    confidence: float
    available: bool
    cost: StrategyCost
    speed: StrategySpeed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "name": self.name,
            "confidence": round(self.confidence, 3),
            "available": self.available,
            "cost": self.cost.value,
            "speed": self.speed.value,
        }


@dataclass
class ConfidenceWeights:
    """Weights of the blended final confidence."""

    source: float = 0.4
    validation: float = 0.3
    completeness: float = 0.2
    ai_enhanced_bonus: float = 0.1
    merged_bonus: float = 0.05

    # Completeness field weights
    name_weight: float = 0.4
    email_weight: float = 0.3
    phone_weight: float = 0.2
    role_weight: float = 0.1


@dataclass
class ExtractionConfig:
    """Configuration for contact extraction."""

    # Input limits
    min_text_length: int = 10
    max_text_length: int = 100_000

    # Processing limits
    max_processing_time: float = 30.0
    pattern_timeout: float = 15.0
    max_contacts: int = 500
    max_pattern_contacts: int = 1000
    max_matches_per_pattern: int = 500

    # Strategy decision bands
    high_confidence_threshold: float = 0.8
    medium_confidence_threshold: float = 0.6
    low_confidence_threshold: float = 0.4

    # Output quality
    min_contact_confidence: float = 0.3
    phone_style: PhoneStyle = PhoneStyle.E164
    preserve_tabs: bool = True
    weights: ConfidenceWeights = field(default_factory=ConfidenceWeights)

    # AI collaborator
    ai_enabled: bool = True
    ai_timeout: float = 30.0

    # Result cache
    cache_ttl_seconds: float = 3600.0

    @classmethod
    def from_settings(cls, settings: Any) -> "ExtractionConfig":
        """Build extraction configuration from application settings."""
        return cls(
            min_text_length=settings.min_text_length,
            max_text_length=settings.max_text_length,
            max_processing_time=settings.max_processing_time,
            pattern_timeout=settings.pattern_timeout,
            max_contacts=settings.max_contacts,
            max_pattern_contacts=settings.max_pattern_contacts,
            max_matches_per_pattern=settings.max_matches_per_pattern,
            high_confidence_threshold=settings.high_confidence_threshold,
            medium_confidence_threshold=settings.medium_confidence_threshold,
            low_confidence_threshold=settings.low_confidence_threshold,
            min_contact_confidence=settings.min_contact_confidence,
            phone_style=PhoneStyle(settings.phone_format.lower()),
            preserve_tabs=settings.preserve_tabs,
            ai_enabled=settings.ai_enabled,
            ai_timeout=settings.ai_timeout,
            cache_ttl_seconds=settings.cache_ttl_seconds,
        )

    @classmethod
    def create_high_precision(cls) -> "ExtractionConfig":
        """Create configuration optimized for high precision."""
        return cls(
            min_contact_confidence=0.7,
            high_confidence_threshold=0.9,
            medium_confidence_threshold=0.7,
            low_confidence_threshold=0.5,
        )

    @classmethod
    def create_high_recall(cls) -> "ExtractionConfig":
        """Create configuration optimized for high recall."""
        return cls(
            min_contact_confidence=0.0,
            high_confidence_threshold=0.7,
            medium_confidence_threshold=0.5,
            low_confidence_threshold=0.3,
            max_contacts=1000,
        )


@dataclass
class ExtractionOptions:
    """Per-call options of the public extraction entry point."""

    max_contacts: Optional[int] = None
    max_processing_time: Optional[float] = None  # seconds
    preferred_strategy: Optional[Union[StrategyKind, str]] = None
    role_preferences: List[str] = field(default_factory=list)
    disable_ai: bool = False
    bypass_cache: bool = False

    # Document processor hints, used only for classification
    file_name: Optional[str] = None
    mime_type: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.preferred_strategy, str):
            try:
                self.preferred_strategy = StrategyKind(self.preferred_strategy.strip().lower())
            except ValueError:
                raise InputValidationError(
                    f"Unknown preferred strategy: {self.preferred_strategy!r}"
                )
        if self.max_contacts is not None and self.max_contacts < 0:
            raise InputValidationError("max_contacts must not be negative")
        if self.max_processing_time is not None and self.max_processing_time <= 0:
            raise InputValidationError("max_processing_time must be positive")

    def cache_fields(self) -> Tuple[Any, ...]:
        """Option values that change the extraction output."""
        strategy = self.preferred_strategy.value if self.preferred_strategy else None
        return (
            self.max_contacts,
            strategy,
            tuple(sorted(role.lower() for role in self.role_preferences)),
            self.disable_ai,
            self.file_name,
        )


@dataclass(frozen=True)
class ExtractionResult:
    """Immutable outcome of one extraction."""

    success: bool
    contacts: Tuple[Contact, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def succeeded(
        cls, contacts: List[Contact], metadata: Optional[Dict[str, Any]] = None
    ) -> "ExtractionResult":
        """Create a successful result."""
        return cls(success=True, contacts=tuple(contacts), metadata=dict(metadata or {}))

    @classmethod
    def failed(
        cls, error: str, metadata: Optional[Dict[str, Any]] = None
    ) -> "ExtractionResult":
        """Create a failure result."""
        return cls(success=False, contacts=(), metadata=dict(metadata or {}), error=error)

    @property
    def has_contacts(self) -> bool:
        return len(self.contacts) > 0

    @property
    def contact_count(self) -> int:
        return len(self.contacts)

    def contacts_with_email(self) -> List[Contact]:
        return [c for c in self.contacts if c.email]

    def contacts_with_phone(self) -> List[Contact]:
        return [c for c in self.contacts if c.phone]

    def has_high_confidence(self, threshold: float = 0.8) -> bool:
        """Check whether every contact meets the threshold."""
        return self.has_contacts and all(c.confidence >= threshold for c in self.contacts)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        data: Dict[str, Any] = {
            "success": self.success,
            "contacts": [c.to_dict() for c in self.contacts],
            "metadata": self.metadata,
        }
        if self.error is not None:
            data["error"] = self.error
        return data
