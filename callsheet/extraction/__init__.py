"""
Call sheet contact extraction module.

This module extracts contacts (name, role, email, phone, company) from
the text of production documents such as call sheets, crew lists and
talent sheets, using a bank of regex patterns, line component assembly
and an optional AI collaborator.
"""

from .ai import AIEnhancementRunner, AnthropicContactEnhancer, ContactEnhancer, merge_ai_contacts
from .cache import ExtractionCache, InMemoryExtractionCache, make_cache_key
from .classifier import DocumentClassifier
from .cleaners import ContactCleaner, ContactValidator
from .components import ComponentExtractor
from .normalizer import TextNormalizer
from .patterns import PatternLibrary, PatternSetExtractor
from .roles import RoleVocabulary, get_role_vocabulary
from .scoring import ContactScorer
from .service import ContactExtractionService
from .strategy import (
    AIOnlyStrategy,
    ComponentStrategy,
    ExtractionStrategy,
    HybridStrategy,
    PatternStrategy,
    StrategyPlan,
    StrategySelector,
)
from .types import (
    DEFAULT_ROLE,
    AIEnhancementError,
    AIMode,
    AIResponseError,
    ConfigurationError,
    Contact,
    ContactSource,
    DocumentAnalysis,
    ExtractionConfig,
    ExtractionError,
    ExtractionOptions,
    ExtractionResult,
    InputValidationError,
    PatternError,
    PhoneStyle,
    StrategyKind,
)

__all__ = [
    # Core classes
    "ContactExtractionService",
    "TextNormalizer",
    "DocumentClassifier",
    "ContactScorer",
    # Extractors
    "PatternSetExtractor",
    "PatternLibrary",
    "ComponentExtractor",
    "ContactCleaner",
    "ContactValidator",
    # Strategies
    "ExtractionStrategy",
    "PatternStrategy",
    "ComponentStrategy",
    "HybridStrategy",
    "AIOnlyStrategy",
    "StrategySelector",
    "StrategyPlan",
    # AI collaborator and cache
    "ContactEnhancer",
    "AnthropicContactEnhancer",
    "AIEnhancementRunner",
    "merge_ai_contacts",
    "ExtractionCache",
    "InMemoryExtractionCache",
    "make_cache_key",
    # Roles
    "RoleVocabulary",
    "get_role_vocabulary",
    "DEFAULT_ROLE",
    # Data types
    "Contact",
    "ContactSource",
    "DocumentAnalysis",
    "ExtractionConfig",
    "ExtractionOptions",
    "ExtractionResult",
    "AIMode",
    "PhoneStyle",
    "StrategyKind",
    # Exceptions
    "ExtractionError",
    "InputValidationError",
    "PatternError",
    "AIEnhancementError",
    "AIResponseError",
    "ConfigurationError",
]
