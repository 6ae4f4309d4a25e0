"""
Role vocabulary configuration loader.

This module loads the YAML role vocabulary (known roles, synonyms,
priorities and sections) used by every extractor, validates it against
a schema and falls back to a built-in core vocabulary when the file is
missing or invalid.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
import yaml
from pydantic import BaseModel, ValidationError, field_validator

logger = structlog.get_logger(__name__)

DEFAULT_ROLES_PATH = Path(__file__).parent / "roles.yaml"


class RoleVocabularyConfig(BaseModel):
    """Schema for the role vocabulary file."""

    version: str = "1.0"
    known_roles: List[str]
    synonyms: Dict[str, str] = {}
    role_priority: Dict[str, int] = {}
    sections: Dict[str, List[str]] = {}
    spaced_keywords: List[str] = []
    non_names: List[str] = []

    @field_validator("known_roles")
    @classmethod
    def _upper_roles(cls, value: List[str]) -> List[str]:
        roles = [" ".join(role.split()).upper() for role in value if role and role.strip()]
        if not roles:
            raise ValueError("known_roles must not be empty")
        return roles

    @field_validator("synonyms")
    @classmethod
    def _upper_synonyms(cls, value: Dict[str, str]) -> Dict[str, str]:
        return {
            " ".join(raw.split()).upper(): " ".join(canonical.split()).upper()
            for raw, canonical in value.items()
        }

    @field_validator("role_priority")
    @classmethod
    def _upper_priorities(cls, value: Dict[str, int]) -> Dict[str, int]:
        return {role.upper(): priority for role, priority in value.items()}

    @field_validator("sections")
    @classmethod
    def _upper_sections(cls, value: Dict[str, List[str]]) -> Dict[str, List[str]]:
        return {
            section.lower(): [role.upper() for role in roles]
            for section, roles in value.items()
        }

    @field_validator("spaced_keywords", "non_names")
    @classmethod
    def _lower_words(cls, value: List[str]) -> List[str]:
        return [word.lower() for word in value if word]


class RoleVocabularyLoader:
    """
    Loader for role vocabulary files.

    Manages loading, validation and caching of vocabulary configurations.
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize role vocabulary loader.

        Args:
            config_path: Path of the vocabulary YAML file
        """
        self.config_path = Path(config_path) if config_path else DEFAULT_ROLES_PATH
        self.logger = logger.bind(component="RoleVocabularyLoader")

        self._cached: Optional[RoleVocabularyConfig] = None

    def load(self) -> RoleVocabularyConfig:
        """
        Load the role vocabulary.

        Returns:
            Validated vocabulary configuration
        """
        if self._cached is not None:
            return self._cached

        try:
            raw = self._load_yaml_config(self.config_path)
            config = RoleVocabularyConfig.model_validate(raw)
            self.logger.info(
                "Loaded role vocabulary from file",
                path=str(self.config_path),
                roles=len(config.known_roles),
                version=config.version,
            )
        except (OSError, yaml.YAMLError, ValueError, ValidationError) as e:
            self.logger.error(
                "Error loading role vocabulary, using built-in defaults",
                path=str(self.config_path),
                error=str(e),
            )
            config = self._get_fallback_config()

        self._cached = config
        return config

    def _load_yaml_config(self, config_path: Path) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        with open(config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)

        if not isinstance(config, dict):
            raise ValueError("Configuration must be a dictionary")

        return config

    def _get_fallback_config(self) -> RoleVocabularyConfig:
        """Minimal vocabulary used when the file cannot be read."""
        return RoleVocabularyConfig(
            version="fallback",
            known_roles=[
                "PHOTOGRAPHER", "VIDEOGRAPHER", "DIRECTOR", "PRODUCER",
                "MUA", "HUA", "HMUA", "STYLIST", "MODEL", "TALENT", "ASSISTANT",
            ],
            synonyms={
                "MAKEUP ARTIST": "MUA",
                "MAKE UP ARTIST": "MUA",
                "MAKE-UP ARTIST": "MUA",
                "HAIR STYLIST": "HUA",
                "HAIRSTYLIST": "HUA",
                "HAIR & MAKEUP": "HMUA",
            },
            role_priority={
                "PRODUCER": 1, "DIRECTOR": 2, "PHOTOGRAPHER": 3,
                "STYLIST": 5, "MUA": 6, "MODEL": 7, "TALENT": 8,
                "ASSISTANT": 9, "CONTACT": 10,
            },
            spaced_keywords=["photographer", "producer", "director", "stylist"],
        )
