"""
Role vocabulary used across extractors, cleaners and scoring.
"""

import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Pattern, Tuple

from ..config.loader import RoleVocabularyConfig, RoleVocabularyLoader
from .types import DEFAULT_ROLE

UNLISTED_PRIORITY = 99
DEFAULT_SECTION = "crew"


@dataclass(frozen=True)
class RoleVocabulary:
    """Known roles, synonyms, priorities and sections."""

    known_roles: FrozenSet[str]
    synonyms: Dict[str, str] = field(default_factory=dict)
    role_priority: Dict[str, int] = field(default_factory=dict)
    section_by_role: Dict[str, str] = field(default_factory=dict)
    spaced_keywords: Tuple[str, ...] = ()
    non_names: FrozenSet[str] = frozenset()

    @classmethod
    def from_config(cls, config: RoleVocabularyConfig) -> "RoleVocabulary":
        section_by_role = {}
        for section, roles in config.sections.items():
            for role in roles:
                section_by_role.setdefault(role, section)

        # Canonical targets of synonyms are roles too
        known = set(config.known_roles) | set(config.synonyms.values())

        return cls(
            known_roles=frozenset(known),
            synonyms=dict(config.synonyms),
            role_priority=dict(config.role_priority),
            section_by_role=section_by_role,
            spaced_keywords=tuple(config.spaced_keywords),
            non_names=frozenset(config.non_names),
        )

    def __post_init__(self):
        # Longest first so "CREATIVE DIRECTOR" wins over "DIRECTOR"
        ordered = sorted(self.known_roles, key=len, reverse=True)
        role_regex = re.compile(
            r"(?<![A-Z0-9])(" + "|".join(re.escape(r) for r in ordered) + r")(?![A-Z0-9])"
        ) if ordered else None

        synonym_keys = sorted(self.synonyms, key=len, reverse=True)
        synonym_regex = re.compile(
            r"(?<![A-Z0-9])(" + "|".join(re.escape(s) for s in synonym_keys) + r")(?![A-Z0-9])"
        ) if synonym_keys else None

        # Frozen dataclass; compiled helpers are cached on the instance
        object.__setattr__(self, "_role_regex", role_regex)
        object.__setattr__(self, "_synonym_regex", synonym_regex)

    def canonical(self, role: str) -> str:
        """
        Map an uppercase role onto its canonical form via the synonym table.

        A synonym inside a longer title is only rewritten when the result
        is itself a known role ("PHOTO GRAPHER" but not "VIDEO EDITOR").
        """
        if role in self.synonyms:
            return self.synonyms[role]

        synonym_regex: Optional[Pattern] = getattr(self, "_synonym_regex")
        if synonym_regex is None:
            return role

        rewritten = synonym_regex.sub(lambda m: self.synonyms[m.group(1)], role)
        return rewritten if rewritten in self.known_roles else role

    def is_known(self, text: str) -> bool:
        """Exact known role, or text containing a known role as a whole word."""
        upper = " ".join(text.upper().split())
        if upper in self.known_roles or upper in self.synonyms:
            return True
        return self.find_role(upper) is not None

    def find_role(self, text: str) -> Optional[str]:
        """Return the canonical form of the longest known role found in text."""
        role_regex: Optional[Pattern] = getattr(self, "_role_regex")
        if role_regex is None or not text:
            return None

        upper = text.upper()
        synonym_regex: Optional[Pattern] = getattr(self, "_synonym_regex")
        if synonym_regex is not None:
            match = synonym_regex.search(upper)
            if match:
                return self.synonyms[match.group(1)]

        match = role_regex.search(upper)
        return match.group(1) if match else None

    def split_role_words(self, text: str) -> Tuple[str, str]:
        """
        Split known-role words off the front and back of a name candidate.

        Args:
            text: Candidate such as "Producer Jane Smith" or "Jane Smith Producer"

        Returns:
            Tuple of (remaining words, role words)
        """
        words = text.split()
        leading: List[str] = []
        trailing: List[str] = []

        size = self._role_prefix_size(words)
        while size:
            leading.extend(words[:size])
            words = words[size:]
            size = self._role_prefix_size(words)

        while words and self.is_known(words[-1]):
            trailing.insert(0, words[-1])
            words = words[:-1]

        return " ".join(words), " ".join(leading + trailing)

    def _role_prefix_size(self, words: List[str]) -> int:
        """Number of leading words forming a known role, longest first."""
        for size in range(min(3, len(words)), 0, -1):
            phrase = " ".join(words[:size]).upper()
            if phrase in self.known_roles or phrase in self.synonyms:
                return size
        return 0

    def priority(self, role: str) -> int:
        """Sort priority of a role; lower sorts first."""
        key = (role or DEFAULT_ROLE).upper()
        return self.role_priority.get(key, UNLISTED_PRIORITY)

    def section_for(self, role: str) -> str:
        """Call sheet section a role belongs to."""
        if not role or role == DEFAULT_ROLE:
            return DEFAULT_SECTION
        upper = role.upper()
        if upper in self.section_by_role:
            return self.section_by_role[upper]
        found = self.find_role(upper)
        if found and found in self.section_by_role:
            return self.section_by_role[found]
        return DEFAULT_SECTION

    def known_role_list(self) -> List[str]:
        return sorted(self.known_roles)


@lru_cache(maxsize=8)
def _load_vocabulary(path: Optional[str]) -> RoleVocabulary:
    loader = RoleVocabularyLoader(Path(path) if path else None)
    return RoleVocabulary.from_config(loader.load())


def get_role_vocabulary(path: Optional[str] = None) -> RoleVocabulary:
    """
    Get the role vocabulary, loaded once per path.

    Args:
        path: Optional vocabulary YAML path; the packaged file when omitted

    Returns:
        Role vocabulary
    """
    return _load_vocabulary(str(path) if path else None)
