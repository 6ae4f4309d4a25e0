"""
Text normalization for OCR and PDF extraction artifacts.
"""

import re
from typing import Dict, List, Optional, Pattern, Tuple

import structlog

from .roles import RoleVocabulary, get_role_vocabulary


logger = structlog.get_logger(__name__)


class TextNormalizer:
    """Repairs document text before any pattern matching runs."""

    # Typographic characters mapped to ASCII
    CHARACTER_MAP = {
        "\u2018": "'", "\u2019": "'", "\u201a": "'", "\u201b": "'", "\u2032": "'",
        "\u201c": '"', "\u201d": '"', "\u201e": '"', "\u201f": '"', "\u2033": '"',
        "\u2010": "-", "\u2011": "-", "\u2012": "-", "\u2013": "-", "\u2014": "-",
        "\u2015": "-", "\u2212": "-",
        "\u2026": "...",
        "\u00a0": " ", "\u2007": " ", "\u202f": " ",
        "\ufeff": "", "\u200b": "",
    }

    def __init__(
        self,
        vocabulary: Optional[RoleVocabulary] = None,
        preserve_tabs: bool = False
    ):
        """
        Initialize text normalizer.

        Args:
            vocabulary: Role vocabulary providing letter-spaced keywords
            preserve_tabs: Keep one tab for whitespace runs containing a tab
        """
        self.vocabulary = vocabulary or get_role_vocabulary()
        self.preserve_tabs = preserve_tabs
        self.logger = logger.bind(component="TextNormalizer")

        self._translation = str.maketrans(self.CHARACTER_MAP)
        self._compile_patterns()

        self.stats: Dict[str, int] = {
            "texts_normalized": 0,
            "spaced_keywords_fixed": 0,
            "letter_runs_collapsed": 0,
        }

    def _compile_patterns(self) -> None:
        """Compile keyword and whitespace patterns."""
        self.keyword_patterns: List[Tuple[str, Pattern]] = []
        for keyword in self.vocabulary.spaced_keywords:
            flexible = r"\s*".join(re.escape(ch) for ch in keyword)
            self.keyword_patterns.append(
                (keyword, re.compile(r"\b" + flexible + r"\b", re.IGNORECASE))
            )

        # Four or more single letters separated by single spaces
        self.letter_run_pattern = re.compile(r"\b(?:[A-Za-z] ){3,}[A-Za-z]\b")

        self.tab_run_pattern = re.compile(r"[ \t]*\t[ \t]*")
        self.space_run_pattern = re.compile(r" {2,}")
        self.whitespace_run_pattern = re.compile(r"[ \t]+")
        self.trailing_space_pattern = re.compile(r"[ \t]+\n")
        self.blank_lines_pattern = re.compile(r"\n{3,}")

    def normalize(self, text: str) -> str:
        """
        Normalize document text.

        Args:
            text: Raw extracted text

        Returns:
            Normalized text with the same semantic content
        """
        if not isinstance(text, str) or not text:
            return ""

        self.stats["texts_normalized"] += 1

        text = text.replace("\r\n", "\n").replace("\r", "\n")
        text = text.translate(self._translation)

        text = self._fix_spaced_keywords(text)
        text = self._collapse_letter_runs(text)

        if self.preserve_tabs:
            text = self.tab_run_pattern.sub("\t", text)
            text = self.space_run_pattern.sub(" ", text)
        else:
            text = self.whitespace_run_pattern.sub(" ", text)

        text = self.trailing_space_pattern.sub("\n", text)
        text = self.blank_lines_pattern.sub("\n\n", text)

        self.logger.debug("Text normalized", length=len(text))

        return text

    def _fix_spaced_keywords(self, text: str) -> str:
        """Rejoin role keywords that OCR split into single letters."""
        for keyword, pattern in self.keyword_patterns:

            def _replace(match, keyword=keyword):
                found = match.group(0)
                if not any(ch.isspace() for ch in found):
                    return found
                self.stats["spaced_keywords_fixed"] += 1
                letters = found.replace(" ", "")
                if letters.isupper():
                    return keyword.upper()
                if letters[:1].isupper():
                    return keyword.capitalize()
                return keyword

            text = pattern.sub(_replace, text)

        return text

    def _collapse_letter_runs(self, text: str) -> str:
        """Collapse other runs of letter-spaced words."""

        def _replace(match):
            self.stats["letter_runs_collapsed"] += 1
            return match.group(0).replace(" ", "")

        return self.letter_run_pattern.sub(_replace, text)
