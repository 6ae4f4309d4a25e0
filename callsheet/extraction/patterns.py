"""
Pattern-set contact extraction.

A bank of composite regex patterns, each describing one complete contact
layout (role: name / phone, pipe tables, tab-delimited rows, ...), is
tried against the whole document in priority order. Each match yields a
contact directly; the first pattern to claim a line wins it.
"""

import bisect
import re
import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Pattern, Set, Tuple

import structlog

from .cleaners import ContactCleaner, ContactValidator
from .roles import RoleVocabulary, get_role_vocabulary
from .types import (
    DEFAULT_ROLE, Contact, ContactSource, Deadline, PatternError, PhoneStyle, digits_only
)


logger = structlog.get_logger(__name__)


# Building blocks shared by the pattern bank
EMAIL_RAW = r"[A-Za-z0-9][A-Za-z0-9._%+\-]*@[A-Za-z0-9][A-Za-z0-9.\-]*\.[A-Za-z]{2,}"
PHONE_RAW = r"\+?\d{0,3}[ .\-]?\(?\d{3}\)?[ .\-]?\d{3}[ .\-]?\d{4}"

ROLE = r"(?P<role>[^:\n|\t/]{2,50}?)"
NAME = r"(?P<name>[A-Za-z][A-Za-z0-9 .'\-]{0,60}?)"
NAME_CAPS = r"(?P<name>[A-Z][a-z]+(?:[ \t]+[A-Z][a-z'\-]+){1,3})"
EMAIL = r"(?P<email>" + EMAIL_RAW + r")"
PHONE = r"(?P<phone>" + PHONE_RAW + r")"
COMPANY = r"(?P<company>[^/\n]{2,60}?)"

BOL = r"^[ \t]*"
EOL = r"[ \t]*$"
SLASH = r"[ \t]*/[ \t]*"
LOOSE_SEP = r"[ \t]*[,/|\-:]?[ \t]*"


class PatternCategory(Enum):
    """Pattern families, from most to least specific."""
    STRUCTURED = "structured"
    SEMI_STRUCTURED = "semi_structured"
    UNSTRUCTURED = "unstructured"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ContactPattern:
    """One composite layout with its static confidence."""

    name: str
    category: PatternCategory
    regex: Pattern
    confidence: float
    derive_name_from_email: bool = False
    # Role column holds free text unless it is a known role
    require_known_role: bool = False


@dataclass
class PatternExtractionResult:
    """Contacts and statistics of one pattern-set pass."""

    contacts: List[Contact] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    timed_out: bool = False
    truncated: bool = False


class PatternLibrary:
    """Priority-ordered bank of contact patterns."""

    KNOWN_ROLE_PATTERNS = frozenset({"csv_name_role_contact"})

    def __init__(self):
        self.patterns = self._compile_patterns()

    def __iter__(self):
        return iter(self.patterns)

    def __len__(self) -> int:
        return len(self.patterns)

    def names(self) -> List[str]:
        return [p.name for p in self.patterns]

    def _compile_patterns(self) -> List[ContactPattern]:
        """Compile the pattern bank in priority order."""
        structured = PatternCategory.STRUCTURED
        semi = PatternCategory.SEMI_STRUCTURED
        unstructured = PatternCategory.UNSTRUCTURED
        fallback = PatternCategory.FALLBACK

        specs: List[Tuple[str, PatternCategory, str, float]] = [
            # Tab-delimited row: name, role, email, phone
            ("tabular_name_role_email_phone", structured,
             BOL + r"(?P<name>[A-Za-z][^\t\n]{1,60}?)\t(?P<role>[^\t\n]{2,50}?)\t"
             + EMAIL + r"\t" + PHONE + EOL, 0.95),

            # ROLE: Name / email / phone
            ("role_name_email_phone_slash", structured,
             BOL + ROLE + r":[ \t]*" + NAME + SLASH + EMAIL + SLASH + PHONE + EOL, 0.95),

            # ROLE: Name / phone / email
            ("role_name_phone_email_slash", structured,
             BOL + ROLE + r":[ \t]*" + NAME + SLASH + PHONE + SLASH + EMAIL + EOL, 0.95),

            # ROLE: Name / phone
            ("role_name_phone_slash", structured,
             BOL + ROLE + r":[ \t]*" + NAME + SLASH + PHONE + EOL, 0.95),

            # | Role | Name | contact | contact |
            ("table_pipe", structured,
             BOL + r"\|?[ \t]*(?P<role>[^|\n]{2,50}?)[ \t]*\|[ \t]*(?P<name>[^|\n]{2,60}?)[ \t]*\|"
             r"[ \t]*(?P<contact>[^|\n]+?)[ \t]*(?:\|[ \t]*(?P<contact2>[^|\n]*?)[ \t]*)?"
             r"(?:\|[ \t]*(?P<contact3>[^|\n]*?)[ \t]*)?\|?" + EOL, 0.9),

            # Name<TAB>Role<TAB>contact[<TAB>contact]
            ("tab_delimited", structured,
             BOL + r"(?P<name>[A-Za-z][^\t\n]{1,60}?)\t+(?P<role>[^\t\n]{2,50}?)\t+"
             r"(?P<contact>[^\t\n]+?)(?:\t+(?P<contact2>[^\t\n]+?))?" + EOL, 0.9),

            # Name, Role, contact[, contact]
            ("csv_name_role_contact", structured,
             BOL + r"(?P<name>[A-Za-z][A-Za-z .'\-]{1,60}?)[ \t]*,[ \t]*"
             r"(?P<role>[A-Za-z][^,\t\n@\d]{1,50}?)[ \t]*,[ \t]*"
             r"(?P<contact>[^,\n]+?)(?:[ \t]*,[ \t]*(?P<contact2>[^,\n]+?))?" + EOL, 0.9),

            # ROLE: Name / Company / phone
            ("role_name_company_phone", structured,
             BOL + ROLE + r":[ \t]*" + NAME + SLASH + COMPANY + SLASH + PHONE + EOL, 0.9),

            # ROLE: Name / email
            ("role_name_email_slash", structured,
             BOL + ROLE + r":[ \t]*" + NAME + SLASH + EMAIL + EOL, 0.9),

            # ROLE: Name - contact
            ("role_name_dash_contact", structured,
             BOL + ROLE + r":[ \t]*" + NAME + r"[ \t]+-[ \t]+(?P<contact>[^\n]+?)" + EOL, 0.85),

            # ROLE: Name (contact) contact
            ("role_name_parens", structured,
             BOL + ROLE + r":[ \t]*" + NAME + r"[ \t]*\((?P<contact>[^)\n]+)\)"
             r"(?:[ \t]*[,/\-]?[ \t]*(?P<contact2>[^\n]+?))?" + EOL, 0.85),

            # ROLE: Name
            # phone
            ("role_name_phone_nextline", structured,
             BOL + ROLE + r":[ \t]*" + NAME + r"[ \t]*\n[ \t]*" + PHONE + EOL, 0.85),

            # ROLE: Name, contact, contact
            ("role_name_comma_contact", structured,
             BOL + ROLE + r":[ \t]*" + NAME + r"[ \t]*,[ \t]*(?P<contact>[^\n]+?)" + EOL, 0.8),

            # ROLE: Name <anything> email-or-phone
            ("role_colon_flexible", structured,
             BOL + ROLE + r":[ \t]*" + NAME + LOOSE_SEP
             + r"(?P<contact>" + EMAIL_RAW + r"|" + PHONE_RAW + r")", 0.7),

            # Name - Role - contact
            ("name_role_phone_dash", semi,
             BOL + NAME + r"[ \t]+-[ \t]+" + ROLE + r"[ \t]+-[ \t]+(?P<contact>[^\n]+?)" + EOL, 0.8),

            # Name
            # phone
            ("multiline_name_phone", semi,
             BOL + NAME_CAPS + r"[ \t]*\n[ \t]*" + PHONE + EOL, 0.8),

            # Name (Role) contact
            ("name_role_parens_contact", semi,
             BOL + NAME + r"[ \t]*\((?P<role>[^)\n]{2,50})\)" + LOOSE_SEP
             + r"(?P<contact>[^\n]+?)" + EOL, 0.7),

            # Name, phone, email
            ("name_phone_email_line", semi,
             BOL + NAME_CAPS + LOOSE_SEP + PHONE + LOOSE_SEP + EMAIL + EOL, 0.7),

            # Name, email, phone
            ("name_email_phone_line", semi,
             BOL + NAME_CAPS + LOOSE_SEP + EMAIL + LOOSE_SEP + PHONE + EOL, 0.7),

            # Name <email>
            ("name_email_combo", semi,
             BOL + NAME_CAPS + LOOSE_SEP + r"<?" + EMAIL + r">?" + EOL, 0.7),

            # Name phone
            ("name_phone_only", semi,
             BOL + NAME_CAPS + LOOSE_SEP + PHONE + EOL, 0.7),

            # Name followed later on the line by an email
            ("name_email_in_text", unstructured,
             r"\b" + NAME_CAPS + r"[^\n@]{0,40}?" + EMAIL, 0.5),

            # Name followed later on the line by a phone
            ("name_phone_in_text", unstructured,
             r"\b" + NAME_CAPS + r"[^\n\d]{0,40}?" + PHONE, 0.5),

            # Any name-shaped run and phone on one line
            ("loose_name_phone", fallback,
             r"\b" + NAME_CAPS + r"[^\n]{0,80}?" + PHONE, 0.3),
        ]

        patterns = [
            ContactPattern(
                name=name,
                category=category,
                regex=re.compile(regex, re.MULTILINE),
                confidence=confidence,
                require_known_role=name in self.KNOWN_ROLE_PATTERNS,
            )
            for name, category, regex, confidence in specs
        ]

        # first.last@domain with no name anywhere near it
        patterns.insert(len(patterns) - 1, ContactPattern(
            name="email_derived_name",
            category=fallback,
            regex=re.compile(
                r"\b(?P<email>[A-Za-z]{2,}[._][A-Za-z]{2,}@[A-Za-z0-9][A-Za-z0-9.\-]*\.[A-Za-z]{2,})",
                re.MULTILINE,
            ),
            confidence=0.4,
            derive_name_from_email=True,
        ))

        return patterns


class PatternSetExtractor:
    """
    Pattern-set contact extractor.

    Runs every pattern of the library in priority order with a
    per-pattern match cap, an output cap and a soft wall-clock timeout.
    Limits stop processing after the current pattern and keep what was
    found so far.
    """

    SECTION_ALIASES = {
        "talent": "talent",
        "cast": "talent",
        "models": "talent",
        "crew": "crew",
        "vendors": "crew",
        "production": "production",
        "client": "client",
        "clients": "client",
        "agency": "client",
    }

    SECTION_BONUS = 0.1

    def __init__(
        self,
        vocabulary: Optional[RoleVocabulary] = None,
        phone_style: PhoneStyle = PhoneStyle.E164,
        max_matches_per_pattern: int = 500,
        max_contacts: int = 1000,
        timeout: float = 15.0,
        min_phone_digits: int = 7,
        library: Optional[PatternLibrary] = None
    ):
        """
        Initialize pattern-set extractor.

        Args:
            vocabulary: Role vocabulary
            phone_style: Output format of cleaned phone numbers
            max_matches_per_pattern: Matches examined per pattern
            max_contacts: Contacts returned at most
            timeout: Soft wall-clock budget in seconds
            min_phone_digits: Digits a phone needs without an email
            library: Pattern bank; the default bank when omitted
        """
        self.vocabulary = vocabulary or get_role_vocabulary()
        self.cleaner = ContactCleaner(self.vocabulary, phone_style)
        self.validator = ContactValidator(self.vocabulary, min_phone_digits)
        self.library = library or PatternLibrary()

        self.max_matches_per_pattern = max_matches_per_pattern
        self.max_contacts = max_contacts
        self.timeout = timeout

        self.logger = logger.bind(component="PatternSetExtractor")
        self._compile_line_patterns()

    def _compile_line_patterns(self) -> None:
        """Compile section header and skip patterns."""
        self.section_header = re.compile(
            r"^[ \t]*(?P<section>" + "|".join(self.SECTION_ALIASES) + r")[ \t]*:?[ \t]*$",
            re.IGNORECASE,
        )

        self.skip_patterns = [
            re.compile(
                r"^[ \t]*(?:call[ \t]*time|crew[ \t]*call|general[ \t]*call|shoot[ \t]*date|"
                r"date|location|address|weather|sunrise|sunset|parking|nearest[ \t]*hospital|"
                r"hospital|lunch|breakfast|wrap|notes?)[ \t]*:",
                re.IGNORECASE,
            ),
            re.compile(r"^[ \t]*\d{1,2}:\d{2}[ \t]*(?:am|pm)?\b", re.IGNORECASE),
            re.compile(
                r"^[ \t]*(?:monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b",
                re.IGNORECASE,
            ),
        ]

        self.email_search = re.compile(EMAIL_RAW)
        self.phone_search = re.compile(PHONE_RAW)

    def extract(self, text: str, deadline: Optional[Deadline] = None) -> PatternExtractionResult:
        """
        Extract contacts with the pattern bank.

        Args:
            text: Normalized document text
            deadline: Optional outer deadline; the tighter of it and the
                extractor timeout applies

        Returns:
            Contacts found before any limit triggered
        """
        start_time = time.time()
        deadline = deadline.child(self.timeout) if deadline else Deadline(self.timeout)

        result = PatternExtractionResult()
        if not text or not text.strip():
            result.metadata = self._build_metadata(
                Counter(), Counter(), Counter(), [], 0, 0, False, False, time.time() - start_time
            )
            return result

        line_starts, line_texts = self._index_lines(text)
        sections = self._map_sections(line_texts)
        skipped = self._find_skipped_lines(line_texts)

        contacts: List[Contact] = []
        seen_keys: Set[str] = set()
        claimed: Set[int] = set()

        patterns_used: Counter = Counter()
        categories_used: Counter = Counter()
        rejections: Counter = Counter()
        errors: List[Dict[str, str]] = []
        patterns_tried = 0
        matches_examined = 0

        for pattern in self.library:
            if deadline.expired:
                result.timed_out = True
                self.logger.warning(
                    "Pattern extraction timed out",
                    patterns_tried=patterns_tried,
                    contacts=len(contacts),
                )
                break

            if len(contacts) >= self.max_contacts:
                result.truncated = True
                break

            patterns_tried += 1

            try:
                for count, match in enumerate(pattern.regex.finditer(text), start=1):
                    if count > self.max_matches_per_pattern:
                        self.logger.debug(
                            "Pattern match cap reached",
                            pattern=pattern.name,
                            cap=self.max_matches_per_pattern,
                        )
                        break

                    matches_examined += 1

                    first_line = self._line_for(line_starts, match.start())
                    last_line = self._line_for(line_starts, max(match.start(), match.end() - 1))
                    span = range(first_line, last_line + 1)
                    if any(n in claimed or n in skipped for n in span):
                        continue

                    contact = self._build_contact(pattern, match, first_line, sections, line_texts)
                    if contact is None:
                        continue

                    self.cleaner.clean(contact)
                    reason = self.validator.validate(contact)
                    if reason:
                        rejections[reason] += 1
                        continue

                    key = contact.dedup_key
                    if key in seen_keys:
                        continue

                    contact.validation_score = self.validator.validation_score(contact)
                    seen_keys.add(key)
                    claimed.update(span)
                    contacts.append(contact)
                    patterns_used[pattern.name] += 1
                    categories_used[pattern.category.value] += 1

                    if len(contacts) >= self.max_contacts:
                        result.truncated = True
                        break

            except Exception as e:
                error = PatternError(str(e), pattern=pattern.name)
                self.logger.warning(
                    "Pattern failed, continuing with remaining patterns",
                    pattern=error.pattern,
                    error=str(error),
                )
                errors.append({"pattern": pattern.name, "error": str(e)})

        processing_time = time.time() - start_time

        self.logger.debug(
            "Pattern extraction completed",
            contacts=len(contacts),
            patterns_tried=patterns_tried,
            timed_out=result.timed_out,
            truncated=result.truncated,
            processing_time=processing_time,
        )

        result.contacts = contacts
        result.metadata = self._build_metadata(
            patterns_used, categories_used, rejections, errors,
            patterns_tried, matches_examined, result.timed_out, result.truncated,
            processing_time,
        )
        return result

    def _index_lines(self, text: str) -> Tuple[List[int], List[str]]:
        """Start offset and text of every line."""
        starts = [0]
        for index, char in enumerate(text):
            if char == "\n":
                starts.append(index + 1)
        return starts, text.split("\n")

    def _line_for(self, line_starts: List[int], offset: int) -> int:
        """1-based line number of a character offset."""
        return bisect.bisect_right(line_starts, offset)

    def _map_sections(self, line_texts: List[str]) -> Dict[int, str]:
        """Section of each line following a TALENT:/CREW:/... header."""
        sections: Dict[int, str] = {}
        current = ""
        for number, line in enumerate(line_texts, start=1):
            header = self.section_header.match(line)
            if header:
                current = self.SECTION_ALIASES[header.group("section").lower()]
                continue
            if current:
                sections[number] = current
        return sections

    def _find_skipped_lines(self, line_texts: List[str]) -> Set[int]:
        """Lines that are schedule or logistics headers, never contacts."""
        return {
            number
            for number, line in enumerate(line_texts, start=1)
            if any(p.match(line) for p in self.skip_patterns)
        }

    def _build_contact(
        self,
        pattern: ContactPattern,
        match: re.Match,
        line_number: int,
        sections: Dict[int, str],
        line_texts: List[str]
    ) -> Optional[Contact]:
        """Map named capture groups onto contact fields."""
        groups = {k: v.strip() for k, v in match.groupdict().items() if v and v.strip()}

        contact = Contact(
            name=groups.get("name", ""),
            role=groups.get("role", DEFAULT_ROLE),
            email=groups.get("email", ""),
            phone=groups.get("phone", ""),
            company=groups.get("company", ""),
            confidence=pattern.confidence,
            source=ContactSource.PATTERN,
            line_number=line_number,
            raw_match=match.group(0).strip(),
            pattern_name=pattern.name,
        )

        for group_name, value in sorted(groups.items()):
            if group_name.startswith("contact"):
                self._route_contact_value(contact, value)

        if pattern.derive_name_from_email:
            contact.name = self._name_from_email(contact.email)
            if not contact.name:
                return None

        # Tabular layouts do not always say which column holds the role
        if (
            contact.role != DEFAULT_ROLE
            and self.vocabulary.is_known(contact.name)
            and not self.vocabulary.is_known(contact.role)
        ):
            contact.name, contact.role = contact.role, contact.name

        if (
            pattern.require_known_role
            and contact.role != DEFAULT_ROLE
            and not self.vocabulary.is_known(contact.role)
        ):
            contact.company = contact.company or contact.role
            contact.role = DEFAULT_ROLE

        # Loose name captures run into role words on either side
        name, role_words = self.vocabulary.split_role_words(contact.name)
        if name and role_words:
            contact.name = name
            if contact.role == DEFAULT_ROLE:
                contact.role = role_words

        if contact.role == DEFAULT_ROLE:
            contact.role = self._infer_role(line_texts[line_number - 1])

        section = sections.get(line_number)
        if section:
            contact.section = section
            contact.confidence = min(1.0, contact.confidence + self.SECTION_BONUS)

        return contact

    def _route_contact_value(self, contact: Contact, value: str) -> None:
        """Route a generic contact capture to email, phone or company."""
        remainder = value

        email_match = self.email_search.search(remainder)
        if email_match:
            if not contact.email:
                contact.email = email_match.group(0)
            remainder = remainder[:email_match.start()] + " " + remainder[email_match.end():]

        phone_match = self.phone_search.search(remainder)
        if phone_match and len(digits_only(phone_match.group(0))) >= 7:
            if not contact.phone:
                contact.phone = phone_match.group(0)
            remainder = remainder[:phone_match.start()] + " " + remainder[phone_match.end():]

        leftover = remainder.strip(" \t,/|-:()")
        if leftover and not email_match and not phone_match and not contact.company:
            contact.company = leftover

    def _infer_role(self, line: str) -> str:
        """Known role mentioned on the line outside any email address."""
        return self.vocabulary.find_role(self.email_search.sub(" ", line)) or DEFAULT_ROLE

    def _name_from_email(self, email: str) -> str:
        """Derive "First Last" from a first.last address."""
        local = email.split("@", 1)[0]
        parts = [p for p in re.split(r"[._]", local) if p]
        if len(parts) != 2 or not all(p.isalpha() and len(p) >= 2 for p in parts):
            return ""
        return " ".join(p.capitalize() for p in parts)

    def _build_metadata(
        self,
        patterns_used: Counter,
        categories_used: Counter,
        rejections: Counter,
        errors: List[Dict[str, str]],
        patterns_tried: int,
        matches_examined: int,
        timed_out: bool,
        truncated: bool,
        processing_time: float
    ) -> Dict[str, Any]:
        """Summarize one extraction pass."""
        return {
            "method": "pattern",
            "patterns_available": len(self.library),
            "patterns_tried": patterns_tried,
            "patterns_used": dict(patterns_used),
            "categories_used": {
                category.value: categories_used.get(category.value, 0)
                for category in PatternCategory
            },
            "matches_examined": matches_examined,
            "rejected": sum(rejections.values()),
            "rejection_reasons": dict(rejections),
            "errors": errors,
            "timed_out": timed_out,
            "truncated": truncated,
            "processing_time": processing_time,
        }
