"""
Component-first contact extraction.

Text is decomposed line by line into independent typed components (role
labels, candidate names, phone numbers and email addresses). Components
on the same line are then assembled into contact candidates, cleaned and
validated. Every step is a constant number of regex passes per line.
"""

import re
import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import structlog

from .cleaners import ContactCleaner, ContactValidator
from .roles import RoleVocabulary, get_role_vocabulary
from .types import (
    DEFAULT_ROLE, Contact, ContactSource, Deadline, PhoneStyle
)


logger = structlog.get_logger(__name__)


class ComponentKind(Enum):
    """Types of line components."""
    ROLE = "role"
    NAME = "name"
    PHONE = "phone"
    EMAIL = "email"


@dataclass
class LineInfo:
    """One non-empty line of the document."""

    number: int  # 1-based over raw lines
    text: str
    has_colon: bool = False
    has_number: bool = False
    has_email: bool = False


@dataclass
class Component:
    """A typed token found on a line."""

    kind: ComponentKind
    value: str
    line_number: int
    start: int
    confidence: float = 1.0


@dataclass
class LineGroup:
    """First component of each type found on one line."""

    line: LineInfo
    role: Optional[Component] = None
    name: Optional[Component] = None
    phone: Optional[Component] = None
    email: Optional[Component] = None

    @property
    def is_candidate(self) -> bool:
        return self.name is not None and (self.phone is not None or self.email is not None)


@dataclass
class ComponentExtractionResult:
    """Contacts and statistics of one component extraction pass."""

    contacts: List[Contact] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


NAME_WORD = r"[A-Z][a-z]+(?:[A-Z][a-z]+)?(?:['\-][A-Z]?[a-z]+)?"


class ComponentExtractor:
    """
    Single-pass component extractor.

    Splits text into lines, pulls role, name, phone and email components
    from each line and assembles a contact from every line that carries
    a name and at least one way to reach the person.
    """

    def __init__(
        self,
        vocabulary: Optional[RoleVocabulary] = None,
        phone_style: PhoneStyle = PhoneStyle.E164,
        min_phone_digits: int = 10
    ):
        """
        Initialize component extractor.

        Args:
            vocabulary: Role vocabulary
            phone_style: Output format of cleaned phone numbers
            min_phone_digits: Digits a phone needs without an email
        """
        self.vocabulary = vocabulary or get_role_vocabulary()
        self.cleaner = ContactCleaner(self.vocabulary, phone_style)
        self.validator = ContactValidator(self.vocabulary, min_phone_digits)

        self.logger = logger.bind(component="ComponentExtractor")
        self.patterns = self._compile_patterns()

    def _compile_patterns(self) -> Dict[str, re.Pattern]:
        """Compile component patterns."""
        return {
            "role": re.compile(r"^\s*([^:\n]{2,50}):"),
            "name": re.compile(r"\b(" + NAME_WORD + r"(?:[ \t]+" + NAME_WORD + r"){0,3})\b"),
            "phone": re.compile(
                r"(?:\+\d{1,3}[\s\-.]?)?(?:\(?\d{3}\)?[\s\-.]?)?\d{3}[\s\-.]?\d{4}\b"
            ),
            "email": re.compile(
                r"\b[A-Za-z0-9][A-Za-z0-9._%+-]*@[A-Za-z0-9][A-Za-z0-9.-]*\.[A-Za-z]{2,}\b"
            ),
            "digit": re.compile(r"\d"),
        }

    def extract(self, text: str, deadline: Optional[Deadline] = None) -> ComponentExtractionResult:
        """
        Extract contacts from text.

        Args:
            text: Normalized document text
            deadline: Optional soft deadline; lines after it are skipped

        Returns:
            Accepted contacts with extraction statistics
        """
        start_time = time.time()

        if not text or not text.strip():
            return ComponentExtractionResult(metadata=self._build_metadata(
                lines=0, components=Counter(), groups=0, candidates=0,
                accepted=[], rejections=Counter(), timed_out=False,
                processing_time=time.time() - start_time,
            ))

        # Step 1: Line parse
        lines = self._parse_lines(text)

        # Step 2 and 3: Component sweep and per-line grouping
        groups: List[LineGroup] = []
        component_counts: Counter = Counter()
        timed_out = False

        for line in lines:
            if deadline is not None and deadline.expired:
                timed_out = True
                break

            components = self._extract_line_components(line)
            for component in components:
                component_counts[component.kind.value] += 1

            group = self._group_line(line, components)
            if group.is_candidate:
                groups.append(group)

        # Step 4: Assembly, cleaning and validation
        accepted: List[Contact] = []
        rejections: Counter = Counter()

        for group in groups:
            contact = self._assemble_contact(group)
            self.cleaner.clean(contact)

            reason = self.validator.validate(contact)
            if reason:
                rejections[reason] += 1
                continue

            contact.validation_score = self.validator.validation_score(contact)
            accepted.append(contact)

        processing_time = time.time() - start_time

        self.logger.debug(
            "Component extraction completed",
            lines=len(lines),
            candidates=len(groups),
            accepted=len(accepted),
            rejected=sum(rejections.values()),
            processing_time=processing_time,
        )

        return ComponentExtractionResult(
            contacts=accepted,
            metadata=self._build_metadata(
                lines=len(lines), components=component_counts, groups=len(groups),
                candidates=len(groups), accepted=accepted, rejections=rejections,
                timed_out=timed_out, processing_time=processing_time,
            ),
        )

    def _parse_lines(self, text: str) -> List[LineInfo]:
        """Split text into non-empty lines with character flags."""
        lines = []
        for index, raw in enumerate(text.split("\n"), start=1):
            stripped = raw.strip()
            if not stripped:
                continue
            lines.append(LineInfo(
                number=index,
                text=stripped,
                has_colon=":" in stripped,
                has_number=bool(self.patterns["digit"].search(stripped)),
                has_email="@" in stripped,
            ))
        return lines

    def _extract_line_components(self, line: LineInfo) -> List[Component]:
        """Match every component type on one line."""
        components: List[Component] = []
        text = line.text

        if line.has_colon:
            role_match = self.patterns["role"].match(text)
            if role_match:
                role_text = role_match.group(1).strip()
                components.append(Component(
                    kind=ComponentKind.ROLE,
                    value=role_text,
                    line_number=line.number,
                    start=role_match.start(1),
                    confidence=0.9 if self.vocabulary.is_known(role_text) else 0.6,
                ))

        for name_match in self.patterns["name"].finditer(text):
            name = self._strip_role_words(name_match.group(1))
            if not name:
                continue
            components.append(Component(
                kind=ComponentKind.NAME,
                value=name,
                line_number=line.number,
                start=name_match.start(1),
                confidence=self._calculate_name_confidence(name),
            ))

        masked = text
        if line.has_email:
            for email_match in self.patterns["email"].finditer(text):
                components.append(Component(
                    kind=ComponentKind.EMAIL,
                    value=email_match.group(0).lower(),
                    line_number=line.number,
                    start=email_match.start(),
                    confidence=0.95,
                ))
                # Digits inside an address are not a phone number
                masked = (
                    masked[:email_match.start()]
                    + " " * (email_match.end() - email_match.start())
                    + masked[email_match.end():]
                )

        if line.has_number:
            for phone_match in self.patterns["phone"].finditer(masked):
                components.append(Component(
                    kind=ComponentKind.PHONE,
                    value=phone_match.group(0).strip(),
                    line_number=line.number,
                    start=phone_match.start(),
                    confidence=0.9,
                ))

        return components

    def _group_line(self, line: LineInfo, components: List[Component]) -> LineGroup:
        """Keep the first component of each type, in textual order."""
        group = LineGroup(line=line)
        for component in sorted(components, key=lambda c: c.start):
            attribute = component.kind.value
            if getattr(group, attribute) is None:
                setattr(group, attribute, component)
        return group

    def _strip_role_words(self, candidate: str) -> str:
        """Drop role words around a capitalized run; keep it if a full name remains."""
        name, _ = self.vocabulary.split_role_words(candidate)

        if len(name.split()) < 2 or self.vocabulary.is_known(name):
            return ""
        return name

    def _assemble_contact(self, group: LineGroup) -> Contact:
        """Build a contact candidate from a line group."""
        name = group.name.value
        role = ""

        if group.role is not None and group.role.value.lower() != name.lower():
            role = group.role.value
        if not role:
            role = self._infer_role(group.line.text)

        return Contact(
            name=name,
            role=role,
            email=group.email.value if group.email else "",
            phone=group.phone.value if group.phone else "",
            company="",
            confidence=self._calculate_confidence(group),
            source=ContactSource.COMPONENT,
            line_number=group.line.number,
            raw_match=group.line.text,
            pattern_name="component",
        )

    def _infer_role(self, line_text: str) -> str:
        """Find a known role in the line context, else the default role."""
        return self.vocabulary.find_role(line_text) or DEFAULT_ROLE

    def _calculate_confidence(self, group: LineGroup) -> float:
        """Weighted component confidence of a line group."""
        confidence = 0.5

        if group.role is not None:
            confidence += 0.2
            if self.vocabulary.is_known(group.role.value):
                confidence += 0.1

        if group.name is not None:
            confidence += 0.1
            if len(group.name.value.split()) >= 2:
                confidence += 0.1

        if group.phone is not None:
            confidence += 0.1

        if group.email is not None:
            confidence += 0.1

        return min(1.0, confidence)

    def _calculate_name_confidence(self, name: str) -> float:
        """Confidence that a capitalized run is a person name."""
        words = len(name.split())
        if words == 2:
            return 0.9
        if words == 3:
            return 0.8
        return 0.6

    def _build_metadata(
        self,
        lines: int,
        components: Counter,
        groups: int,
        candidates: int,
        accepted: List[Contact],
        rejections: Counter,
        timed_out: bool,
        processing_time: float
    ) -> Dict[str, Any]:
        """Summarize one extraction pass."""
        rejected = sum(rejections.values())
        average_confidence = (
            sum(c.confidence for c in accepted) / len(accepted) if accepted else 0.0
        )
        return {
            "method": "component",
            "lines": lines,
            "components": {kind.value: components.get(kind.value, 0) for kind in ComponentKind},
            "line_groups": groups,
            "candidates": candidates,
            "accepted": len(accepted),
            "rejected": rejected,
            "rejection_rate": rejected / candidates if candidates else 0.0,
            "rejection_reasons": dict(rejections),
            "average_confidence": average_confidence,
            "timed_out": timed_out,
            "processing_time": processing_time,
        }
