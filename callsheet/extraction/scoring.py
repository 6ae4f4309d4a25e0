"""
Deduplication, confidence scoring and ordering of final contacts.
"""

from typing import Any, Dict, Iterable, List, Optional

import structlog

from .cleaners import ContactValidator
from .roles import RoleVocabulary, get_role_vocabulary
from .types import ConfidenceWeights, Contact, ContactSource


logger = structlog.get_logger(__name__)


class ContactScorer:
    """
    Final pass over the unioned candidate list.

    Groups candidates by dedup key, merges each group into one record,
    recomputes a blended confidence and orders the result by role
    priority.
    """

    def __init__(
        self,
        vocabulary: Optional[RoleVocabulary] = None,
        weights: Optional[ConfidenceWeights] = None,
        validator: Optional[ContactValidator] = None
    ):
        self.vocabulary = vocabulary or get_role_vocabulary()
        self.weights = weights or ConfidenceWeights()
        self.validator = validator or ContactValidator(self.vocabulary)
        self.logger = logger.bind(component="ContactScorer")

    def merge_contacts(self, primary: Contact, secondary: Contact) -> Contact:
        """
        Merge two records of the same person.

        Args:
            primary: Record whose non-empty fields win
            secondary: Record filling the gaps

        Returns:
            New merged record
        """
        merged = primary.copy()

        for attribute in ("name", "email", "phone", "company", "section", "raw_match"):
            if not getattr(merged, attribute) and getattr(secondary, attribute):
                setattr(merged, attribute, getattr(secondary, attribute))

        if not merged.has_role and secondary.has_role:
            merged.role = secondary.role
        if merged.line_number is None:
            merged.line_number = secondary.line_number
        if merged.ai_confidence is None:
            merged.ai_confidence = secondary.ai_confidence

        merged.confidence = max(primary.confidence, secondary.confidence)
        merged.validation_score = max(primary.validation_score, secondary.validation_score)

        if primary.source != secondary.source:
            sources = list(primary.merged_from or [primary.source.value])
            for source in secondary.merged_from or [secondary.source.value]:
                if source not in sources:
                    sources.append(source)
            merged.merged_from = sources
            if merged.original_source is None:
                merged.original_source = primary.source
            merged.source = ContactSource.MERGED

        return merged

    def deduplicate(self, contacts: Iterable[Contact]) -> List[Contact]:
        """Keep one merged record per dedup key, in first-seen order."""
        by_key: Dict[str, Contact] = {}
        for contact in contacts:
            key = contact.dedup_key
            if key in by_key:
                by_key[key] = self.merge_contacts(by_key[key], contact)
            else:
                by_key[key] = contact.copy()
        return list(by_key.values())

    def completeness(self, contact: Contact) -> float:
        """Weighted share of populated fields."""
        w = self.weights
        score = 0.0
        if contact.name:
            score += w.name_weight
        if contact.email:
            score += w.email_weight
        if contact.phone:
            score += w.phone_weight
        if contact.has_role:
            score += w.role_weight
        return score

    def blended_confidence(self, contact: Contact) -> float:
        """Blend source confidence, validation score and completeness."""
        w = self.weights
        validation = contact.validation_score or self.validator.validation_score(contact)

        confidence = (
            w.source * contact.confidence
            + w.validation * validation
            + w.completeness * self.completeness(contact)
        )

        if contact.source == ContactSource.AI_ENHANCED:
            confidence += w.ai_enhanced_bonus
        elif contact.source == ContactSource.MERGED:
            confidence += w.merged_bonus

        return max(0.0, min(1.0, confidence))

    def score(self, contacts: Iterable[Contact]) -> List[Contact]:
        """
        Deduplicate, score and sort contacts.

        Args:
            contacts: Unioned candidates of every strategy

        Returns:
            One record per person with blended confidence, in role priority order
        """
        contacts = list(contacts)
        scored = []
        for contact in self.deduplicate(contacts):
            if not contact.section:
                contact.section = self.vocabulary.section_for(contact.role)
            contact.confidence = self.blended_confidence(contact)
            scored.append(contact)

        self.logger.debug(
            "Contacts scored",
            candidates=len(contacts),
            unique=len(scored)
        )

        return self.sort_by_role_priority(scored)

    def sort_by_role_priority(self, contacts: Iterable[Contact]) -> List[Contact]:
        """Sort by role priority, ties by descending confidence."""
        return sorted(
            contacts,
            key=lambda c: (self.vocabulary.priority(c.role), -c.confidence),
        )

    def filter_by_confidence(self, contacts: Iterable[Contact], minimum: float) -> List[Contact]:
        return [c for c in contacts if c.confidence >= minimum]

    def filter_by_role_preferences(
        self, contacts: Iterable[Contact], preferences: Optional[List[str]]
    ) -> List[Contact]:
        """Keep contacts whose role contains any preferred role, case-insensitive."""
        contacts = list(contacts)
        wanted = [p.strip().lower() for p in preferences or [] if p and p.strip()]
        if not wanted:
            return contacts
        return [
            c for c in contacts
            if any(preference in c.role.lower() for preference in wanted)
        ]

    def quality_metrics(self, contacts: Iterable[Contact]) -> Dict[str, Any]:
        """Completeness and confidence distribution of final contacts."""
        contacts = list(contacts)
        total = len(contacts)
        if not total:
            return {
                "total_contacts": 0,
                "average_confidence": 0.0,
                "average_completeness": 0.0,
                "confidence_distribution": {"high": 0, "medium": 0, "low": 0},
                "sources": {},
            }

        distribution = {"high": 0, "medium": 0, "low": 0}
        sources: Dict[str, int] = {}
        for contact in contacts:
            if contact.confidence >= 0.8:
                distribution["high"] += 1
            elif contact.confidence >= 0.5:
                distribution["medium"] += 1
            else:
                distribution["low"] += 1
            sources[contact.source.value] = sources.get(contact.source.value, 0) + 1

        return {
            "total_contacts": total,
            "average_confidence": sum(c.confidence for c in contacts) / total,
            "average_completeness": sum(self.completeness(c) for c in contacts) / total,
            "confidence_distribution": distribution,
            "sources": sources,
        }
