"""
Extraction strategies and the selector choosing between them.

Each strategy is an independent class behind the ``ExtractionStrategy``
protocol. The selector maps a document analysis onto a ``StrategyPlan``:
an ordered list of strategy kinds plus the AI mode of the extraction.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Set, runtime_checkable

import structlog

from .components import ComponentExtractor
from .patterns import PatternSetExtractor
from .types import (
    AIMode, Complexity, ConfigurationError, Contact, Deadline, DocumentAnalysis,
    DocumentType, ExtractionConfig, ExtractionOptions, StrategyCost,
    StrategyDescriptor, StrategyKind, StrategySpeed, Structure
)


logger = structlog.get_logger(__name__)


@dataclass
class StrategyOutcome:
    """Contacts produced by one strategy run."""

    kind: StrategyKind
    contacts: List[Contact] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    timed_out: bool = False
    truncated: bool = False


@runtime_checkable
class ExtractionStrategy(Protocol):
    """A way of turning document text into contact candidates."""

    kind: StrategyKind
    name: str
    cost: StrategyCost
    speed: StrategySpeed

    def is_available(self) -> bool:
        ...

    def confidence(self, analysis: DocumentAnalysis) -> float:
        ...

    async def extract(self, text: str, deadline: Deadline) -> StrategyOutcome:
        ...


class PatternStrategy:
    """Priority-ordered pattern bank."""

    kind = StrategyKind.PATTERN
    name = "Pattern-based extraction"
    cost = StrategyCost.FREE
    speed = StrategySpeed.FAST

    def __init__(self, extractor: PatternSetExtractor):
        self.extractor = extractor

    def is_available(self) -> bool:
        return True

    def confidence(self, analysis: DocumentAnalysis) -> float:
        if analysis.document_type == DocumentType.CALL_SHEET:
            return 0.95
        if analysis.structure in (Structure.STRUCTURED, Structure.TABULAR):
            return 0.85
        if analysis.structure == Structure.CSV_LIKE:
            return 0.75
        return 0.6

    async def extract(self, text: str, deadline: Deadline) -> StrategyOutcome:
        result = self.extractor.extract(text, deadline)
        return StrategyOutcome(
            kind=self.kind,
            contacts=result.contacts,
            metadata=result.metadata,
            timed_out=result.timed_out,
            truncated=result.truncated,
        )


class ComponentStrategy:
    """Line component decomposition and assembly."""

    kind = StrategyKind.COMPONENT
    name = "Component-based extraction"
    cost = StrategyCost.FREE
    speed = StrategySpeed.FAST

    def __init__(self, extractor: ComponentExtractor):
        self.extractor = extractor

    def is_available(self) -> bool:
        return True

    def confidence(self, analysis: DocumentAnalysis) -> float:
        return 0.8 if analysis.structure == Structure.STRUCTURED else 0.7

    async def extract(self, text: str, deadline: Deadline) -> StrategyOutcome:
        result = self.extractor.extract(text, deadline)
        return StrategyOutcome(
            kind=self.kind,
            contacts=result.contacts,
            metadata=result.metadata,
            timed_out=bool(result.metadata.get("timed_out")),
        )


class HybridStrategy:
    """
    Pattern bank output topped up with component extraction.

    Pattern contacts come first. A component contact is added only when
    its line was not already turned into a pattern contact.
    """

    kind = StrategyKind.HYBRID
    name = "Hybrid pattern and component extraction"
    cost = StrategyCost.FREE
    speed = StrategySpeed.MEDIUM

    def __init__(self, pattern: PatternStrategy, component: ComponentStrategy):
        self.pattern = pattern
        self.component = component

    def is_available(self) -> bool:
        return self.pattern.is_available() and self.component.is_available()

    def confidence(self, analysis: DocumentAnalysis) -> float:
        return max(self.pattern.confidence(analysis), self.component.confidence(analysis))

    async def extract(self, text: str, deadline: Deadline) -> StrategyOutcome:
        pattern_outcome = await self.pattern.extract(text, deadline)

        contacts = list(pattern_outcome.contacts)
        claimed_lines: Set[int] = {
            c.line_number for c in contacts if c.line_number is not None
        }
        seen_keys = {c.dedup_key for c in contacts}

        component_outcome = StrategyOutcome(kind=StrategyKind.COMPONENT)
        if not deadline.expired:
            component_outcome = await self.component.extract(text, deadline)

        added = 0
        for contact in component_outcome.contacts:
            if contact.line_number in claimed_lines or contact.dedup_key in seen_keys:
                continue
            seen_keys.add(contact.dedup_key)
            contacts.append(contact)
            added += 1

        return StrategyOutcome(
            kind=self.kind,
            contacts=contacts,
            metadata={
                "method": "hybrid",
                "pattern": pattern_outcome.metadata,
                "component": component_outcome.metadata,
                "pattern_contacts": len(pattern_outcome.contacts),
                "component_contacts_added": added,
            },
            timed_out=pattern_outcome.timed_out or component_outcome.timed_out or deadline.expired,
            truncated=pattern_outcome.truncated,
        )


class AIOnlyStrategy:
    """Extraction from scratch by the AI collaborator."""

    kind = StrategyKind.AI_ONLY
    name = "AI extraction"
    cost = StrategyCost.VARIABLE
    speed = StrategySpeed.MEDIUM

    def __init__(self, runner: Optional[Any] = None, timeout: float = 30.0):
        """
        Initialize AI-only strategy.

        Args:
            runner: ``AIEnhancementRunner``; the strategy is unavailable without one
            timeout: Seconds the collaborator may take
        """
        self.runner = runner
        self.timeout = timeout

    def is_available(self) -> bool:
        return self.runner is not None and self.runner.is_available()

    def confidence(self, analysis: DocumentAnalysis) -> float:
        if analysis.document_type == DocumentType.UNKNOWN or analysis.complexity == Complexity.HIGH:
            return 0.95
        if analysis.structure == Structure.UNSTRUCTURED:
            return 0.90
        return 0.88

    async def extract(self, text: str, deadline: Deadline) -> StrategyOutcome:
        if self.runner is None:
            raise ConfigurationError("AI extraction requested without an AI collaborator")

        start_time = time.time()
        contacts = await self.runner.run(
            text, [], AIMode.EXTRACT, min(self.timeout, deadline.remaining)
        )
        return StrategyOutcome(
            kind=self.kind,
            contacts=contacts,
            metadata={
                "method": "ai_only",
                "contacts": len(contacts),
                **self.runner.last_stats,
                "processing_time": time.time() - start_time,
            },
        )


def ensure_complete(strategies: Mapping[StrategyKind, ExtractionStrategy]) -> None:
    """
    Check that every strategy kind has an implementation.

    Raises:
        ConfigurationError: If a kind is missing or registered under the wrong key
    """
    missing = [kind.value for kind in StrategyKind if kind not in strategies]
    if missing:
        raise ConfigurationError(f"No strategy registered for: {', '.join(missing)}")

    for kind, strategy in strategies.items():
        if strategy.kind != kind:
            raise ConfigurationError(
                f"Strategy {strategy.name!r} registered as {kind.value} but is {strategy.kind.value}"
            )


@dataclass(frozen=True)
class StrategyPlan:
    """Ordered strategy kinds and AI mode chosen for one extraction."""

    kinds: List[StrategyKind]
    ai_mode: AIMode = AIMode.NONE
    reason: str = ""
    band: str = ""

    @property
    def primary(self) -> StrategyKind:
        return self.kinds[0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kinds": [kind.value for kind in self.kinds],
            "ai_mode": self.ai_mode.value,
            "reason": self.reason,
            "band": self.band,
        }


class StrategySelector:
    """
    Chooses the extraction plan for a document.

    Decision bands are evaluated once per extraction on the classifier
    confidence: pattern-only for confident, simple documents; pattern
    output reviewed or enhanced by the AI in the middle bands; AI-only
    extraction below the low threshold.
    """

    # Free and fast strategies win at or above these confidences
    FAST_PREFERENCE_THRESHOLD = 0.8
    FREE_PREFERENCE_THRESHOLD = 0.75

    def __init__(
        self,
        strategies: Mapping[StrategyKind, ExtractionStrategy],
        config: Optional[ExtractionConfig] = None
    ):
        """
        Initialize strategy selector.

        Args:
            strategies: One strategy per kind
            config: Extraction configuration with the band thresholds
        """
        ensure_complete(strategies)
        self.strategies = dict(strategies)
        self.config = config or ExtractionConfig()
        self.logger = logger.bind(component="StrategySelector")

    def select(
        self,
        analysis: DocumentAnalysis,
        options: Optional[ExtractionOptions] = None,
        ai_available: bool = True
    ) -> StrategyPlan:
        """
        Select the extraction plan.

        Args:
            analysis: Document analysis
            options: Per-call options; a preferred strategy short-circuits the bands
            ai_available: Whether the AI collaborator can be used for this call

        Returns:
            Strategy plan
        """
        options = options or ExtractionOptions()
        ai_usable = ai_available and not options.disable_ai

        if options.preferred_strategy is not None:
            plan = self._preferred_plan(options.preferred_strategy, ai_usable)
        else:
            plan = self._band_plan(analysis, ai_usable)

        self.logger.debug(
            "Strategy selected",
            kinds=[kind.value for kind in plan.kinds],
            ai_mode=plan.ai_mode.value,
            band=plan.band,
            reason=plan.reason,
        )
        return plan

    def _preferred_plan(self, preferred: StrategyKind, ai_usable: bool) -> StrategyPlan:
        if preferred != StrategyKind.AI_ONLY:
            return StrategyPlan(
                kinds=[preferred],
                reason=f"Preferred strategy {preferred.value} requested",
                band="preferred",
            )

        if ai_usable:
            return StrategyPlan(
                kinds=[StrategyKind.AI_ONLY, StrategyKind.HYBRID],
                ai_mode=AIMode.EXTRACT,
                reason="Preferred strategy ai_only requested",
                band="preferred",
            )

        return StrategyPlan(
            kinds=[StrategyKind.HYBRID],
            reason="Preferred strategy ai_only requested but AI is unavailable; using hybrid",
            band="preferred",
        )

    def _band_plan(self, analysis: DocumentAnalysis, ai_usable: bool) -> StrategyPlan:
        confidence = analysis.confidence
        config = self.config

        if (
            confidence >= config.high_confidence_threshold
            and analysis.complexity == Complexity.LOW
        ):
            return StrategyPlan(
                kinds=[StrategyKind.PATTERN, StrategyKind.COMPONENT],
                reason=f"High confidence {confidence:.2f} on a low complexity document",
                band="pattern_only",
            )

        if confidence >= config.medium_confidence_threshold:
            band, mode = "ai_validation", AIMode.VALIDATE
            reason = f"Medium confidence {confidence:.2f}; AI validates pattern output"
        elif confidence >= config.low_confidence_threshold:
            band, mode = "ai_enhancement", AIMode.ENHANCE
            reason = f"Low confidence {confidence:.2f}; AI enhances pattern output"
        else:
            band = "ai_only"
            if ai_usable:
                return StrategyPlan(
                    kinds=[StrategyKind.AI_ONLY, StrategyKind.HYBRID],
                    ai_mode=AIMode.EXTRACT,
                    reason=f"Very low confidence {confidence:.2f}; AI extracts from scratch",
                    band=band,
                )
            return StrategyPlan(
                kinds=[StrategyKind.HYBRID],
                reason=f"Very low confidence {confidence:.2f}; AI unavailable, using hybrid",
                band=band,
            )

        if not ai_usable:
            return StrategyPlan(
                kinds=[StrategyKind.HYBRID],
                reason=reason + " (AI unavailable, skipped)",
                band=band,
            )

        return StrategyPlan(kinds=[StrategyKind.HYBRID], ai_mode=mode, reason=reason, band=band)

    def describe(self, analysis: DocumentAnalysis) -> List[StrategyDescriptor]:
        """Describe every strategy for a document."""
        return [
            StrategyDescriptor(
                kind=kind,
                name=strategy.name,
                confidence=strategy.confidence(analysis),
                available=strategy.is_available(),
                cost=strategy.cost,
                speed=strategy.speed,
            )
            for kind, strategy in self.strategies.items()
        ]

    def recommend(self, analysis: DocumentAnalysis) -> Dict[str, Any]:
        """
        Rank available strategies for a document.

        Free and fast strategies are preferred when they are confident
        enough, even if a costly strategy scores higher.

        Args:
            analysis: Document analysis

        Returns:
            Recommended descriptor, ranked descriptors and reasoning
        """
        available = [d for d in self.describe(analysis) if d.available]
        if not available:
            return {"recommended": None, "ranked": [], "reasoning": "No strategy available"}

        ranked = sorted(
            available,
            key=lambda d: (
                -round(d.confidence, 2),
                d.cost != StrategyCost.FREE,
                d.speed != StrategySpeed.FAST,
            ),
        )

        free_fast = [
            d for d in ranked
            if d.cost == StrategyCost.FREE and d.speed == StrategySpeed.FAST
        ]
        free = [d for d in ranked if d.cost == StrategyCost.FREE]

        if free_fast and free_fast[0].confidence >= self.FAST_PREFERENCE_THRESHOLD:
            recommended = free_fast[0]
            reasoning = (
                f"{recommended.name} is free and fast with confidence {recommended.confidence:.2f}"
            )
        elif free and free[0].confidence >= self.FREE_PREFERENCE_THRESHOLD:
            recommended = free[0]
            reasoning = f"{recommended.name} is free with confidence {recommended.confidence:.2f}"
        else:
            recommended = ranked[0]
            reasoning = f"{recommended.name} has the highest confidence {recommended.confidence:.2f}"

        return {
            "recommended": recommended,
            "ranked": ranked,
            "reasoning": reasoning,
        }

    def health(self) -> Dict[str, Any]:
        """Availability of every strategy."""
        strategies = {
            kind.value: {"name": strategy.name, "available": strategy.is_available()}
            for kind, strategy in self.strategies.items()
        }
        return {
            "strategies": strategies,
            "ai_available": strategies[StrategyKind.AI_ONLY.value]["available"],
            "healthy": all(
                status["available"]
                for kind, status in strategies.items()
                if kind != StrategyKind.AI_ONLY.value
            ),
        }
