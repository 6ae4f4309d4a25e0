"""
Contact extraction service: the public entry point of the pipeline.
"""

import asyncio
import time
import uuid
from typing import Any, Dict, List, Optional, Tuple

import structlog

from ..core.logging import bind_extraction_id, clear_extraction_id, log_error_with_context
from .ai import AIEnhancementRunner, AnthropicContactEnhancer, ContactEnhancer
from .cache import ExtractionCache, InMemoryExtractionCache, make_cache_key
from .classifier import DocumentClassifier
from .cleaners import ContactCleaner, ContactValidator, validation_stats
from .components import ComponentExtractor
from .normalizer import TextNormalizer
from .patterns import PatternSetExtractor
from .roles import RoleVocabulary, get_role_vocabulary
from .scoring import ContactScorer
from .strategy import (
    AIOnlyStrategy, ComponentStrategy, ExtractionStrategy, HybridStrategy,
    PatternStrategy, StrategyOutcome, StrategyPlan, StrategySelector
)
from .types import (
    AIEnhancementError, AIMode, Contact, Deadline, DocumentAnalysis,
    ExtractionConfig, ExtractionOptions, ExtractionResult, StrategyKind
)


logger = structlog.get_logger(__name__)

# Phone digits a pattern or AI contact needs without an email
PATTERN_MIN_PHONE_DIGITS = 7


class ContactExtractionService:
    """
    Extracts contacts from production document text.

    Normalizes and classifies the text, runs the selected strategy plan,
    optionally lets the AI collaborator validate or enhance the local
    output, then deduplicates, scores, filters and orders the contacts.
    ``extract`` never raises; every failure becomes a failed result.
    """

    def __init__(
        self,
        config: Optional[ExtractionConfig] = None,
        enhancer: Optional[ContactEnhancer] = None,
        cache: Optional[ExtractionCache] = None,
        vocabulary: Optional[RoleVocabulary] = None
    ):
        """
        Initialize extraction service.

        Args:
            config: Extraction configuration
            enhancer: Optional AI collaborator
            cache: Optional result cache
            vocabulary: Role vocabulary
        """
        self.config = config or ExtractionConfig()
        self.vocabulary = vocabulary or get_role_vocabulary()
        self.cache = cache
        self.logger = logger.bind(component="ContactExtractionService")

        phone_style = self.config.phone_style
        cleaner = ContactCleaner(self.vocabulary, phone_style)
        validator = ContactValidator(self.vocabulary, PATTERN_MIN_PHONE_DIGITS)

        self.normalizer = TextNormalizer(self.vocabulary, preserve_tabs=self.config.preserve_tabs)
        self.classifier = DocumentClassifier()
        self.pattern_extractor = PatternSetExtractor(
            vocabulary=self.vocabulary,
            phone_style=phone_style,
            max_matches_per_pattern=self.config.max_matches_per_pattern,
            max_contacts=self.config.max_pattern_contacts,
            timeout=self.config.pattern_timeout,
            min_phone_digits=PATTERN_MIN_PHONE_DIGITS,
        )
        self.component_extractor = ComponentExtractor(self.vocabulary, phone_style)
        self.ai_runner = (
            AIEnhancementRunner(enhancer, cleaner, validator) if enhancer is not None else None
        )

        pattern_strategy = PatternStrategy(self.pattern_extractor)
        component_strategy = ComponentStrategy(self.component_extractor)
        self.strategies: Dict[StrategyKind, ExtractionStrategy] = {
            StrategyKind.PATTERN: pattern_strategy,
            StrategyKind.COMPONENT: component_strategy,
            StrategyKind.HYBRID: HybridStrategy(pattern_strategy, component_strategy),
            StrategyKind.AI_ONLY: AIOnlyStrategy(self.ai_runner, self.config.ai_timeout),
        }
        self.selector = StrategySelector(self.strategies, self.config)
        self.scorer = ContactScorer(self.vocabulary, self.config.weights, validator)

        self.stats = {
            "total_extractions": 0,
            "successful_extractions": 0,
            "failed_extractions": 0,
            "cache_hits": 0,
            "ai_calls": 0,
            "ai_failures": 0,
            "timeouts": 0,
            "total_contacts": 0,
            "total_processing_time": 0.0,
        }

    @classmethod
    def from_settings(cls, settings: Optional[Any] = None) -> "ContactExtractionService":
        """
        Wire a service from application settings.

        Args:
            settings: Application settings; the cached settings when omitted

        Returns:
            Service with cache and, when an API key is configured, the Anthropic enhancer
        """
        if settings is None:
            from ..core.config import get_settings
            settings = get_settings()

        cache = None
        if settings.cache_enabled:
            cache = InMemoryExtractionCache(
                max_entries=settings.cache_max_entries,
                default_ttl=settings.cache_ttl_seconds,
            )

        enhancer = AnthropicContactEnhancer.from_settings(settings) if settings.ai_configured else None

        return cls(
            config=ExtractionConfig.from_settings(settings),
            enhancer=enhancer,
            cache=cache,
            vocabulary=get_role_vocabulary(settings.roles_config_path),
        )

    @property
    def ai_available(self) -> bool:
        return (
            self.config.ai_enabled
            and self.ai_runner is not None
            and self.ai_runner.is_available()
        )

    async def extract(
        self, text: Any, options: Optional[ExtractionOptions] = None
    ) -> ExtractionResult:
        """
        Extract contacts from document text.

        Args:
            text: Extracted document text
            options: Per-call options

        Returns:
            Extraction result; failures are reported, never raised
        """
        start_time = time.time()
        extraction_id = uuid.uuid4().hex
        bind_extraction_id(extraction_id)
        self.stats["total_extractions"] += 1

        try:
            result = await self._extract(text, options or ExtractionOptions(), extraction_id, start_time)

        except Exception as e:
            log_error_with_context(self.logger, e, {"operation": "extract"})
            result = ExtractionResult.failed(
                f"Extraction failed: {e}",
                metadata=self._base_metadata(extraction_id, start_time),
            )

        finally:
            clear_extraction_id()

        processing_time = time.time() - start_time
        self.stats["total_processing_time"] += processing_time
        if result.success:
            self.stats["successful_extractions"] += 1
            self.stats["total_contacts"] += result.contact_count
        else:
            self.stats["failed_extractions"] += 1

        return result

    async def _extract(
        self,
        text: Any,
        options: ExtractionOptions,
        extraction_id: str,
        start_time: float
    ) -> ExtractionResult:
        # Step 1: Input validation
        if not isinstance(text, str):
            return ExtractionResult.failed(
                "Text must be a string", metadata=self._base_metadata(extraction_id, start_time)
            )

        if not text.strip():
            return ExtractionResult.succeeded(
                [], metadata=self._base_metadata(extraction_id, start_time)
            )

        if len(text.strip()) < self.config.min_text_length:
            return ExtractionResult.failed(
                "Text is too short", metadata=self._base_metadata(extraction_id, start_time)
            )

        truncated_input = len(text) > self.config.max_text_length
        if truncated_input:
            self.logger.warning(
                "Input text truncated",
                text_length=len(text),
                max_text_length=self.config.max_text_length,
            )
            text = text[:self.config.max_text_length]

        # Step 2: Normalization
        normalized = self.normalizer.normalize(text)

        # Step 3: Cache lookup
        cache_key = None
        if self.cache is not None:
            cache_key = make_cache_key(normalized, options)
            if not options.bypass_cache:
                cached = self._cached_result(cache_key, extraction_id, start_time)
                if cached is not None:
                    return cached

        deadline = Deadline(options.max_processing_time or self.config.max_processing_time)

        # Step 4: Document classification
        analysis = self.classifier.classify(normalized, options.file_name)

        # Step 5: Strategy selection
        plan = self.selector.select(analysis, options, ai_available=self.ai_available)

        # Step 6: Local extraction
        ai_info: Dict[str, Any] = {"mode": plan.ai_mode.value, "status": "skipped", "error": None}
        outcome, failures = await self._run_plan(plan, normalized, deadline, ai_info)

        if outcome is None:
            message = "All extraction strategies failed: " + "; ".join(
                f"{kind}: {error}" for kind, error in failures
            )
            return ExtractionResult.failed(
                message,
                metadata={
                    **self._base_metadata(extraction_id, start_time),
                    "strategy": plan.primary.value,
                    "strategy_reason": plan.reason,
                    "analysis": analysis.to_dict(),
                    "ai": ai_info,
                    "strategy_failures": [
                        {"strategy": kind, "error": error} for kind, error in failures
                    ],
                },
            )

        # Step 7: AI validation or enhancement
        contacts = outcome.contacts
        if plan.ai_mode in (AIMode.VALIDATE, AIMode.ENHANCE):
            contacts = await self._apply_ai(plan.ai_mode, normalized, contacts, deadline, ai_info)

        # Step 8: Dedup, scoring, filtering and ordering
        final_contacts = self._finalize(contacts, options)

        timed_out = outcome.timed_out or deadline.expired
        if timed_out:
            self.stats["timeouts"] += 1
            self.logger.warning("Extraction hit its deadline, returning partial results")

        metadata = self._build_metadata(
            extraction_id=extraction_id,
            start_time=start_time,
            text=normalized,
            analysis=analysis,
            plan=plan,
            outcome=outcome,
            contacts=final_contacts,
            ai_info=ai_info,
            timed_out=timed_out,
            truncated=truncated_input or outcome.truncated,
            failures=failures,
        )

        result = ExtractionResult.succeeded(final_contacts, metadata)

        # Step 9: Cache store
        if cache_key is not None and result.has_contacts and not timed_out:
            self._store_result(cache_key, result)

        self.logger.info(
            "Extraction completed",
            strategy=outcome.kind.value,
            contacts=result.contact_count,
            ai_status=ai_info["status"],
            processing_time=metadata["processing_time"],
        )

        return result

    async def _run_plan(
        self,
        plan: StrategyPlan,
        text: str,
        deadline: Deadline,
        ai_info: Dict[str, Any]
    ) -> Tuple[Optional[StrategyOutcome], List[Tuple[str, str]]]:
        """Run plan kinds in order; the first non-empty outcome wins."""
        outcome: Optional[StrategyOutcome] = None
        failures: List[Tuple[str, str]] = []

        for kind in plan.kinds:
            if outcome is not None and deadline.expired:
                break

            if kind == StrategyKind.AI_ONLY:
                self.stats["ai_calls"] += 1

            try:
                candidate = await self._dispatch(kind, text, deadline)

            except asyncio.TimeoutError:
                failures.append((kind.value, "timed out"))
                if kind == StrategyKind.AI_ONLY:
                    self._record_ai_failure(ai_info, "timed_out", "AI extraction timed out")
                continue

            except AIEnhancementError as e:
                failures.append((kind.value, str(e)))
                self._record_ai_failure(ai_info, "failed", str(e))
                continue

            except Exception as e:
                failures.append((kind.value, str(e)))
                self.logger.warning(
                    "Strategy failed, trying next strategy",
                    strategy=kind.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            if kind == StrategyKind.AI_ONLY:
                ai_info["status"] = "succeeded"
                ai_info.update(self.ai_runner.last_stats)

            outcome = candidate
            if candidate.contacts:
                break

        return outcome, failures

    async def _dispatch(self, kind: StrategyKind, text: str, deadline: Deadline) -> StrategyOutcome:
        """Run one strategy kind."""
        return await self.strategies[kind].extract(text, deadline)

    async def _apply_ai(
        self,
        mode: AIMode,
        text: str,
        contacts: List[Contact],
        deadline: Deadline,
        ai_info: Dict[str, Any]
    ) -> List[Contact]:
        """Run the AI step; any failure keeps the local contacts."""
        if self.ai_runner is None:
            ai_info["error"] = "AI collaborator not configured"
            return contacts

        timeout = min(self.config.ai_timeout, deadline.remaining)
        if timeout <= 0:
            ai_info["error"] = "No time left for the AI step"
            return contacts

        self.stats["ai_calls"] += 1
        try:
            merged = await self.ai_runner.run(text, contacts, mode, timeout)

        except asyncio.TimeoutError:
            self._record_ai_failure(ai_info, "timed_out", f"AI step timed out after {timeout:.1f}s")
            return contacts

        except AIEnhancementError as e:
            self._record_ai_failure(ai_info, "failed", str(e))
            return contacts

        except Exception as e:
            self.logger.error(
                "Unexpected AI step failure",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            self._record_ai_failure(ai_info, "failed", str(e))
            return contacts

        ai_info["status"] = "succeeded"
        ai_info.update(self.ai_runner.last_stats)
        return merged

    def _record_ai_failure(self, ai_info: Dict[str, Any], status: str, error: str) -> None:
        self.stats["ai_failures"] += 1
        ai_info["status"] = status
        ai_info["error"] = error
        self.logger.warning("AI step failed, using local contacts", status=status, error=error)

    def _finalize(self, contacts: List[Contact], options: ExtractionOptions) -> List[Contact]:
        scored = self.scorer.score(contacts)
        scored = self.scorer.filter_by_confidence(scored, self.config.min_contact_confidence)
        scored = self.scorer.filter_by_role_preferences(scored, options.role_preferences)

        max_contacts = (
            options.max_contacts if options.max_contacts is not None else self.config.max_contacts
        )
        return scored[:max_contacts]

    def _cached_result(
        self, cache_key: str, extraction_id: str, start_time: float
    ) -> Optional[ExtractionResult]:
        try:
            cached = self.cache.get(cache_key)
        except Exception as e:
            self.logger.warning("Cache lookup failed", error=str(e))
            return None

        if cached is None:
            return None

        self.stats["cache_hits"] += 1
        self.logger.debug("Cache hit", cache_key=cache_key[:12])

        return ExtractionResult.succeeded(
            [contact.copy() for contact in cached.contacts],
            metadata={
                **cached.metadata,
                "cache_hit": True,
                "extraction_id": extraction_id,
                "processing_time": time.time() - start_time,
            },
        )

    def _store_result(self, cache_key: str, result: ExtractionResult) -> None:
        snapshot = ExtractionResult.succeeded(
            [contact.copy() for contact in result.contacts], dict(result.metadata)
        )
        try:
            self.cache.set(cache_key, snapshot, self.config.cache_ttl_seconds)
        except Exception as e:
            self.logger.warning("Cache store failed", error=str(e))

    def _base_metadata(self, extraction_id: str, start_time: float) -> Dict[str, Any]:
        return {
            "extraction_id": extraction_id,
            "processing_time": time.time() - start_time,
            "cache_hit": False,
        }

    def _build_metadata(
        self,
        extraction_id: str,
        start_time: float,
        text: str,
        analysis: DocumentAnalysis,
        plan: StrategyPlan,
        outcome: StrategyOutcome,
        contacts: List[Contact],
        ai_info: Dict[str, Any],
        timed_out: bool,
        truncated: bool,
        failures: List[Tuple[str, str]]
    ) -> Dict[str, Any]:
        """Assemble result metadata."""
        confidence = (
            sum(c.confidence for c in contacts) / len(contacts) if contacts else 0.0
        )

        metadata = {
            **self._base_metadata(extraction_id, start_time),
            "strategy": outcome.kind.value,
            "strategy_reason": plan.reason,
            "strategy_plan": plan.to_dict(),
            "document_type": analysis.document_type.value,
            "document_confidence": analysis.confidence,
            "confidence": confidence,
            "text_length": len(text),
            "patterns_used": self._patterns_used(outcome),
            "analysis": analysis.to_dict(),
            "ai": ai_info,
            "timed_out": timed_out,
            "truncated": truncated,
            "quality": self.scorer.quality_metrics(contacts),
            "validation": validation_stats(contacts),
            "extraction": outcome.metadata,
        }
        if failures:
            metadata["strategy_failures"] = [
                {"strategy": kind, "error": error} for kind, error in failures
            ]
        return metadata

    def _patterns_used(self, outcome: StrategyOutcome) -> Dict[str, int]:
        if outcome.kind == StrategyKind.PATTERN:
            return dict(outcome.metadata.get("patterns_used", {}))
        if outcome.kind == StrategyKind.HYBRID:
            return dict(outcome.metadata.get("pattern", {}).get("patterns_used", {}))
        return {}

    def health_check(self) -> Dict[str, Any]:
        """Strategy availability of this service."""
        health = self.selector.health()
        health["cache_enabled"] = self.cache is not None
        return health

    def get_extraction_statistics(self) -> Dict[str, Any]:
        """Get running extraction statistics."""
        total = self.stats["total_extractions"]
        statistics: Dict[str, Any] = {
            **self.stats,
            "success_rate": self.stats["successful_extractions"] / max(1, total),
            "average_processing_time": self.stats["total_processing_time"] / max(1, total),
            "average_contacts": (
                self.stats["total_contacts"] / max(1, self.stats["successful_extractions"])
            ),
            "ai_available": self.ai_available,
        }

        cache_stats = getattr(self.cache, "stats", None)
        if callable(cache_stats):
            statistics["cache"] = cache_stats()

        return statistics
