"""
AI collaborator for contact validation, enhancement and extraction.

The collaborator receives a capped excerpt of the document plus the
current candidate list and answers with ``{"contacts": [...]}``. Only the
merge of that answer into the local candidates is core logic; every
failure of the collaborator surfaces as ``AIEnhancementError`` so the
caller can fall back to local output.
"""

import asyncio
import json
import random
import re
from typing import Any, Dict, List, Optional, Protocol, Tuple

import httpx
import structlog
from pydantic import ValidationError

from ..schemas.contacts import AIContact, AIContactsResponse
from .cleaners import ContactCleaner, ContactValidator
from .types import (
    AIEnhancementError, AIMode, AIResponseError, Contact, ContactSource, digits_only
)


logger = structlog.get_logger(__name__)


RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 529}
INITIAL_BACKOFF = 0.5
MAX_BACKOFF = 8.0
BACKOFF_MULTIPLIER = 2.0
JITTER_FACTOR = 0.1

ANTHROPIC_VERSION = "2023-06-01"


class ContactEnhancer(Protocol):
    """Collaborator answering with the ``{"contacts": [...]}`` JSON contract."""

    def is_available(self) -> bool:
        ...

    async def enhance(self, text: str, contacts: List[Contact], mode: AIMode) -> Dict[str, Any]:
        ...


MODE_INSTRUCTIONS = {
    AIMode.VALIDATE: (
        "Review the contacts extracted from this production document. Correct "
        "names, roles, emails and phone numbers that were read wrongly. Only "
        "return people who are already in the list."
    ),
    AIMode.ENHANCE: (
        "Review the contacts extracted from this production document. Correct "
        "any mistakes and add every person with an email or phone number that "
        "the list is missing."
    ),
    AIMode.EXTRACT: (
        "Extract every person from this production document who has an email "
        "address or a phone number."
    ),
}

RESPONSE_FORMAT = (
    'Respond with JSON only, in the form {"contacts": [{"name": "", "role": "", '
    '"email": "", "phone": "", "company": "", "confidence": 0.0}]}. Use uppercase '
    "role titles such as PRODUCER, PHOTOGRAPHER or MUA."
)


class AnthropicContactEnhancer:
    """
    Contact enhancer backed by the Anthropic Messages API.

    Uses an ``httpx.AsyncClient`` per call unless a client is injected.
    Rate limits and server errors are retried with exponential backoff.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "claude-3-5-haiku-latest",
        base_url: str = "https://api.anthropic.com",
        timeout: float = 30.0,
        max_retries: int = 2,
        max_excerpt_chars: int = 3000,
        max_prompt_contacts: int = 20,
        max_tokens: int = 2000,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize Anthropic contact enhancer.

        Args:
            api_key: Anthropic API key; the enhancer is unavailable without one
            model: Model name
            base_url: API base URL
            timeout: Request timeout in seconds
            max_retries: Retries after the first attempt
            max_excerpt_chars: Document characters sent in the prompt
            max_prompt_contacts: Candidates sent in the prompt
            max_tokens: Maximum output tokens
            client: Optional shared HTTP client
        """
        self.api_key = api_key
        self.model = model
        self.endpoint = base_url.rstrip("/") + "/v1/messages"
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.max_excerpt_chars = max_excerpt_chars
        self.max_prompt_contacts = max_prompt_contacts
        self.max_tokens = max_tokens
        self.client = client

        self.logger = logger.bind(component="AnthropicContactEnhancer")

    @classmethod
    def from_settings(cls, settings: Any) -> "AnthropicContactEnhancer":
        """Create enhancer from application settings."""
        return cls(
            api_key=settings.anthropic_api_key,
            model=settings.ai_model,
            base_url=settings.ai_base_url,
            timeout=settings.ai_timeout,
            max_retries=settings.ai_max_retries,
            max_excerpt_chars=settings.ai_max_excerpt_chars,
            max_prompt_contacts=settings.ai_max_prompt_contacts,
        )

    def is_available(self) -> bool:
        return bool(self.api_key)

    async def enhance(self, text: str, contacts: List[Contact], mode: AIMode) -> Dict[str, Any]:
        """
        Ask the model for a corrected or extracted contact list.

        Args:
            text: Normalized document text
            contacts: Current candidates
            mode: How the model is used

        Returns:
            Parsed JSON object of the reply

        Raises:
            AIEnhancementError: If the API is unreachable or keeps failing
            AIResponseError: If the reply holds no JSON object
        """
        if not self.is_available():
            raise AIEnhancementError("No Anthropic API key configured")

        prompt = self.build_prompt(text, contacts, mode)
        body = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": 0.0,
            "messages": [{"role": "user", "content": prompt}],
        }

        if self.client is not None:
            data = await self._post_with_retries(self.client, body)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                data = await self._post_with_retries(client, body)

        reply = self._reply_text(data)
        return extract_json_object(reply)

    def build_prompt(self, text: str, contacts: List[Contact], mode: AIMode) -> str:
        """Build the user prompt for one mode."""
        if mode not in MODE_INSTRUCTIONS:
            raise AIEnhancementError(f"AI mode {mode.value} does not call the model")

        sections = [MODE_INSTRUCTIONS[mode], RESPONSE_FORMAT]

        if mode != AIMode.EXTRACT and contacts:
            candidates = [
                {
                    "name": c.name,
                    "role": c.role,
                    "email": c.email,
                    "phone": c.phone,
                    "company": c.company,
                }
                for c in contacts[:self.max_prompt_contacts]
            ]
            sections.append("Extracted contacts:\n" + json.dumps(candidates, indent=2))

        sections.append("Document:\n" + text[:self.max_excerpt_chars])
        return "\n\n".join(sections)

    async def _post_with_retries(
        self, client: httpx.AsyncClient, body: Dict[str, Any]
    ) -> Dict[str, Any]:
        headers = {
            "x-api-key": self.api_key or "",
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

        last_error = ""
        for attempt in range(self.max_retries + 1):
            try:
                response = await client.post(
                    self.endpoint, json=body, headers=headers, timeout=self.timeout
                )
            except httpx.TransportError as e:
                last_error = f"{type(e).__name__}: {e}"
                self.logger.warning("AI request failed", attempt=attempt + 1, error=last_error)
                await self._backoff(attempt, None)
                continue

            if response.status_code in RETRYABLE_STATUS_CODES:
                last_error = f"HTTP {response.status_code}"
                self.logger.warning(
                    "AI request rate limited or server error",
                    attempt=attempt + 1,
                    status_code=response.status_code,
                )
                await self._backoff(attempt, self._parse_retry_after(response))
                continue

            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise AIEnhancementError(
                    f"AI request failed with HTTP {e.response.status_code}"
                ) from e

            try:
                return response.json()
            except ValueError as e:
                raise AIResponseError("AI response body is not JSON") from e

        raise AIEnhancementError(
            f"AI request failed after {self.max_retries + 1} attempts: {last_error}"
        )

    async def _backoff(self, attempt: int, retry_after: Optional[float]) -> None:
        if attempt >= self.max_retries:
            return
        if retry_after is not None:
            delay = min(retry_after, MAX_BACKOFF)
        else:
            delay = min(INITIAL_BACKOFF * (BACKOFF_MULTIPLIER ** attempt), MAX_BACKOFF)
            delay += delay * JITTER_FACTOR * random.random()
        await asyncio.sleep(delay)

    @staticmethod
    def _parse_retry_after(response: httpx.Response) -> Optional[float]:
        retry_after = response.headers.get("retry-after")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                return None
        return None

    @staticmethod
    def _reply_text(data: Dict[str, Any]) -> str:
        blocks = data.get("content") if isinstance(data, dict) else None
        if not isinstance(blocks, list):
            raise AIResponseError("AI response has no content blocks")
        return "".join(
            block.get("text", "")
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text"
        )


def extract_json_object(reply: str) -> Dict[str, Any]:
    """
    Pull the JSON object out of a model reply.

    Args:
        reply: Reply text, optionally wrapped in prose or a code fence

    Returns:
        Parsed JSON object

    Raises:
        AIResponseError: If no JSON object can be parsed
    """
    if not reply or not reply.strip():
        raise AIResponseError("AI reply is empty")

    fenced = re.search(r"```(?:json)?\s*(.*?)```", reply, re.DOTALL)
    candidate = fenced.group(1) if fenced else reply

    start = candidate.find("{")
    end = candidate.rfind("}")
    if start == -1 or end <= start:
        raise AIResponseError("AI reply contains no JSON object")

    try:
        data = json.loads(candidate[start:end + 1])
    except json.JSONDecodeError as e:
        raise AIResponseError(f"AI reply is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise AIResponseError("AI reply JSON is not an object")
    return data


def ai_contact_to_contact(ai_contact: AIContact) -> Contact:
    """Convert a schema-validated AI contact into a candidate."""
    return Contact(
        name=ai_contact.name,
        role=ai_contact.role,
        email=ai_contact.email,
        phone=ai_contact.phone,
        company=ai_contact.company,
        confidence=ai_contact.confidence,
        source=ContactSource.AI_DISCOVERED,
        pattern_name="ai",
        ai_confidence=ai_contact.confidence,
    )


def _fields_compatible(a: Contact, b: Contact) -> bool:
    phone_a, phone_b = digits_only(a.phone), digits_only(b.phone)
    if phone_a and phone_b and phone_a != phone_b:
        return False
    email_a, email_b = a.email.lower(), b.email.lower()
    if email_a and email_b and email_a != email_b:
        return False
    return True


def _overlay(existing: Contact, ai_contact: Contact) -> None:
    for attribute in ("name", "email", "phone", "company"):
        value = getattr(ai_contact, attribute)
        if value:
            setattr(existing, attribute, value)
    if ai_contact.has_role:
        existing.role = ai_contact.role

    if existing.source not in (ContactSource.AI_ENHANCED, ContactSource.AI_DISCOVERED):
        existing.original_source = existing.source
    existing.source = ContactSource.AI_ENHANCED
    existing.ai_confidence = ai_contact.confidence
    existing.confidence = max(existing.confidence, ai_contact.confidence)


def merge_ai_contacts(
    pattern_contacts: List[Contact],
    ai_contacts: List[Contact],
    allow_new: bool = True
) -> List[Contact]:
    """
    Merge AI contacts into locally extracted candidates.

    An AI contact whose dedup key, or whose name with no conflicting
    phone or email, matches a local candidate overlays its non-empty
    fields onto it and retags it ``ai_enhanced``. Other AI contacts are
    added as ``ai_discovered`` when ``allow_new`` is set.

    Args:
        pattern_contacts: Local candidates; left unmodified
        ai_contacts: Cleaned and validated AI contacts
        allow_new: Whether AI contacts without a local match are kept

    Returns:
        Merged candidates, local order first
    """
    merged = [contact.copy() for contact in pattern_contacts]
    by_key: Dict[str, Contact] = {contact.dedup_key: contact for contact in merged}
    by_name: Dict[str, List[Contact]] = {}
    for contact in merged:
        by_name.setdefault(" ".join(contact.name.lower().split()), []).append(contact)

    for ai_contact in ai_contacts:
        match = by_key.get(ai_contact.dedup_key)
        if match is None:
            name_key = " ".join(ai_contact.name.lower().split())
            match = next(
                (c for c in by_name.get(name_key, []) if _fields_compatible(c, ai_contact)),
                None,
            )

        if match is not None:
            _overlay(match, ai_contact)
            continue

        if not allow_new:
            continue

        discovered = ai_contact.copy()
        discovered.source = ContactSource.AI_DISCOVERED
        merged.append(discovered)
        by_key[discovered.dedup_key] = discovered
        by_name.setdefault(" ".join(discovered.name.lower().split()), []).append(discovered)

    return merged


class AIEnhancementRunner:
    """
    Runs one AI step: call, schema validation, cleaning and merge.

    Failures raise ``AIEnhancementError``; a timeout raises
    ``asyncio.TimeoutError``. Local candidates are never modified.
    """

    def __init__(
        self,
        enhancer: ContactEnhancer,
        cleaner: ContactCleaner,
        validator: ContactValidator
    ):
        self.enhancer = enhancer
        self.cleaner = cleaner
        self.validator = validator
        self.logger = logger.bind(component="AIEnhancementRunner")

        self.last_stats: Dict[str, int] = {}

    def is_available(self) -> bool:
        try:
            return bool(self.enhancer.is_available())
        except Exception as e:
            self.logger.warning("AI availability check failed", error=str(e))
            return False

    async def run(
        self,
        text: str,
        contacts: List[Contact],
        mode: AIMode,
        timeout: float
    ) -> List[Contact]:
        """
        Run the AI step.

        Args:
            text: Normalized document text
            contacts: Local candidates
            mode: AI mode; ``NONE`` returns the candidates unchanged
            timeout: Seconds the collaborator may take

        Returns:
            Merged candidates
        """
        if mode == AIMode.NONE:
            return list(contacts)

        if timeout <= 0:
            raise asyncio.TimeoutError()

        try:
            raw = await asyncio.wait_for(
                self.enhancer.enhance(text, list(contacts), mode), timeout=timeout
            )
        except (AIEnhancementError, asyncio.TimeoutError):
            raise
        except httpx.HTTPError as e:
            raise AIEnhancementError(f"AI request failed: {e}") from e

        try:
            response = AIContactsResponse.model_validate(raw)
        except ValidationError as e:
            raise AIResponseError(
                f"AI response violates the contact schema: {e.error_count()} errors"
            ) from e

        ai_contacts, rejected = self._clean_ai_contacts(response.contacts)
        merged = merge_ai_contacts(contacts, ai_contacts, allow_new=mode != AIMode.VALIDATE)

        # Overlaid fields change how well-formed a contact is
        for contact in merged:
            if contact.source == ContactSource.AI_ENHANCED:
                contact.validation_score = self.validator.validation_score(contact)

        self.last_stats = {
            "returned": len(response.contacts),
            "rejected": rejected,
            "enhanced": sum(1 for c in merged if c.source == ContactSource.AI_ENHANCED),
            "discovered": sum(1 for c in merged if c.source == ContactSource.AI_DISCOVERED),
        }
        self.logger.debug("AI step completed", mode=mode.value, **self.last_stats)

        return merged

    def _clean_ai_contacts(self, ai_contacts: List[AIContact]) -> Tuple[List[Contact], int]:
        accepted: List[Contact] = []
        rejected = 0
        for ai_contact in ai_contacts:
            contact = self.cleaner.clean(ai_contact_to_contact(ai_contact))
            if not self.validator.is_valid(contact):
                rejected += 1
                continue
            contact.validation_score = self.validator.validation_score(contact)
            accepted.append(contact)
        return accepted, rejected
