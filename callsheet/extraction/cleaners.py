"""
Field cleaners and validators shared by every extraction strategy.

Each cleaner is a pure function taking one raw field value and returning
its normalized form, or an empty string when the value cannot be
salvaged. The validators decide whether an assembled contact is kept.
"""

import re
from typing import Any, Dict, Iterable, Optional

from .roles import RoleVocabulary, get_role_vocabulary
from .types import DEFAULT_ROLE, Contact, PhoneStyle, digits_only


EMAIL_PATTERN = re.compile(
    r"^[A-Za-z0-9][A-Za-z0-9._%+-]*@[A-Za-z0-9][A-Za-z0-9.-]*\.[A-Za-z]{2,}$"
)

# Street, city and zip tokens that show up when an address is read as a role
ADDRESS_PATTERN = re.compile(
    r"\b(?:street|avenue|ave|road|rd|blvd|boulevard|suite|floor|"
    r"ny|nyc|brooklyn|manhattan|queens|bronx|\d{5})\b",
    re.IGNORECASE,
)

# Address tokens checked against names; city names are left out
NAME_ADDRESS_PATTERN = re.compile(
    r"\b(?:street|avenue|ave|road|rd|blvd|boulevard|suite|floor|ny|nyc|\d{5})\b",
    re.IGNORECASE,
)

# Words that mark a sheet header or note rather than a person
NON_NAME_PATTERN = re.compile(
    r"\b(?:page|line|row|column|call|time|date|location|address|"
    r"note|notes|please|total|schedule|email|phone|mobile|cell)\b",
    re.IGNORECASE,
)

ROLE_PREFIX_PATTERN = re.compile(
    r"^(?:PRODUCER|DIRECTOR|PHOTOGRAPHER|STYLIST|MUA|MODEL)\s+(?=\S)"
)

MAX_NAME_LENGTH = 100
MIN_NAME_LENGTH = 2
MAX_NAME_SPECIAL_CHARS = 2
MAX_EMAIL_LENGTH = 100
MIN_PHONE_DIGITS = 7
MAX_PHONE_DIGITS = 15


def clean_name(name: Optional[str]) -> str:
    """
    Clean a person name.

    Args:
        name: Raw name text

    Returns:
        Title-cased name, or empty string
    """
    if not name:
        return ""

    cleaned = re.sub(r"[^A-Za-z\s\-'.]", " ", name)
    cleaned = " ".join(cleaned.split())
    cleaned = ROLE_PREFIX_PATTERN.sub("", cleaned)
    cleaned = cleaned.strip(" -'")

    words = []
    for word in cleaned.split():
        # Keep deliberate mixed case such as "McDonald"
        if word.islower() or word.isupper():
            word = word.title()
        words.append(word)

    return " ".join(words)


def clean_role(role: Optional[str], vocabulary: Optional[RoleVocabulary] = None) -> str:
    """
    Clean a role label into its canonical uppercase form.

    Args:
        role: Raw role text
        vocabulary: Role vocabulary with the synonym table

    Returns:
        Canonical role, or empty string if the text is not a role
    """
    if not role:
        return ""

    vocabulary = vocabulary or get_role_vocabulary()

    cleaned = " ".join(role.split()).upper()
    cleaned = cleaned.strip(" :-|/,.*#")
    if not cleaned:
        return ""

    # Purely numeric labels are table indexes or times
    if not re.search(r"[A-Z]", cleaned):
        return ""

    return vocabulary.canonical(cleaned)


def clean_email(email: Optional[str]) -> str:
    """
    Clean an email address.

    Args:
        email: Raw email text

    Returns:
        Lowercased address, or empty string if invalid
    """
    if not email:
        return ""

    cleaned = email.strip().lower()
    if cleaned.startswith("mailto:"):
        cleaned = cleaned[len("mailto:"):]
    cleaned = cleaned.strip(" <>()[]{},;:'\"")

    if len(cleaned) > MAX_EMAIL_LENGTH or not EMAIL_PATTERN.match(cleaned):
        return ""

    return cleaned


def clean_phone(phone: Optional[str], style: PhoneStyle = PhoneStyle.E164) -> str:
    """
    Clean a phone number.

    Args:
        phone: Raw phone text
        style: Output format for North American numbers

    Returns:
        Formatted phone number, or empty string if fewer than 7 digits
    """
    if not phone:
        return ""

    stripped = phone.strip()
    has_plus = stripped.startswith("+")
    digits = digits_only(stripped)

    if len(digits) < MIN_PHONE_DIGITS:
        return ""

    if len(digits) == 10 and not has_plus:
        if style == PhoneStyle.DISPLAY:
            return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
        return f"+1{digits}"

    if len(digits) == 11 and digits.startswith("1"):
        if style == PhoneStyle.DISPLAY:
            return f"+1 ({digits[1:4]}) {digits[4:7]}-{digits[7:]}"
        return f"+{digits}"

    return f"+{digits}" if has_plus else digits


def clean_company(company: Optional[str]) -> str:
    """Clean a company name."""
    if not company:
        return ""

    cleaned = re.sub(r"[^\w\s\-.&]", " ", company)
    return " ".join(cleaned.split()).strip(" -.")


def is_valid_email(email: Optional[str]) -> bool:
    """Check full email grammar."""
    return bool(email) and len(email) <= MAX_EMAIL_LENGTH and bool(EMAIL_PATTERN.match(email))


def is_valid_phone(phone: Optional[str]) -> bool:
    """Check the phone has a plausible number of digits."""
    return MIN_PHONE_DIGITS <= len(digits_only(phone)) <= MAX_PHONE_DIGITS


def is_address_like(text: Optional[str]) -> bool:
    """Check for street, city or zip code tokens."""
    return bool(text) and bool(ADDRESS_PATTERN.search(text))


def is_likely_extraction_error(name: Optional[str]) -> bool:
    """Check whether a name is really a header, note or number."""
    if not name:
        return True

    stripped = name.strip()
    if len(stripped) <= 1:
        return True
    if digits_only(stripped) == stripped.replace(" ", ""):
        return True
    if "@" in stripped:
        return True

    return bool(NON_NAME_PATTERN.search(stripped))


def is_valid_name(name: Optional[str], vocabulary: Optional[RoleVocabulary] = None) -> bool:
    """
    Check that text is a plausible person name.

    Args:
        name: Cleaned name
        vocabulary: Role vocabulary with the non-name list

    Returns:
        True if the name passes length, character and header checks
    """
    if not name or not (MIN_NAME_LENGTH <= len(name) <= MAX_NAME_LENGTH):
        return False

    if not re.search(r"[A-Za-z]", name):
        return False

    special_chars = len(re.findall(r"[^A-Za-z\s]", name))
    if special_chars > MAX_NAME_SPECIAL_CHARS:
        return False

    vocabulary = vocabulary or get_role_vocabulary()
    lowered = " ".join(name.lower().split())
    if lowered in vocabulary.non_names:
        return False
    if any(
        re.search(r"\b" + re.escape(term) + r"\b", lowered)
        for term in vocabulary.non_names
        if " " in term
    ):
        return False

    if NAME_ADDRESS_PATTERN.search(name) or is_likely_extraction_error(name):
        return False

    return True


def infer_section(role: Optional[str], vocabulary: Optional[RoleVocabulary] = None) -> str:
    """Infer the call sheet section of a role."""
    vocabulary = vocabulary or get_role_vocabulary()
    return vocabulary.section_for(role or "")


class ContactCleaner:
    """Applies every field cleaner to a contact."""

    def __init__(
        self,
        vocabulary: Optional[RoleVocabulary] = None,
        phone_style: PhoneStyle = PhoneStyle.E164
    ):
        self.vocabulary = vocabulary or get_role_vocabulary()
        self.phone_style = phone_style

    def clean(self, contact: Contact) -> Contact:
        """
        Clean contact fields in place.

        Args:
            contact: Candidate contact

        Returns:
            The same contact, cleaned
        """
        contact.name = clean_name(contact.name)
        role = clean_role(contact.role, self.vocabulary)
        contact.role = DEFAULT_ROLE if role in ("", DEFAULT_ROLE.upper()) else role
        contact.email = clean_email(contact.email)
        contact.phone = clean_phone(contact.phone, self.phone_style)
        contact.company = clean_company(contact.company)
        contact.section = contact.section.strip().lower() if contact.section else ""
        return contact


class ContactValidator:
    """Decides whether an assembled contact is kept."""

    def __init__(
        self,
        vocabulary: Optional[RoleVocabulary] = None,
        min_phone_digits: int = 10
    ):
        """
        Initialize contact validator.

        Args:
            vocabulary: Role vocabulary
            min_phone_digits: Digits a phone needs to count as a contact method
        """
        self.vocabulary = vocabulary or get_role_vocabulary()
        self.min_phone_digits = min_phone_digits

    def validate(self, contact: Contact) -> Optional[str]:
        """
        Apply the rejection rules in order.

        Args:
            contact: Cleaned contact

        Returns:
            Reason of the first failing rule, or None if the contact is valid
        """
        name = contact.name or ""

        if len(name) < MIN_NAME_LENGTH:
            return "name_too_short"

        if len(name) > MAX_NAME_LENGTH:
            return "name_too_long"

        has_phone = len(digits_only(contact.phone)) >= self.min_phone_digits
        has_email = "@" in (contact.email or "")
        if not has_phone and not has_email:
            return "no_contact_method"

        if len(name.split()) == 1 and len(name) < 4 and not contact.email:
            return "single_token_name"

        if has_email and not is_valid_email(contact.email):
            return "invalid_email"

        if contact.role and is_address_like(contact.role):
            return "address_role"

        if not is_valid_name(name, self.vocabulary):
            return "not_a_person"

        if self.vocabulary.is_known(name) and len(name.split()) < 2:
            return "role_as_name"

        return None

    def is_valid(self, contact: Contact) -> bool:
        return self.validate(contact) is None

    def validation_score(self, contact: Contact) -> float:
        """Score how well-formed a contact is."""
        score = 0.5
        if contact.name:
            score += 0.2
        if is_valid_email(contact.email):
            score += 0.15
        if is_valid_phone(contact.phone):
            score += 0.15
        if contact.has_role:
            score += 0.1
        return min(1.0, score)


def validation_stats(contacts: Iterable[Contact]) -> Dict[str, Any]:
    """Count field coverage across contacts."""
    stats = {
        "total": 0,
        "with_email": 0,
        "with_phone": 0,
        "with_both": 0,
        "with_role": 0,
        "with_company": 0,
    }

    for contact in contacts:
        stats["total"] += 1
        if contact.email:
            stats["with_email"] += 1
        if contact.phone:
            stats["with_phone"] += 1
        if contact.email and contact.phone:
            stats["with_both"] += 1
        if contact.has_role:
            stats["with_role"] += 1
        if contact.company:
            stats["with_company"] += 1

    return stats
