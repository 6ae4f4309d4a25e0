from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AIContact(BaseModel):
    """One contact as returned by the AI collaborator."""

    model_config = ConfigDict(extra="ignore")

    name: str = ""
    role: str = ""
    email: str = ""
    phone: str = ""
    company: str = ""
    confidence: float = Field(0.8, ge=0.0, le=1.0)
    source: Optional[str] = None

    @field_validator("name", "role", "email", "company", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        if value is None:
            return ""
        return str(value).strip()

    @field_validator("phone", mode="before")
    @classmethod
    def _phone_to_str(cls, value):
        # Models sometimes answer phone numbers as bare integers
        if value is None:
            return ""
        return str(value).strip()

    @field_validator("confidence", mode="before")
    @classmethod
    def _default_confidence(cls, value):
        return 0.8 if value is None else value


class AIContactsResponse(BaseModel):
    """JSON contract of the AI collaborator: ``{"contacts": [...]}``."""

    model_config = ConfigDict(extra="ignore")

    contacts: List[AIContact] = []
