"""Pydantic schemas for the sign-in forms.

Learn: These validate what the user typed before anything goes over the
network. Phone numbers are normalized to E.164 ("+14155552671"), the
format the auth service expects for SMS sign-in.
"""

import re

from pydantic import BaseModel, Field, field_validator

_PHONE_SEPARATORS = re.compile(r"[\s\-.()]")
_E164 = re.compile(r"^\+[1-9]\d{7,14}$")


class EmailCredentials(BaseModel):
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=6)


class PhoneNumber(BaseModel):
    phone: str

    @field_validator("phone")
    @classmethod
    def normalize_phone(cls, value: str) -> str:
        compact = _PHONE_SEPARATORS.sub("", value.strip())
        if compact.startswith("00"):
            compact = "+" + compact[2:]
        if not _E164.match(compact):
            raise ValueError("Please enter a valid phone number")
        return compact


class VerificationCode(PhoneNumber):
    code: str = Field(..., pattern=r"^\d{6}$")
