"""
API request and response models for the member registry REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer
and double as the member validation schema. They are intentionally separate
from the dataclasses in registry/models.py, which own the internal domain
representation. Route handlers map between the two.

Wire format is camelCase (dateAdded, postalCode, displayName); Python
attributes stay snake_case. _CamelModel wires the alias generator so both
spellings are accepted on input and camelCase is emitted on output.

Separation of concerns: registry/ models = domain truth; api/ models = API contract.
"""

from __future__ import annotations

import re
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from core.config import MAX_PASSWORD_BYTES
from registry.models import Address, Member, User

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SSN_PATTERN = r"^\d{3}-\d{2}-\d{4}$"

# 555-123-4567, (555) 123-4567, +1 555-123-4567
PHONE_PATTERNS: tuple[str, ...] = (
    r"^\d{3}-\d{3}-\d{4}$",
    r"^\(\d{3}\) \d{3}-\d{4}$",
    r"^\+1 \d{3}-\d{3}-\d{4}$",
)

DOB_PATTERN = r"^\d{4}-\d{2}-\d{2}$"

_SSN_RE = re.compile(SSN_PATTERN)
_PHONE_RES = tuple(re.compile(p) for p in PHONE_PATTERNS)

# Server-assigned member fields. Clients may never supply them on create.
_SERVER_ASSIGNED = {"id", "dateAdded", "date_added"}


def _check_ssn(value: str) -> str:
    if not _SSN_RE.match(value):
        raise ValueError("SSN must be in format XXX-XX-XXXX")
    return value


def _check_phone(value: str) -> str:
    if not any(p.match(value) for p in _PHONE_RES):
        raise ValueError("Phone must be in format XXX-XXX-XXXX, (XXX) XXX-XXXX or +1 XXX-XXX-XXXX")
    return value


# ---------------------------------------------------------------------------
# Validation error flattening
# ---------------------------------------------------------------------------

_LOC_SOURCES = {"body", "query", "path", "header", "cookie"}


def field_errors(errors: list[dict[str, Any]]) -> dict[str, str]:
    """Flatten pydantic/FastAPI error dicts into {field.path: message}.

    The request source prefix ("body", "path", ...) is dropped so clients see
    the field names they sent, e.g. "address.postalCode". One message per
    field; the first error reported for a field wins.
    """
    result: dict[str, str] = {}
    for err in errors:
        loc = list(err.get("loc", ()))
        if loc and loc[0] in _LOC_SOURCES and len(loc) > 1:
            loc = loc[1:]
        key = ".".join(str(part) for part in loc) or "body"
        if key in result:
            continue
        if err.get("type") == "extra_forbidden":
            if key in _SERVER_ASSIGNED:
                message = "This field is assigned by the server and cannot be set."
            else:
                message = "Unknown field."
        else:
            message = str(err.get("msg", "Invalid value."))
            if message.startswith("Value error, "):
                message = message[len("Value error, ") :]
        result[key] = message
    return result


# ---------------------------------------------------------------------------
# Shared base
# ---------------------------------------------------------------------------


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Member request models
# ---------------------------------------------------------------------------


class AddressModel(_CamelModel):
    """Postal address. Every part is required."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    street: str = Field(min_length=1, max_length=255)
    city: str = Field(min_length=1, max_length=255)
    region: str = Field(min_length=1, max_length=100)
    postal_code: str = Field(min_length=1, max_length=20)

    def to_domain(self) -> Address:
        return Address(street=self.street, city=self.city, region=self.region, postal_code=self.postal_code)

    @classmethod
    def from_domain(cls, address: Address) -> "AddressModel":
        return cls(street=address.street, city=address.city, region=address.region, postal_code=address.postal_code)


class MemberCreate(_CamelModel):
    """Request body for POST /api/members.

    extra="forbid" rejects id and dateAdded (and any typo'd key) outright:
    both are assigned by storage and must never come from the client.
    verified is not accepted either; it comes from the verification service.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    phone: str
    identifier: str
    dob: str = Field(pattern=DOB_PATTERN, description="Date of birth, YYYY-MM-DD.")
    address: AddressModel

    @field_validator("identifier")
    @classmethod
    def validate_identifier(cls, value: str) -> str:
        return _check_ssn(value)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, value: str) -> str:
        return _check_phone(value)

    def to_domain(self, verified: bool) -> Member:
        return Member(
            name=self.name,
            email=str(self.email),
            phone=self.phone,
            identifier=self.identifier,
            dob=self.dob,
            address=self.address.to_domain(),
            verified=verified,
        )


class MemberUpdate(_CamelModel):
    """Request body for PATCH /api/members/{id}.

    Every field is optional and validated with the same rules as MemberCreate.
    Unknown keys, including id and dateAdded, are ignored and never reach
    storage. Explicit nulls are rejected: a field is either sent with a valid
    value or left out.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    identifier: Optional[str] = None
    dob: Optional[str] = Field(default=None, pattern=DOB_PATTERN)
    address: Optional[AddressModel] = None
    verified: Optional[bool] = None

    @field_validator("*", mode="before")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("Field may not be null")
        return value

    @field_validator("identifier")
    @classmethod
    def validate_identifier(cls, value: str) -> str:
        return _check_ssn(value)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, value: str) -> str:
        return _check_phone(value)

    def to_fields(self) -> dict[str, Any]:
        """Return only the fields the client actually sent, snake_case, ready for update_member()."""
        fields = self.model_dump(exclude_unset=True)
        if "email" in fields:
            fields["email"] = str(fields["email"])
        return fields


# ---------------------------------------------------------------------------
# Member response models
# ---------------------------------------------------------------------------


class MemberResponse(_CamelModel):
    id: int
    name: str
    email: str
    phone: str
    identifier: str
    dob: str
    address: AddressModel
    verified: bool
    date_added: str

    @classmethod
    def from_domain(cls, member: Member) -> "MemberResponse":
        """Build a MemberResponse from a registry Member instance."""
        return cls(
            id=member.id,
            name=member.name,
            email=member.email,
            phone=member.phone,
            identifier=member.identifier,
            dob=member.dob,
            address=AddressModel.from_domain(member.address),
            verified=member.verified,
            date_added=member.date_added,
        )


class VerificationResult(BaseModel):
    verified: bool
    message: str


class MemberCreatedResponse(_CamelModel):
    """Response body for POST /api/members."""

    member: MemberResponse
    verification_result: VerificationResult


# ---------------------------------------------------------------------------
# Standalone verification
# ---------------------------------------------------------------------------


class VerifyRequest(BaseModel):
    """Request body for POST /api/verify-ssn. Accepts the SSN as "ssn" or "identifier"."""

    model_config = ConfigDict(str_strip_whitespace=True)

    ssn: str = Field(validation_alias=AliasChoices("ssn", "identifier"))

    @field_validator("ssn")
    @classmethod
    def validate_ssn(cls, value: str) -> str:
        return _check_ssn(value)


class VerifyResponse(BaseModel):
    verified: bool


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class RegisterRequest(_CamelModel):
    """Request body for POST /api/register.

    password is capped at 72 bytes, the most bcrypt will hash.
    """

    username: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=6, max_length=MAX_PASSWORD_BYTES)
    display_name: str = Field(min_length=2, max_length=255)

    @field_validator("password")
    @classmethod
    def validate_password_bytes(cls, value: str) -> str:
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


class UserResponse(_CamelModel):
    """Public view of a User. Never carries the password hash."""

    id: int
    username: str
    display_name: str
    created_at: str

    @classmethod
    def from_domain(cls, user: User) -> "UserResponse":
        return cls(id=user.id, username=user.username, display_name=user.display_name, created_at=user.created_at)


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    fields: Optional[dict[str, str]] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
