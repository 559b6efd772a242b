"""
registry/models.py -- Domain dataclasses for the member registry.

These are pure data containers with zero logic. Identity assignment,
timestamps and uniqueness rules live in the stores (registry/memory.py and
registry/store.py).

Separation of concerns: these dataclasses are the registry's domain truth.
The pydantic models in api/models.py are the HTTP contract; route handlers
map between the two.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Address:
    street: str
    city: str
    region: str  # US state
    postal_code: str


@dataclass
class Member:
    """A registered individual's contact, identity and address record.

    identifier is the member's SSN (XXX-XX-XXXX). It is unique across the
    registry, as is email.

    verified is set once at creation from the verification result and only
    changes through an explicit update afterwards.

    id and date_added are assigned by the store on insert. Values supplied by
    callers are ignored.
    """

    name: str
    email: str
    phone: str
    identifier: str
    dob: str  # YYYY-MM-DD
    address: Address
    verified: bool = False
    id: int | None = None
    date_added: str = ""  # ISO 8601 UTC, set by store on insert


@dataclass
class User:
    """An authentication principal.

    hashed_password is a bcrypt hash produced by auth.tokens.hash_password().
    The store persists whatever hash it is given; it never sees plaintext.
    """

    username: str
    hashed_password: str
    display_name: str
    id: int | None = None
    created_at: str = ""  # ISO 8601 UTC, set by store on insert


# Fields update_member() accepts. id and date_added are never mutable.
MEMBER_MUTABLE_FIELDS: frozenset[str] = frozenset(
    {"name", "email", "phone", "identifier", "dob", "address", "verified"}
)

# Fields that must be unique across all members.
MEMBER_UNIQUE_FIELDS: tuple[str, ...] = ("email", "identifier")


def coerce_address(value: Address | dict) -> Address:
    """Accept an Address or a snake_case dict and return an Address."""
    if isinstance(value, Address):
        return Address(**vars(value))
    return Address(
        street=value["street"],
        city=value["city"],
        region=value["region"],
        postal_code=value["postal_code"],
    )
