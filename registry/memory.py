"""
registry/memory.py -- Dict-backed member storage.

Behaves exactly like SQLMemberStore (see registry/storage.py for the shared
contract) but keeps everything in process memory. Useful for local demos and
for tests that do not care about SQL.

Uniqueness of email, identifier and username is checked in code because
there is no database constraint to lean on.

Thread safety: FastAPI runs sync route handlers in a thread pool, so every
read-modify-write happens under a single lock. Records are deep-copied on the
way in and out; callers never hold references into the collections.

Usage:
    store = MemoryMemberStore()
    member = store.create_member(Member(...))
    store.update_member(member.id, verified=True)
"""

from __future__ import annotations

import copy
import threading
from datetime import datetime, timezone
from typing import Optional

from registry.errors import ConflictError
from registry.models import MEMBER_MUTABLE_FIELDS, MEMBER_UNIQUE_FIELDS, Member, User, coerce_address


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _newest_first(members: list[Member]) -> list[Member]:
    return sorted(members, key=lambda m: (m.date_added, m.id), reverse=True)


class MemoryMemberStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._members: dict[int, Member] = {}
        self._users: dict[int, User] = {}
        self._next_member_id = 1
        self._next_user_id = 1

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def list_members(self) -> list[Member]:
        """Return all members, newest first."""
        with self._lock:
            return _newest_first([copy.deepcopy(m) for m in self._members.values()])

    def get_member(self, member_id: int) -> Optional[Member]:
        """Fetch a single member by ID. Returns None if not found."""
        with self._lock:
            member = self._members.get(member_id)
            return copy.deepcopy(member) if member is not None else None

    def create_member(self, member: Member) -> Member:
        """Store a new member and return the stored record.

        id and date_added on the incoming object are ignored.
        Raises ConflictError if email or identifier is already taken.
        """
        with self._lock:
            self._check_unique(member, exclude_id=None)
            stored = copy.deepcopy(member)
            stored.address = coerce_address(stored.address)
            stored.id = self._next_member_id
            stored.date_added = _now_iso()
            self._next_member_id += 1
            self._members[stored.id] = stored
            return copy.deepcopy(stored)

    def update_member(self, member_id: int, **fields) -> Optional[Member]:
        """Merge the given fields into an existing member.

        id and date_added are dropped if present. Any other unknown field
        raises ValueError. address replaces the whole address record.

        Returns the updated member, or None if member_id was not found.
        Raises ConflictError if the new email or identifier belongs to
        another member; the stored record is left untouched in that case.
        """
        fields.pop("id", None)
        fields.pop("date_added", None)
        unknown = set(fields) - MEMBER_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown member fields: {sorted(unknown)!r}")
        if "address" in fields:
            fields["address"] = coerce_address(fields["address"])

        with self._lock:
            current = self._members.get(member_id)
            if current is None:
                return None
            updated = copy.deepcopy(current)
            for name, value in fields.items():
                setattr(updated, name, value)
            self._check_unique(updated, exclude_id=member_id)
            self._members[member_id] = updated
            return copy.deepcopy(updated)

    def filter_members(self, verified: Optional[bool] = None) -> list[Member]:
        """Return members matching the verified flag, or all when it is None."""
        with self._lock:
            matches = [
                copy.deepcopy(m) for m in self._members.values() if verified is None or m.verified == verified
            ]
        return _newest_first(matches)

    def _check_unique(self, member: Member, exclude_id: Optional[int]) -> None:
        # Caller holds the lock.
        for other in self._members.values():
            if other.id == exclude_id:
                continue
            for field_name in MEMBER_UNIQUE_FIELDS:
                if getattr(other, field_name) == getattr(member, field_name):
                    raise ConflictError(field_name)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user(self, user_id: int) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return copy.deepcopy(user) if user is not None else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        """Look up a user by exact username (case-sensitive)."""
        with self._lock:
            for user in self._users.values():
                if user.username == username:
                    return copy.deepcopy(user)
        return None

    def create_user(self, user: User) -> User:
        """Store a new user. Raises ConflictError if the username is taken."""
        with self._lock:
            if any(u.username == user.username for u in self._users.values()):
                raise ConflictError("username")
            stored = copy.deepcopy(user)
            stored.id = self._next_user_id
            stored.created_at = _now_iso()
            self._next_user_id += 1
            self._users[stored.id] = stored
            return copy.deepcopy(stored)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        """Nothing to release; data stays readable until the store is dropped."""
