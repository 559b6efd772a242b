"""
registry/storage.py -- The storage interface and backend selection.

MemberStorage is a structural Protocol. MemoryMemberStore and SQLMemberStore
both satisfy it without sharing a base class; open_storage() picks one at
process startup from Settings.storage_backend.

Behavior both variants guarantee:
  - ids are assigned on insert, strictly increasing, never reused.
  - date_added / created_at are stamped on insert and never change.
  - list_members() and filter_members() order by date_added descending,
    ties broken by id descending.
  - update_member() strips id and date_added, merges only provided fields.
  - Duplicate email / identifier / username raise ConflictError.
  - Returned records are copies; mutating them never touches stored state.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from core.config import Settings
from registry.memory import MemoryMemberStore
from registry.models import Member, User
from registry.store import SQLMemberStore

logger = logging.getLogger("memberregistry.storage")


class MemberStorage(Protocol):
    # Members
    def list_members(self) -> list[Member]: ...

    def get_member(self, member_id: int) -> Optional[Member]: ...

    def create_member(self, member: Member) -> Member: ...

    def update_member(self, member_id: int, **fields) -> Optional[Member]: ...

    def filter_members(self, verified: Optional[bool] = None) -> list[Member]: ...

    # Users
    def get_user(self, user_id: int) -> Optional[User]: ...

    def get_user_by_username(self, username: str) -> Optional[User]: ...

    def create_user(self, user: User) -> User: ...

    # Lifecycle
    def ping(self) -> bool: ...

    def close(self) -> None: ...


def open_storage(settings: Settings) -> MemberStorage:
    """Construct the storage backend named in settings.

    Raises StorageUnavailableError if the SQL backend cannot reach its
    database at startup.
    """
    if settings.storage_backend == "memory":
        logger.info("Using in-memory member storage (data is lost on restart)")
        return MemoryMemberStore()
    logger.info("Using SQL member storage")
    return SQLMemberStore(settings.database_url)
