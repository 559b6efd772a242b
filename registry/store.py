"""
registry/store.py -- SQLAlchemy-backed persistence layer for the member registry.

Uses SQLAlchemy Core (not ORM) so the domain dataclasses in registry/models.py
remain the authoritative domain representation. SQLAlchemy provides a
database-agnostic abstraction: swapping SQLite for PostgreSQL is a connection
string change, not a rewrite.

Pattern: Repository + Data Mapper. SQLMemberStore is the repository (one clean
interface per entity). The _row_to_* functions are the mappers (they translate
raw DB rows into domain dataclasses). Route handlers never touch SQL directly.

Error translation:
  IntegrityError (UNIQUE violation)  -> ConflictError naming the column
  any other DBAPIError               -> StorageUnavailableError
  Both keep the driver exception as __cause__ for logs.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = SQLMemberStore()                               # SQLite default
    store = SQLMemberStore("postgresql://user:pw@host/db") # PostgreSQL
    member = store.create_member(member)
    members = store.filter_members(verified=True)
    store.close()
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    false,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError

from registry.errors import ConflictError, StorageUnavailableError
from registry.models import MEMBER_MUTABLE_FIELDS, Address, Member, User, coerce_address

logger = logging.getLogger("memberregistry.storage")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'memberregistry.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("password", Text, nullable=False),  # bcrypt hash
    Column("display_name", String(255), nullable=False),
    Column("created_at", String(32), nullable=False),
    sqlite_autoincrement=True,
)

_members = Table(
    "members",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(320), nullable=False, unique=True),
    Column("phone", String(32), nullable=False),
    Column("identifier", String(32), nullable=False, unique=True),
    Column("dob", String(10), nullable=False),  # YYYY-MM-DD
    Column("address", Text, nullable=False),  # JSON object serialized as text
    Column("verified", Boolean, nullable=False, server_default=false()),
    Column("date_added", String(32), nullable=False),
    # AUTOINCREMENT keeps SQLite from ever handing out a previously used id.
    sqlite_autoincrement=True,
)

# Largest value a signed 64-bit INTEGER primary key can hold.
_MAX_ID = 2**63 - 1

# Unique columns as they appear in driver messages: "members.email" (SQLite)
# or "members_email_key" (PostgreSQL constraint name).
_CONSTRAINT_COLUMN_RE = re.compile(r"\b(?:members|users)[._](email|identifier|username)(?:_key)?\b")


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _address_to_json(address: Address) -> str:
    return json.dumps(
        {
            "street": address.street,
            "city": address.city,
            "region": address.region,
            "postal_code": address.postal_code,
        }
    )


def _storable_id(value: int) -> bool:
    """True when value fits the signed 64-bit INTEGER column. Larger ids cannot exist."""
    return 0 <= value <= _MAX_ID


def _conflicting_column(exc: IntegrityError) -> str:
    """Name the unique column behind an IntegrityError.

    SQLite reports "UNIQUE constraint failed: members.email"; PostgreSQL
    reports the constraint name, e.g. "members_email_key", followed by a
    DETAIL line quoting the duplicated value. Only the first line is searched,
    and only for a table-qualified column or constraint name, so a duplicated
    value that contains a column name cannot be mistaken for one.
    """
    first_line = str(exc.orig).lower().partition("\n")[0]
    match = _CONSTRAINT_COLUMN_RE.search(first_line)
    return match.group(1) if match else "unique field"


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SQLMemberStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # SQLite requires check_same_thread=False when used from FastAPI's
            # thread pool, where one pooled connection may serve several threads.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        with self._translate_errors():
            metadata.create_all(self.engine)

    @contextmanager
    def _translate_errors(self) -> Iterator[None]:
        """Convert driver exceptions into registry errors.

        IntegrityError must be caught first: it is a DBAPIError subclass.
        """
        try:
            yield
        except IntegrityError as exc:
            raise ConflictError(_conflicting_column(exc)) from exc
        except DBAPIError as exc:
            logger.error("Database operation failed (%s)", type(exc.orig).__name__)
            raise StorageUnavailableError("Member storage is unavailable.") from exc

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def list_members(self) -> list[Member]:
        """Return all members, newest first."""
        return self.filter_members()

    def get_member(self, member_id: int) -> Optional[Member]:
        """Fetch a single member by ID. Returns None if not found."""
        if not _storable_id(member_id):
            return None
        with self._translate_errors(), self.engine.connect() as conn:
            row = conn.execute(_members.select().where(_members.c.id == member_id)).fetchone()
        return _row_to_member(row) if row is not None else None

    def create_member(self, member: Member) -> Member:
        """Insert a new member and return the stored record.

        id and date_added on the incoming object are ignored; the database
        assigns the id and date_added is stamped here.
        Raises ConflictError if email or identifier already exists.
        """
        with self._translate_errors(), self.engine.begin() as conn:
            result = conn.execute(
                _members.insert().values(
                    name=member.name,
                    email=member.email,
                    phone=member.phone,
                    identifier=member.identifier,
                    dob=member.dob,
                    address=_address_to_json(coerce_address(member.address)),
                    verified=member.verified,
                    date_added=_now_iso(),
                )
            )
            member_id = result.inserted_primary_key[0]
            row = conn.execute(_members.select().where(_members.c.id == member_id)).fetchone()
        return _row_to_member(row)

    def update_member(self, member_id: int, **fields) -> Optional[Member]:
        """Merge the given fields into an existing member.

        Accepts any subset of: name, email, phone, identifier, dob, address,
        verified. id and date_added are dropped if present; any other unknown
        field raises ValueError. address replaces the whole address record.

        Returns the updated member, or None if member_id was not found.
        Raises ConflictError (and writes nothing) on a duplicate email or
        identifier.
        """
        fields.pop("id", None)
        fields.pop("date_added", None)
        unknown = set(fields) - MEMBER_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown member fields: {sorted(unknown)!r}")
        if "address" in fields:
            fields["address"] = _address_to_json(coerce_address(fields["address"]))
        if not _storable_id(member_id):
            return None

        with self._translate_errors(), self.engine.begin() as conn:
            if fields:
                result = conn.execute(_members.update().where(_members.c.id == member_id).values(**fields))
                if result.rowcount == 0:
                    return None
            row = conn.execute(_members.select().where(_members.c.id == member_id)).fetchone()
        return _row_to_member(row) if row is not None else None

    def filter_members(self, verified: Optional[bool] = None) -> list[Member]:
        """Return members matching the verified flag, or all when it is None. Newest first."""
        query = select(_members).order_by(_members.c.date_added.desc(), _members.c.id.desc())
        if verified is not None:
            query = query.where(_members.c.verified == verified)
        with self._translate_errors(), self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_member(r) for r in rows]

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user(self, user_id: int) -> Optional[User]:
        """Look up a user by primary key. Returns None if not found."""
        if not _storable_id(user_id):
            return None
        with self._translate_errors(), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self._translate_errors(), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def create_user(self, user: User) -> User:
        """Insert a new user and return the stored record.

        Raises ConflictError if the username already exists.
        """
        with self._translate_errors(), self.engine.begin() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    password=user.hashed_password,
                    display_name=user.display_name,
                    created_at=_now_iso(),
                )
            )
            user_id = result.inserted_primary_key[0]
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self._translate_errors(), self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except StorageUnavailableError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_member(row) -> Member:
    return Member(
        id=row.id,
        name=row.name,
        email=row.email,
        phone=row.phone,
        identifier=row.identifier,
        dob=row.dob,
        address=coerce_address(json.loads(row.address)),
        verified=row.verified,
        date_added=row.date_added,
    )


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        hashed_password=row.password,
        display_name=row.display_name,
        created_at=row.created_at,
    )
