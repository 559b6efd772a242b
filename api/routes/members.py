"""
api/routes/members.py -- Member registry routes.

Routes (in registration order to avoid FastAPI path capture conflicts):
  GET    /members                           -- list all, newest first
  GET    /members/filter/verified?status=   -- filter by verified flag
  GET    /members/{member_id}               -- fetch one
  POST   /members                           -- validate, verify SSN, create
  PATCH  /members/{member_id}               -- partial update

Errors:
  A non-numeric member_id, or one outside 1..2**63-1, fails path validation
  and comes back as 400 from the validation handler in api/main.py, before
  any storage call.
  Missing records are None from storage and become 404 here.
  ConflictError and StorageUnavailableError propagate to the handlers in
  api/main.py (409 / 500).
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request
from starlette.concurrency import run_in_threadpool

from api.models import MemberCreate, MemberCreatedResponse, MemberResponse, MemberUpdate, VerificationResult
from auth.dependencies import get_current_user
from core.verification import IdentityVerifier
from registry.storage import MemberStorage

logger = logging.getLogger("memberregistry.api")

# Every member route requires a session.
# Router-level dependency applies to every route registered on this router,
# so individual handlers don't each need to repeat Depends(get_current_user).
router = APIRouter(dependencies=[Depends(get_current_user)])

# Ids are positive 64-bit integers in every backend; anything outside that
# range cannot name a member and is rejected as a bad path parameter.
MAX_MEMBER_ID = 2**63 - 1
MemberId = Annotated[int, Path(ge=1, le=MAX_MEMBER_ID)]


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"code": "not_found", "message": "Member not found."},
    )


# ---------------------------------------------------------------------------
# GET /members
# ---------------------------------------------------------------------------


@router.get("/members", response_model=list[MemberResponse])
def list_members(request: Request) -> list[MemberResponse]:
    """Return every registered member, newest first."""
    storage: MemberStorage = request.app.state.storage
    return [MemberResponse.from_domain(m) for m in storage.list_members()]


# ---------------------------------------------------------------------------
# GET /members/filter/verified -- must be before /members/{member_id}
# ---------------------------------------------------------------------------


@router.get("/members/filter/verified", response_model=list[MemberResponse])
def filter_members(
    request: Request,
    status: Optional[bool] = Query(default=None, description="true or false; omit for all members."),
) -> list[MemberResponse]:
    """Return members whose verified flag equals status."""
    storage: MemberStorage = request.app.state.storage
    return [MemberResponse.from_domain(m) for m in storage.filter_members(verified=status)]


# ---------------------------------------------------------------------------
# GET /members/{member_id}
# ---------------------------------------------------------------------------


@router.get("/members/{member_id}", response_model=MemberResponse)
def get_member(request: Request, member_id: MemberId) -> MemberResponse:
    storage: MemberStorage = request.app.state.storage
    member = storage.get_member(member_id)
    if member is None:
        raise _not_found()
    return MemberResponse.from_domain(member)


# ---------------------------------------------------------------------------
# POST /members
# ---------------------------------------------------------------------------


@router.post("/members", response_model=MemberCreatedResponse, status_code=201)
async def create_member(request: Request, body: MemberCreate) -> MemberCreatedResponse:
    """Register a new member.

    The SSN is checked with the identity verifier first; its answer becomes
    the member's initial verified flag. The verifier may take a while, but
    only this request waits on it. The store call runs on the thread pool so
    a slow database never stalls the event loop.
    """
    storage: MemberStorage = request.app.state.storage
    verifier: IdentityVerifier = request.app.state.verifier

    verified = await verifier.verify(body.identifier)
    member = await run_in_threadpool(storage.create_member, body.to_domain(verified=verified))
    logger.info("Member %d created (verified=%s)", member.id, verified)

    return MemberCreatedResponse(
        member=MemberResponse.from_domain(member),
        verification_result=VerificationResult(
            verified=verified,
            message="SSN verification successful" if verified else "SSN verification pending",
        ),
    )


# ---------------------------------------------------------------------------
# PATCH /members/{member_id}
# ---------------------------------------------------------------------------


@router.patch("/members/{member_id}", response_model=MemberResponse)
def update_member(request: Request, member_id: MemberId, body: MemberUpdate) -> MemberResponse:
    """Apply a partial update. Fields left out of the body keep their values.

    id and dateAdded in the body are ignored. verified may be flipped here;
    it is never recomputed by the verifier after creation.
    """
    storage: MemberStorage = request.app.state.storage
    fields = body.to_fields()
    updated = storage.update_member(member_id, **fields)
    if updated is None:
        raise _not_found()
    logger.info("Member %d updated (fields=%s)", member_id, ",".join(sorted(fields)) or "none")
    return MemberResponse.from_domain(updated)
