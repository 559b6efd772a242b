"""
api/routes/verification.py -- Standalone SSN verification.

  POST /verify-ssn  -- {"ssn": "XXX-XX-XXXX"} -> {"verified": bool}

Lets the registration form check an SSN before submitting the member. A
missing or malformed SSN is rejected with 400 by VerifyRequest validation,
so the verifier only ever sees well-formed input.
"""

from fastapi import APIRouter, Depends, Request

from api.models import VerifyRequest, VerifyResponse
from auth.dependencies import get_current_user
from core.verification import IdentityVerifier

router = APIRouter(dependencies=[Depends(get_current_user)])


@router.post("/verify-ssn", response_model=VerifyResponse)
async def verify_ssn(request: Request, body: VerifyRequest) -> VerifyResponse:
    verifier: IdentityVerifier = request.app.state.verifier
    return VerifyResponse(verified=await verifier.verify(body.ssn))
