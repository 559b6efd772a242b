"""
core/verification.py -- Identity verification service.

The registry asks a verifier whether a member's SSN checks out before the
record is stored. There is no real verification authority behind this module
yet: MockIdentityVerifier stands in for one, sleeping to imitate network
latency and answering at random.

Callers only depend on the IdentityVerifier protocol. The application wires a
verifier into app.state at startup; tests swap in a deterministic one.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or registry/.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Protocol

logger = logging.getLogger("memberregistry.verification")


class IdentityVerifier(Protocol):
    """Anything that can decide whether an identifier is verified."""

    async def verify(self, identifier: str) -> bool: ...


class MockIdentityVerifier:
    """Random-outcome verifier imitating a slow external authority.

    Resolves after delay_seconds with True at success_rate probability.
    The identifier is assumed to be well-formed; format checks belong to the
    request schema, not here.

    Usage:
        verifier = MockIdentityVerifier()
        verified = await verifier.verify("123-45-6789")
    """

    def __init__(
        self,
        delay_seconds: float = 1.0,
        success_rate: float = 0.7,
        rng: random.Random | None = None,
    ) -> None:
        if not 0.0 <= success_rate <= 1.0:
            raise ValueError("success_rate must be between 0 and 1")
        self.delay_seconds = delay_seconds
        self.success_rate = success_rate
        self._rng = rng or random.Random()

    async def verify(self, identifier: str) -> bool:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)
        verified = self._rng.random() < self.success_rate
        logger.debug("Mock verification resolved (verified=%s)", verified)
        return verified
