"""Unit tests for core/verification.py -- the mock identity verifier.

Covers:
- the delay is awaited (asyncio.sleep is called with delay_seconds)
- zero delay skips sleeping entirely
- over many calls the success ratio tracks success_rate
- success_rate of 0 and 1 are deterministic
- out-of-range success_rate is rejected at construction
"""

import asyncio
import random

import pytest

from core.verification import MockIdentityVerifier


def test_delay_is_awaited(monkeypatch) -> None:
    slept: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        slept.append(seconds)

    monkeypatch.setattr("core.verification.asyncio.sleep", fake_sleep)
    verifier = MockIdentityVerifier(delay_seconds=1.0, success_rate=1.0)
    assert asyncio.run(verifier.verify("123-45-6789")) is True
    assert slept == [1.0]


def test_zero_delay_does_not_sleep(monkeypatch) -> None:
    async def fail_sleep(seconds: float) -> None:
        raise AssertionError("sleep should not be called")

    monkeypatch.setattr("core.verification.asyncio.sleep", fail_sleep)
    verifier = MockIdentityVerifier(delay_seconds=0, success_rate=1.0)
    assert asyncio.run(verifier.verify("123-45-6789")) is True


def test_success_ratio_tracks_rate() -> None:
    verifier = MockIdentityVerifier(delay_seconds=0, success_rate=0.7, rng=random.Random(1234))

    async def run_many() -> list[bool]:
        return [await verifier.verify("123-45-6789") for _ in range(2000)]

    results = asyncio.run(run_many())
    ratio = sum(results) / len(results)
    assert 0.65 <= ratio <= 0.75, f"Expected a ratio near 0.7, got {ratio:.3f}"


@pytest.mark.parametrize("rate,expected", [(0.0, False), (1.0, True)])
def test_extreme_rates_are_deterministic(rate: float, expected: bool) -> None:
    verifier = MockIdentityVerifier(delay_seconds=0, success_rate=rate)

    async def run_many() -> set[bool]:
        return {await verifier.verify("123-45-6789") for _ in range(50)}

    assert asyncio.run(run_many()) == {expected}


@pytest.mark.parametrize("rate", [-0.1, 1.5])
def test_invalid_rate_rejected(rate: float) -> None:
    with pytest.raises(ValueError):
        MockIdentityVerifier(success_rate=rate)
