"""
Shared fixtures for the Terrarium test suite.

Provides seeded randomness, a controllable clock, fixed trait vectors and
config objects that never read the developer's real .env file, so individual
test modules can focus on behavior rather than setup.
"""

from __future__ import annotations

import random
from types import SimpleNamespace

import pytest

from terrarium.config import (
    BehaviorConfig,
    EnergyConfig,
    HeartbeatConfig,
    InferenceConfig,
    PersistenceConfig,
)
from terrarium.energy import EnergyLedger
from terrarium.traits import TraitVector


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------

class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def rng() -> random.Random:
    return random.Random(1234)


# ---------------------------------------------------------------------------
# Creature fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def traits() -> TraitVector:
    """A middle-of-the-road creature."""
    return TraitVector(
        heartbeat_speed=1.0,
        metabolism_rate=0.5,
        hue_primary=0.4,
        hue_shift_range=0.1,
        movement_bias=0.5,
        expressiveness=0.6,
        energy_efficiency=0.5,
        curiosity=0.5,
    )


@pytest.fixture()
def ledger() -> EnergyLedger:
    return EnergyLedger(50.0)


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def config(tmp_path) -> SimpleNamespace:
    """TerrariumConfig-shaped object built without touching the environment."""
    return SimpleNamespace(
        inference=InferenceConfig(
            _env_file=None,
            TERRARIUM_BACKEND="scripted",
            TERRARIUM_REQUEST_TIMEOUT_SECONDS=5.0,
        ),
        heartbeat=HeartbeatConfig(_env_file=None),
        energy=EnergyConfig(_env_file=None),
        persistence=PersistenceConfig(_env_file=None, TERRARIUM_DATA_DIR=tmp_path),
        behavior=BehaviorConfig(_env_file=None),
    )
