from __future__ import annotations

import pytest

from terrarium.energy import EnergyLedger, EnergyState, WAKE_ENERGY, state_for
from terrarium.traits import TraitVector


# ---------------------------------------------------------------------------
# State thresholds
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    ("energy", "expected"),
    [
        (100, EnergyState.THRIVING),
        (70, EnergyState.THRIVING),
        (69, EnergyState.NORMAL),
        (40, EnergyState.NORMAL),
        (39, EnergyState.HUNGRY),
        (15, EnergyState.HUNGRY),
        (14, EnergyState.STARVING),
        (1, EnergyState.STARVING),
        (0, EnergyState.DORMANT),
    ],
)
def test_state_matches_thresholds(energy, expected):
    assert state_for(energy) is expected
    assert EnergyLedger(energy).state is expected


def test_dimming_falls_with_energy():
    assert EnergyLedger(80).dimming == 1.0
    assert EnergyLedger(0).dimming == 0.15


# ---------------------------------------------------------------------------
# Economy
# ---------------------------------------------------------------------------

def test_metabolize_drains_by_rate_and_level():
    ledger = EnergyLedger(50)
    drained = ledger.metabolize(TraitVector(metabolism_rate=1.0), level=3)
    assert ledger.energy == pytest.approx(46.5)
    assert drained == pytest.approx(3.5)


def test_metabolize_never_goes_below_zero():
    ledger = EnergyLedger(1.0)
    ledger.metabolize(TraitVector(metabolism_rate=1.0), level=3)
    assert ledger.energy == 0.0
    assert ledger.is_dormant


def test_feed_caps_at_hundred():
    ledger = EnergyLedger(95)
    ledger.feed(50)
    assert ledger.energy == 100.0


def test_feed_ignores_negative_amounts():
    ledger = EnergyLedger(50)
    ledger.feed(-20)
    assert ledger.energy == 50.0


class TestSpendAction:
    def test_deducts_efficiency_adjusted_cost(self):
        ledger = EnergyLedger(10)
        assert ledger.spend_action(4.0, TraitVector(energy_efficiency=0.5)) is True
        assert ledger.energy == pytest.approx(7.0)

    def test_charges_what_the_traits_quote(self):
        traits = TraitVector(energy_efficiency=0.8)
        ledger = EnergyLedger(20)
        ledger.spend_action(3.0, traits)
        assert 20 - ledger.energy == pytest.approx(traits.action_cost(3.0))

    def test_unaffordable_action_fails_without_mutation(self):
        ledger = EnergyLedger(1.0)
        assert ledger.spend_action(4.0, TraitVector(energy_efficiency=0.3)) is False
        assert ledger.energy == 1.0

    def test_never_goes_below_zero(self):
        ledger = EnergyLedger(2.0)
        assert ledger.spend_action(4.0, TraitVector(energy_efficiency=1.0)) is True
        assert ledger.energy == 0.0


class TestWake:
    def test_wake_revives_dormant_creature(self):
        ledger = EnergyLedger(0)
        assert ledger.wake() is True
        assert ledger.energy == WAKE_ENERGY
        assert ledger.state is EnergyState.HUNGRY

    def test_wake_is_noop_when_awake(self):
        ledger = EnergyLedger(5)
        assert ledger.wake() is False
        assert ledger.energy == 5


def test_presence_bonus_feeds_one():
    ledger = EnergyLedger(50)
    ledger.presence_bonus()
    assert ledger.energy == 51


def test_direct_assignment_is_clamped():
    ledger = EnergyLedger(50)
    ledger.energy = 250
    assert ledger.energy == 100
    ledger.energy = -3
    assert ledger.energy == 0
