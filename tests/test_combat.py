"""Tests for attack and counterattack resolution."""

import random

from engine.combat import CombatResolver
from engine.units import Side, UnitKind

from conftest import fixed_roll_combat


def test_lethal_attack_removes_defender_without_counter(state, place, combat):
    infantry = place("infantry", "player", 3, 3)
    tank = place("tank", "enemy", 3, 4, health=20)

    report = combat.resolve(state, infantry, tank)

    assert report.defender_damage == 25
    assert tank.health == 0
    assert report.defender_died
    assert tank not in state.units
    assert not report.countered
    assert infantry.health == 100
    assert infantry.has_attacked and infantry.has_moved


def test_surviving_defender_counterattacks(state, place, combat):
    infantry = place("infantry", "player", 3, 3)
    tank = place("tank", "enemy", 3, 4)

    report = combat.resolve(state, infantry, tank)

    assert tank.health == 75
    # Counter uses the damaged defender: floor(60 * 0.75)
    assert report.counter_damage == 45
    assert infantry.health == 55
    assert report.attacker_soldiers_lost == 10 - 6


def test_no_counter_from_out_of_range_defender(state, place, combat):
    chopper = place("chopper", "player", 3, 3)
    tank = place("tank", "enemy", 3, 5)

    report = combat.resolve(state, chopper, tank)

    assert report.distance == 2
    assert tank.health == 65
    assert report.counter_damage is None
    assert chopper.health == 100
    assert report.notes


def test_counter_can_kill_attacker(state, place, combat):
    infantry = place("infantry", "player", 3, 3, health=10)
    tank = place("tank", "enemy", 3, 4)

    report = combat.resolve(state, infantry, tank)

    assert report.defender_damage == 2
    assert report.attacker_died
    assert infantry not in state.units
    assert tank in state.units


def test_replayed_damage_skips_the_roll(state, place):
    resolver = fixed_roll_combat(multiplier=5.0)
    infantry = place("infantry", "player", 3, 3)
    tank = place("tank", "enemy", 3, 4)

    report = resolver.resolve(state, infantry, tank, defender_damage=7, counter_damage=3)

    assert tank.health == 93
    assert infantry.health == 97
    assert report.counter_damage == 3


def test_damage_roll_within_variance(ruleset):
    resolver = CombatResolver(rng=random.Random(7))
    tank = ruleset.make_unit(UnitKind.TANK, Side.PLAYER, 0, 0)
    for _ in range(200):
        multiplier = resolver.roll_multiplier()
        assert 0.8 <= multiplier < 1.2
    for _ in range(50):
        assert 48 <= resolver.calculate_damage(tank) <= 72


def test_seeded_resolvers_agree():
    a, b = CombatResolver(rng_seed=3), CombatResolver(rng_seed=3)
    assert [a.roll_multiplier() for _ in range(5)] == [b.roll_multiplier() for _ in range(5)]
