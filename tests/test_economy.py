"""Tests for the economy ledger: map pieces, pity, rewards and migration."""

import numpy as np
import pytest

from zonerunners.core.config import GameConfig
from zonerunners.core.economy import EconomyLedger, migrate_piece_array
from zonerunners.core.relics import RELIC_TYPES, RelicType, empty_relic_map


# =====================================================================
# Helpers
# =====================================================================

def _make_config(**overrides) -> GameConfig:
    defaults = {"random_seed": 42}
    defaults.update(overrides)
    return GameConfig(**defaults)


def _tiers(**relics) -> dict[RelicType, int]:
    tiers = empty_relic_map(0)
    for name, tier in relics.items():
        tiers[RelicType(name.upper())] = tier
    return tiers


# =====================================================================
# Map pieces
# =====================================================================

class TestMapPredicates:
    def test_fresh_zone_unmapped(self):
        ledger = EconomyLedger(_make_config())
        assert not ledger.is_mapped(0)
        assert ledger.pieces_found(0) == 0
        assert not ledger.is_set_complete(0, 0)

    def test_mapped_iff_all_true(self):
        ledger = EconomyLedger(_make_config())
        arr = ledger.pieces(3)
        arr[:99] = True
        assert not ledger.is_mapped(3)
        arr[99] = True
        assert ledger.is_mapped(3)

    def test_set_complete_iff_ten_contiguous(self):
        ledger = EconomyLedger(_make_config())
        arr = ledger.pieces(0)
        arr[20:29] = True
        assert not ledger.is_set_complete(0, 2)
        arr[29] = True
        assert ledger.is_set_complete(0, 2)
        assert not ledger.is_set_complete(0, 1)
        assert ledger.set_counts(0)[2] == 10


class TestPieceRolls:
    def test_guaranteed_success(self):
        ledger = EconomyLedger(_make_config(piece_base_chance=1.0))
        rng = np.random.default_rng(0)
        assert ledger.roll_piece(0, 5, 0, rng)
        assert ledger.is_found(0, 5)

    def test_found_piece_not_rolled_again(self):
        ledger = EconomyLedger(_make_config(piece_base_chance=1.0))
        rng = np.random.default_rng(0)
        ledger.roll_piece(0, 5, 0, rng)
        assert not ledger.roll_piece(0, 5, 0, rng)

    def test_failure_grows_pity(self):
        ledger = EconomyLedger(_make_config(piece_base_chance=0.0))
        rng = np.random.default_rng(0)
        before = ledger.discovery_chance(0, 1, 0)
        assert not ledger.roll_piece(0, 1, 0, rng)
        assert ledger.pity_boosts[(0, 1)] == 1.0
        assert ledger.discovery_chance(0, 1, 0) > before

    def test_pity_never_decreases_until_success(self):
        ledger = EconomyLedger(_make_config(piece_base_chance=0.0, piece_pity_step=0.5))
        rng = np.random.default_rng(3)
        last = 0.0
        for _ in range(20):
            if ledger.roll_piece(0, 0, 0, rng):
                assert (0, 0) not in ledger.pity_boosts
                break
            assert ledger.pity_boosts[(0, 0)] >= last
            last = ledger.pity_boosts[(0, 0)]

    def test_pity_eventually_guarantees_discovery(self):
        ledger = EconomyLedger(_make_config(piece_base_chance=0.0, piece_pity_step=100.0))
        rng = np.random.default_rng(0)
        assert not ledger.roll_piece(0, 0, 0, rng)
        assert ledger.roll_piece(0, 0, 0, rng)
        assert (0, 0) not in ledger.pity_boosts

    def test_scan_raises_chance(self):
        ledger = EconomyLedger(_make_config())
        assert ledger.discovery_chance(0, 0, 10) == pytest.approx(0.02)


# =====================================================================
# Level rewards
# =====================================================================

class TestLevelRewards:
    def test_level_currency(self):
        ledger = EconomyLedger(_make_config())
        assert ledger.level_currency(7) == 0
        assert ledger.level_currency(10) == 1
        assert ledger.level_currency(100) == 11

    def test_fragment_chance_milestones(self):
        ledger = EconomyLedger(_make_config())
        assert ledger.fragment_chance(24) == 0.10
        assert ledger.fragment_chance(25) == 0.25
        assert ledger.fragment_chance(100) == 1.0

    def test_final_piece_maps_zone(self):
        ledger = EconomyLedger(_make_config(piece_base_chance=1.0))
        ledger.pieces(0)[:99] = True
        roll = ledger.roll_level_rewards(100, _tiers(), np.random.default_rng(0))
        assert roll.piece_found
        assert roll.zone_mapped
        assert roll.currency == 1 + 1 + 10
        assert ledger.is_mapped(0)

    def test_zone_mapped_reported_once(self):
        ledger = EconomyLedger(_make_config(piece_base_chance=1.0))
        ledger.pieces(0)[:] = True
        roll = ledger.roll_level_rewards(100, _tiers(), np.random.default_rng(0))
        assert not roll.piece_found
        assert not roll.zone_mapped
        assert roll.currency == 11

    def test_zone_boss_always_drops_fragment(self):
        ledger = EconomyLedger(_make_config())
        roll = ledger.roll_level_rewards(100, _tiers(), np.random.default_rng(5))
        assert len(roll.fragments) == 1
        assert roll.fragments[0] in RELIC_TYPES

    def test_no_fragments_when_chance_zero(self):
        ledger = EconomyLedger(_make_config(fragment_base_chance=0.0))
        roll = ledger.roll_level_rewards(7, _tiers(), np.random.default_rng(5))
        assert roll.fragments == []

    def test_scoop_second_fragment_differs(self):
        ledger = EconomyLedger(_make_config(scoop_chance_per_tier=1.0))
        roll = ledger.roll_level_rewards(100, _tiers(scoop=1), np.random.default_rng(11))
        assert len(roll.fragments) == 2
        assert roll.fragments[0] != roll.fragments[1]

    def test_steal_duplicates_currency_as_bonus(self):
        ledger = EconomyLedger(_make_config(steal_chance_per_tier=1.0, piece_base_chance=0.0))
        roll = ledger.roll_level_rewards(100, _tiers(steal=1), np.random.default_rng(0))
        assert roll.currency == 11
        assert roll.bonus_currency == 11

    def test_no_steal_without_currency(self):
        ledger = EconomyLedger(_make_config(steal_chance_per_tier=1.0, piece_base_chance=0.0))
        roll = ledger.roll_level_rewards(7, _tiers(steal=1), np.random.default_rng(0))
        assert roll.bonus_currency == 0

    def test_record_recall(self):
        ledger = EconomyLedger(_make_config())
        ledger.record_recall(12.0, {RelicType.SCAN: 2})
        ledger.record_recall(3.0, {RelicType.SCAN: 1})
        assert ledger.lifetime_currency == 15.0
        assert ledger.lifetime_fragments[RelicType.SCAN] == 3


# =====================================================================
# Serialization & migration
# =====================================================================

class TestSerialization:
    def test_roundtrip(self):
        config = _make_config()
        ledger = EconomyLedger(config)
        ledger.pieces(2)[[0, 5, 99]] = True
        ledger.pity_boosts[(2, 7)] = 4.0
        ledger.record_recall(9.0, {RelicType.STYLE: 1})

        restored = EconomyLedger(config)
        restored.load_dict(ledger.to_dict())
        assert np.array_equal(restored.pieces(2), ledger.pieces(2))
        assert restored.pity_boosts == {(2, 7): 4.0}
        assert restored.lifetime_currency == 9.0
        assert restored.lifetime_fragments[RelicType.STYLE] == 1

    def test_load_empty(self):
        ledger = EconomyLedger(_make_config())
        ledger.load_dict({})
        assert ledger.map_pieces == {}
        assert ledger.lifetime_currency == 0.0


class TestMigration:
    def test_true_means_whole_zone(self):
        arr = migrate_piece_array(True, _make_config())
        assert arr.all()
        assert arr.shape == (100,)

    def test_per_set_counts(self):
        arr = migrate_piece_array([10, 3, 0, 0, 0, 0, 0, 0, 0, True], _make_config())
        assert arr[:10].all()
        assert arr[10:13].all()
        assert not arr[13:20].any()
        assert arr[90:].all()
        assert arr.sum() == 23

    def test_flag_list(self):
        flags = [False] * 100
        flags[42] = True
        arr = migrate_piece_array(flags, _make_config())
        assert arr.sum() == 1
        assert arr[42]

    def test_unknown_value_empty(self):
        assert not migrate_piece_array(None, _make_config()).any()
