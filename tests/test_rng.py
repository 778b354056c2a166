"""Tests for madingley.rng: seeded RNG hierarchy and checkpointing."""

import numpy as np
import pytest

from madingley.rng import (
    DEFAULT_SEED,
    STREAM_NAMES,
    create_rng_hierarchy,
    restore_rng_state,
    rng_state_snapshot,
)


class TestCreateRngHierarchy:
    def test_returns_correct_keys(self):
        rngs = create_rng_hierarchy(42)
        assert set(rngs) == set(STREAM_NAMES)
        assert {'advective', 'diffusive', 'responsive', 'seeding'} <= set(rngs)

    def test_generators_are_independent(self):
        """Different streams produce different sequences."""
        rngs = create_rng_hierarchy(42)
        vals = {name: rng.random() for name, rng in rngs.items()}
        assert len(set(vals.values())) == len(vals), "RNG streams produced duplicate values"

    def test_reproducibility(self):
        rngs1 = create_rng_hierarchy(42)
        rngs2 = create_rng_hierarchy(42)
        for name in rngs1:
            np.testing.assert_array_equal(rngs1[name].random(100), rngs2[name].random(100))

    def test_default_seed(self):
        a = create_rng_hierarchy()
        b = create_rng_hierarchy(DEFAULT_SEED)
        np.testing.assert_array_equal(a['seeding'].random(5), b['seeding'].random(5))

    def test_different_seeds_differ(self):
        rngs1 = create_rng_hierarchy(42)
        rngs2 = create_rng_hierarchy(43)
        assert not np.array_equal(rngs1['diffusive'].random(10), rngs2['diffusive'].random(10))

    def test_draw_randomly_ignores_seed(self):
        rngs1 = create_rng_hierarchy(42, draw_randomly=True)
        rngs2 = create_rng_hierarchy(42, draw_randomly=True)
        assert not np.array_equal(rngs1['advective'].random(10), rngs2['advective'].random(10))


class TestRngCheckpoint:
    def test_snapshot_restore_roundtrip(self):
        rngs = create_rng_hierarchy(7)
        snap = rng_state_snapshot(rngs)
        first = {name: rng.random(5) for name, rng in rngs.items()}
        restore_rng_state(rngs, snap)
        for name, rng in rngs.items():
            np.testing.assert_array_equal(rng.random(5), first[name])

    def test_restore_unknown_stream(self):
        rngs = create_rng_hierarchy(7)
        with pytest.raises(KeyError, match="unknown stream"):
            restore_rng_state(rngs, {'node_0': {}})
