"""Seeded RNG factory for reproducible dispersal runs.

Uses NumPy's SeedSequence → PCG64 hierarchy to guarantee:
  - Statistical independence between the dispersal formulations
  - Bit-exact replay with the same master seed
  - Fresh OS entropy when random draws are requested

References:
  - NumPy docs: numpy.random.SeedSequence
"""

from __future__ import annotations

from typing import Dict, Optional

import numpy as np

DEFAULT_SEED = 14141

STREAM_NAMES = ('advective', 'diffusive', 'responsive', 'seeding')


def create_rng_hierarchy(
    master_seed: Optional[int] = DEFAULT_SEED,
    draw_randomly: bool = False,
) -> Dict[str, np.random.Generator]:
    """Create independent RNG streams for each stochastic component.

    Streams created:
      - 'advective':  Advective (planktonic) dispersal
      - 'diffusive':  Diffusive dispersal of immature cohorts
      - 'responsive': Starvation / density driven dispersal
      - 'seeding':    Cohort body mass draws at initialisation

    Args:
        master_seed: Master RNG seed (non-negative integer). Ignored when
            ``draw_randomly`` is True.
        draw_randomly: If True, seed from OS entropy instead of
            ``master_seed``.

    Returns:
        Dictionary mapping stream names to numpy Generator instances.
    """
    if draw_randomly or master_seed is None:
        ss = np.random.SeedSequence()
    else:
        ss = np.random.SeedSequence(master_seed)
    child_seeds = ss.spawn(len(STREAM_NAMES))
    return {
        name: np.random.Generator(np.random.PCG64(seed))
        for name, seed in zip(STREAM_NAMES, child_seeds)
    }


def rng_state_snapshot(
    rngs: Dict[str, np.random.Generator],
) -> Dict[str, dict]:
    """Capture full RNG state so a run can be resumed exactly.

    Args:
        rngs: RNG hierarchy.

    Returns:
        Dictionary mapping stream names to their internal state dicts.
    """
    return {name: rng.bit_generator.state for name, rng in rngs.items()}


def restore_rng_state(
    rngs: Dict[str, np.random.Generator],
    states: Dict[str, dict],
) -> None:
    """Restore RNG state from a snapshot.

    Raises:
        KeyError: If a stream in states doesn't exist in rngs.
    """
    for name, state in states.items():
        if name not in rngs:
            raise KeyError(f"Cannot restore RNG state for unknown stream '{name}'")
        rngs[name].bit_generator.state = state
