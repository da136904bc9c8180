from typing import List, Optional, Sequence

import numpy as np

from custom_types.errors import DimensionMismatch
from custom_types.types import FloatArray


def make_rng(seed: int | np.random.SeedSequence | None = None) -> np.random.Generator:
    """
    Create a numpy random number generator for reproducibility.

    Args:
        seed: Random seed or spawned SeedSequence. None for non-deterministic.

    Returns:
        numpy Generator instance
    """
    return np.random.default_rng(seed)


def batch_seeds(root: np.random.SeedSequence, start: int, stop: int) -> List[np.random.SeedSequence]:
    """
    Child seeds for trials start..stop-1 of a root sequence.

    Builds the same children root.spawn would hand out at those positions,
    without creating the ones before start. Trial i therefore always gets
    the same stream for a given root, whatever batch it ends up in.
    """
    return [
        np.random.SeedSequence(root.entropy, spawn_key=root.spawn_key + (i,), pool_size=root.pool_size)
        for i in range(start, stop)
    ]


def trial_seeds(seed: Optional[int], n_trials: int) -> List[np.random.SeedSequence]:
    """One independent child seed per trial, from a single root."""
    return batch_seeds(np.random.SeedSequence(seed), 0, n_trials)


def trial_streams(seed: Optional[int], n_trials: int) -> List[np.random.Generator]:
    """Generators for trials 0..n_trials-1 (convenience for single-batch use)."""
    return [make_rng(s) for s in trial_seeds(seed, n_trials)]


def draw_columns(draw, n_rows: int, rngs: Sequence[np.random.Generator]) -> FloatArray:
    """
    Stack per-trial draws into an (n_rows, n_trials) matrix.

    Args:
        draw: Callable (n_rows, rng) -> 1D array of length n_rows
        n_rows: Number of values per trial
        rngs: One generator per trial (column)
    """
    out = np.empty((n_rows, len(rngs)), dtype=np.float64)
    for j, rng in enumerate(rngs):
        out[:, j] = draw(n_rows, rng)
    return out


def resolve_streams(
        n_trials: int,
        rngs: Optional[Sequence[np.random.Generator]],
        seed: Optional[int]
) -> Sequence[np.random.Generator]:
    """Use the caller's per-trial generators, or spawn fresh ones from seed."""
    if n_trials < 1:
        raise DimensionMismatch(f"Need at least one trial, got {n_trials}")
    if rngs is None:
        return trial_streams(seed, n_trials)
    if len(rngs) != n_trials:
        raise DimensionMismatch(f"{len(rngs)} random streams supplied for {n_trials} trials")
    return rngs
