import logging
from typing import Optional, Sequence

import numpy as np
from scipy import sparse as sp

from .surv import Surv, InvalidObservationError
from .survival import SurvResult, ShapeMismatchError, new_result

logger = logging.getLogger(__name__)

DEFAULT_TOL = 1e-9
DEFAULT_MAX_ITER = 1000


class DegenerateObservationError(ValueError):
    pass


class ConvergenceError(RuntimeError):
    pass


def _check_observations(observations: Sequence[Surv]) -> None:
    if len(observations) == 0:
        raise ValueError("At least one observation is required")
    for i, obs in enumerate(observations):
        try:
            obs.validate()
        except InvalidObservationError as e:
            raise InvalidObservationError(f"Observation {i}: {e}") from e


def _weight_vector(weights: Optional[Sequence[float]], n: int) -> np.ndarray:
    if weights is None:
        return np.ones(n)
    w = np.asarray(weights, dtype=float)
    if w.ndim != 1 or w.size != n:
        raise ShapeMismatchError(f"Got {w.size} weights for {n} observations")
    if not np.all(np.isfinite(w)) or (w < 0).any():
        raise ValueError("Weights must be finite and non-negative")
    if w.sum() <= 0:
        raise ValueError("Weights must have a positive total")
    return w


def event_grid(observations: Sequence[Surv]) -> np.ndarray:
    """Sorted unique exact event times, with +inf appended as the last support point."""
    times = [obs.exit_r for obs in observations if not obs.is_censored() and not obs.is_interval_censored()]
    # np.unique sorts before dropping duplicates
    uniq = np.unique(np.asarray(times, dtype=float))
    return np.append(uniq, np.inf)


def compatibility_matrix(observations: Sequence[Surv], grid: np.ndarray, sparse: bool = False):
    """M[i, j] = 1 when grid[j] lies in [exit_l, exit_r] of observation i."""
    lo = np.array([obs.exit_l for obs in observations], dtype=float)
    hi = np.array([obs.exit_r for obs in observations], dtype=float)
    m = ((lo[:, None] <= grid[None, :]) & (grid[None, :] <= hi[:, None])).astype(float)

    empty = np.flatnonzero(m.sum(axis=1) == 0)
    if empty.size:
        i = int(empty[0])
        raise DegenerateObservationError(
            f"Observation {i} ({observations[i]}) is compatible with no grid point; "
            f"{empty.size} such observation(s) in total"
        )
    if sparse:
        return sp.csr_matrix(m)
    return m


def _em_step(compat, density: np.ndarray, weights: np.ndarray):
    # E step: spread each observation over its compatible points by current density
    if sp.issparse(compat):
        alloc = sp.csr_matrix(compat @ sp.diags(density))
        row_sums = np.asarray(alloc.sum(axis=1)).ravel()
    else:
        alloc = compat * density[None, :]
        row_sums = alloc.sum(axis=1)

    # Zero-weight rows may lose all mass; they add nothing to the M step
    empty = row_sums <= 0
    lost = np.flatnonzero(empty & (weights > 0))
    if lost.size:
        raise DegenerateObservationError(
            f"Observation {int(lost[0])} lost all probability mass during iteration"
        )
    inv = np.zeros_like(row_sums)
    inv[~empty] = 1.0 / row_sums[~empty]

    if sp.issparse(alloc):
        alloc = sp.diags(inv) @ alloc
    else:
        alloc = alloc * inv[:, None]

    # M step: weighted column sums, renormalized
    colsums = np.asarray(alloc.T @ weights).ravel()
    new_density = colsums / colsums.sum()
    return np.linalg.norm(new_density - density), new_density


def kaplan_meier(observations: Sequence[Surv], weights: Optional[Sequence[float]] = None, *,
                 tol: float = DEFAULT_TOL, max_iter: int = DEFAULT_MAX_ITER,
                 strict: bool = True, sparse: bool = False) -> SurvResult:
    """Self-consistency (Turnbull) estimate of the survival function over the unique event times plus +inf."""
    observations = list(observations)
    _check_observations(observations)
    w = _weight_vector(weights, len(observations))

    grid = event_grid(observations)
    compat = compatibility_matrix(observations, grid, sparse=sparse)
    density = np.full(grid.size, 1.0 / grid.size)

    dist = np.inf
    n_iter = 0
    while dist >= tol:
        if n_iter >= max_iter:
            msg = f"No convergence after {max_iter} iterations (last step {dist:.3e}, tol {tol:.1e})"
            if strict:
                raise ConvergenceError(msg)
            logger.warning(msg)
            return new_result(grid, density, converged=False, n_iter=n_iter)
        dist, density = _em_step(compat, density, w)
        n_iter += 1
        logger.debug("iteration %d: step %.3e", n_iter, dist)

    logger.debug("converged after %d iterations over %d grid points", n_iter, grid.size)
    return new_result(grid, density, converged=True, n_iter=n_iter)
