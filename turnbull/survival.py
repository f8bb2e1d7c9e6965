from typing import List, Sequence, Tuple

import numpy as np
import pandas as pd


class ShapeMismatchError(ValueError):
    pass


class SurvResult:
    """Survival table S(t) = 1 - F(t) over the estimation grid."""

    def __init__(self, times: np.ndarray, density: np.ndarray, converged: bool = True, n_iter: int = 0):
        self._times = np.array(times, dtype=float)
        self._density = np.array(density, dtype=float)
        if self._times.size != self._density.size:
            raise ShapeMismatchError(
                f"Length of grid ({self._times.size}) does not equal length of density ({self._density.size})"
            )
        # 1 - cumulative mass up to and including each grid point
        self._survival = 1.0 - np.cumsum(self._density)
        self.converged = converged
        self.n_iter = n_iter

    def get_survival_table(self) -> List[Tuple[float, float, float]]:
        # Third column is reserved for a variance estimate
        return [(float(t), float(s), 0.0) for t, s in zip(self._times, self._survival)]

    @property
    def times(self) -> np.ndarray:
        return self._times.copy()

    @property
    def survival(self) -> np.ndarray:
        return self._survival.copy()

    @property
    def density(self) -> np.ndarray:
        return self._density.copy()

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "time": self._times,
            "survival": self._survival,
            "variance": np.zeros_like(self._survival),
        })

    def __len__(self):
        return self._times.size

    def __repr__(self):
        return f"SurvResult(n_points={len(self)}, converged={self.converged}, n_iter={self.n_iter})"


def new_result(grid: Sequence[float], density: Sequence[float], converged: bool = True, n_iter: int = 0) -> SurvResult:
    return SurvResult(grid, density, converged=converged, n_iter=n_iter)
