from __future__ import annotations

from dataclasses import dataclass
from typing import Union

import numpy as np
from scipy.stats import pearsonr

from .exceptions import AllZeroError, DegenerateColumnError, InvalidArgumentError

STANDARDIZE_MODES = ("none", "center", "sd")

Mode = Union[str, bool, None]


def soft_thresh(A: np.ndarray, lam: float) -> np.ndarray:
    """
    Elementwise soft-threshold: sign(A) * max(|A| - lam, 0)
    """
    return np.sign(A) * np.maximum(np.abs(A) - lam, 0.0)


def fnorm(A: np.ndarray) -> float:
    """Frobenius norm."""
    return float(np.sqrt(np.sum(A * A)))


def threshold(vec: np.ndarray, lambda_: float) -> np.ndarray:
    """
    Soft-threshold `vec` by `lambda_` and rescale the result to unit L2 norm.

    Raises AllZeroError when every entry is thresholded away, instead of
    returning a zero vector or dividing by zero.
    """
    out = soft_thresh(np.asarray(vec, dtype=float), lambda_)
    norm = float(np.sqrt(np.sum(out * out)))
    if norm == 0.0:
        raise AllZeroError(f"all {out.size} entries thresholded to zero at lambda={lambda_:.4g}")
    return out / norm


def _check_mode(mode: Mode) -> str:
    # True/False mirror the boolean `standardize` flag used by callers.
    if mode is None or mode is False:
        return "none"
    if mode is True:
        return "sd"
    if isinstance(mode, str) and mode.lower() in STANDARDIZE_MODES:
        return mode.lower()
    raise InvalidArgumentError(
        f"unknown standardization mode {mode!r}; use one of {STANDARDIZE_MODES}")


def _as_matrix(M, name: str = "matrix") -> np.ndarray:
    try:
        M = np.asarray(M, dtype=float)
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(f"{name} is not numeric: {e}") from e
    if M.ndim != 2:
        raise InvalidArgumentError(f"{name} must be 2-D, got shape {M.shape}")
    if M.shape[0] == 0 or M.shape[1] == 0:
        raise InvalidArgumentError(f"{name} is empty, got shape {M.shape}")
    if not np.all(np.isfinite(M)):
        raise InvalidArgumentError(f"{name} contains NaN or infinite entries")
    return M


def _check_penalty(value: float, name: str) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(f"{name} must be a number, got {value!r}") from e
    if not np.isfinite(value) or value < 0.0:
        raise InvalidArgumentError(f"{name} must be finite and >= 0, got {value}")
    return value


# --------------------------------------------------------------------
# Column standardization
# --------------------------------------------------------------------

@dataclass(frozen=True)
class StandardizedMatrix:
    """
    A standardized copy of a matrix together with the column statistics
    used to produce it, so new rows can be mapped the same way.
    """
    data: np.ndarray
    mode: str
    center: np.ndarray
    scale: np.ndarray

    @property
    def shape(self):
        return self.data.shape

    def transform(self, M: np.ndarray) -> np.ndarray:
        """Apply the stored center/scale to new rows of the same columns."""
        M = np.asarray(M, dtype=float)
        if M.ndim != 2 or M.shape[1] != self.center.shape[0]:
            raise InvalidArgumentError(
                f"expected {self.center.shape[0]} columns, got shape {M.shape}")
        return (M - self.center) / self.scale


def standardize(M: np.ndarray, mode: Mode = "sd") -> StandardizedMatrix:
    """
    Column-wise standardization.

      none   : data returned as-is (as a copy)
      center : subtract column means
      sd     : subtract column means, divide by sample sd (ddof=1)

    The input is never modified. Under "sd" a constant column raises
    DegenerateColumnError naming the column instead of dividing by zero.
    """
    mode = _check_mode(mode)
    M = _as_matrix(M)
    p = M.shape[1]

    if mode == "none":
        center = np.zeros(p, dtype=float)
        scale = np.ones(p, dtype=float)
        return StandardizedMatrix(data=M.copy(), mode=mode, center=center, scale=scale)

    center = M.mean(axis=0)
    if mode == "center":
        return StandardizedMatrix(data=M - center, mode=mode, center=center,
                                  scale=np.ones(p, dtype=float))

    if M.shape[0] < 2:
        raise InvalidArgumentError("sd standardization needs at least 2 rows")
    constant = np.flatnonzero(np.ptp(M, axis=0) == 0.0)
    if constant.size > 0:
        raise DegenerateColumnError(int(constant[0]))
    scale = M.std(axis=0, ddof=1)
    return StandardizedMatrix(data=(M - center) / scale, mode=mode, center=center, scale=scale)


def cross_covariance(X: np.ndarray, Y: np.ndarray) -> np.ndarray:
    """Sigma = X^T Y / (n - 1) for column-standardized X (n x p), Y (n x q)."""
    n = X.shape[0]
    return (X.T @ Y) / (n - 1)


def _pearson_or_nan(a: np.ndarray, b: np.ndarray) -> float:
    """
    Pearson correlation of two projections; NaN (undefined) when there are
    fewer than two samples or either projection is constant.
    """
    if a.shape[0] < 2 or np.ptp(a) == 0.0 or np.ptp(b) == 0.0:
        return float("nan")
    return float(pearsonr(a, b)[0])
