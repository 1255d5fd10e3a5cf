from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Tuple

import numpy as np
from sklearn.exceptions import ConvergenceWarning

from ._helper import (
    StandardizedMatrix, Mode, standardize, threshold, fnorm, cross_covariance,
    _as_matrix, _check_mode, _check_penalty, _pearson_or_nan)
from .exceptions import AllZeroError, InfeasiblePenaltyError, InvalidArgumentError

DEFAULT_TOL = 1e-6
DEFAULT_MAX_ITER = 1000


@dataclass
class CanonicalPair:
    u: np.ndarray
    v: np.ndarray
    d: float
    converged: bool
    n_iter: int


@dataclass
class SCCAResult:
    """
    U : (p, ndim) canonical vectors for X, one column per dimension
    V : (q, ndim) canonical vectors for Y
    d : (ndim,) singular values u^T Sigma v of the (deflated) cross-covariance
    converged, n_iter : per-dimension solver diagnostics
    cor : (ndim,) in-sample correlation of the canonical variates (NaN if undefined)
    """
    U: np.ndarray
    V: np.ndarray
    d: np.ndarray
    converged: np.ndarray
    n_iter: np.ndarray
    cor: np.ndarray
    lambda1: float
    lambda2: float
    x_std: StandardizedMatrix = field(repr=False)
    y_std: StandardizedMatrix = field(repr=False)

    @property
    def ndim(self) -> int:
        return self.U.shape[1]


def _check_solver_args(tol: float, max_iter: int) -> Tuple[float, int]:
    tol = float(tol)
    if not np.isfinite(tol) or tol <= 0.0:
        raise InvalidArgumentError(f"tol must be > 0, got {tol}")
    if isinstance(max_iter, bool) or int(max_iter) != max_iter or max_iter < 1:
        raise InvalidArgumentError(f"max_iter must be a positive integer, got {max_iter}")
    return tol, int(max_iter)


# --------------------------------------------------------------------
# Penalized power iteration (one pair) and deflation
# --------------------------------------------------------------------

def solve_pair(
    Sigma: np.ndarray,
    lambda1: float,
    lambda2: float,
    tol: float = DEFAULT_TOL,
    max_iter: int = DEFAULT_MAX_ITER,
    verbose: bool = False,
) -> CanonicalPair:
    """
    Find one pair of sparse unit vectors (u, v) maximizing u^T Sigma v by
    alternating soft-thresholded power steps:

        u <- S(Sigma v, lambda1) / ||.||,   v <- S(Sigma^T u, lambda2) / ||.||

    v starts at the normalized row of Sigma with the largest L2 norm, so the
    result is deterministic. Stops when both ||u - u_old|| and ||v - v_old||
    drop below `tol`; otherwise returns after `max_iter` iterations with
    converged=False and a ConvergenceWarning.

    Raises InfeasiblePenaltyError when a penalty zeroes out u or v.
    """
    Sigma = _as_matrix(Sigma, "Sigma")
    lambda1 = _check_penalty(lambda1, "lambda1")
    lambda2 = _check_penalty(lambda2, "lambda2")
    tol, max_iter = _check_solver_args(tol, max_iter)
    p, q = Sigma.shape

    row_norms = np.sqrt(np.sum(Sigma * Sigma, axis=1))
    i0 = int(np.argmax(row_norms))
    v = np.zeros(q, dtype=float)
    if row_norms[i0] > 0.0:
        v = Sigma[i0, :] / row_norms[i0]
    u = np.zeros(p, dtype=float)

    d = 0.0
    converged = False
    it = 0
    while it < max_iter:
        it += 1
        u_prev, v_prev = u, v

        try:
            u = threshold(Sigma @ v, lambda1)
        except AllZeroError as e:
            raise InfeasiblePenaltyError("lambda1", lambda1) from e
        try:
            v = threshold(Sigma.T @ u, lambda2)
        except AllZeroError as e:
            raise InfeasiblePenaltyError("lambda2", lambda2) from e

        d = float(u @ Sigma @ v)
        # v follows the signs of Sigma^T u, so d >= 0 already; guards the sign convention
        if d < 0.0:
            u = -u
            d = -d

        delta_u = fnorm(u - u_prev)
        delta_v = fnorm(v - v_prev)
        if verbose and it % 10 == 0:
            print(f"iter: {it:d} delta_u: {delta_u:.3e} delta_v: {delta_v:.3e}")
        if delta_u < tol and delta_v < tol:
            converged = True
            break

    if not converged:
        warnings.warn(
            f"power iteration did not converge in {max_iter} iterations "
            f"(lambda1={lambda1:.4g}, lambda2={lambda2:.4g})",
            ConvergenceWarning,
        )
    elif verbose:
        print(f"power iteration converged in {it} iterations")

    return CanonicalPair(u=u, v=v, d=d, converged=converged, n_iter=it)


def deflate(Sigma: np.ndarray, u: np.ndarray, v: np.ndarray, d: float) -> np.ndarray:
    """Sigma - d * u v^T, as a new array."""
    Sigma = np.asarray(Sigma, dtype=float)
    u = np.asarray(u, dtype=float)
    v = np.asarray(v, dtype=float)
    if Sigma.shape != (u.shape[0], v.shape[0]):
        raise InvalidArgumentError(
            f"Sigma shape {Sigma.shape} does not match u {u.shape} and v {v.shape}")
    return Sigma - float(d) * np.outer(u, v)


# --------------------------------------------------------------------
# Main: sparse CCA over several dimensions
# --------------------------------------------------------------------

def fit_scca(
    X: np.ndarray,
    Y: np.ndarray,
    lambda1: float = 0.0,
    lambda2: float = 0.0,
    ndim: int = 1,
    standx: Mode = "sd",
    standy: Mode = "sd",
    tol: float = DEFAULT_TOL,
    max_iter: int = DEFAULT_MAX_ITER,
    verbose: bool = False,
) -> SCCAResult:
    """
    Sparse canonical correlation analysis by penalized power iteration with
    deflation.

    Parameters
    ----------
    X : (n, p) array
    Y : (n, q) array, same samples (rows) as X
    lambda1, lambda2 : float >= 0, soft-threshold penalties for u (X) and v (Y)
    ndim : int, number of canonical pairs, 1 <= ndim <= min(p, q)
    standx, standy : "none" | "center" | "sd", column standardization of X / Y
    tol : float, convergence tolerance on the change of u and v
    max_iter : int, maximum power iterations per dimension
    verbose : bool

    Returns
    -------
    SCCAResult

    Raises InvalidArgumentError before any computation on malformed input,
    DegenerateColumnError for a constant column under "sd", and
    InfeasiblePenaltyError (with .dimension set) if any dimension is
    sparsified to zero. A failing dimension fails the whole fit.
    """
    X = _as_matrix(X, "X")
    Y = _as_matrix(Y, "Y")
    n, p = X.shape
    q = Y.shape[1]
    if Y.shape[0] != n:
        raise InvalidArgumentError(f"X has {n} rows but Y has {Y.shape[0]}")
    if n < 2:
        raise InvalidArgumentError("need at least 2 samples")
    if isinstance(ndim, bool) or int(ndim) != ndim or not 1 <= ndim <= min(p, q):
        raise InvalidArgumentError(f"ndim must be an integer in [1, {min(p, q)}], got {ndim}")
    ndim = int(ndim)
    lambda1 = _check_penalty(lambda1, "lambda1")
    lambda2 = _check_penalty(lambda2, "lambda2")
    tol, max_iter = _check_solver_args(tol, max_iter)
    standx = _check_mode(standx)
    standy = _check_mode(standy)

    Xs = standardize(X, standx)
    Ys = standardize(Y, standy)
    Sigma = cross_covariance(Xs.data, Ys.data)

    U = np.zeros((p, ndim), dtype=float)
    V = np.zeros((q, ndim), dtype=float)
    d = np.zeros(ndim, dtype=float)
    converged = np.zeros(ndim, dtype=bool)
    n_iter = np.zeros(ndim, dtype=int)

    for k in range(ndim):
        if verbose:
            print(f"dimension {k + 1}/{ndim}")
        try:
            pair = solve_pair(Sigma, lambda1, lambda2, tol=tol, max_iter=max_iter, verbose=verbose)
        except InfeasiblePenaltyError as e:
            e.at_dimension(k + 1)
            raise
        U[:, k] = pair.u
        V[:, k] = pair.v
        d[k] = pair.d
        converged[k] = pair.converged
        n_iter[k] = pair.n_iter
        Sigma = deflate(Sigma, pair.u, pair.v, pair.d)

    XU = Xs.data @ U
    YV = Ys.data @ V
    cor = np.array([_pearson_or_nan(XU[:, k], YV[:, k]) for k in range(ndim)], dtype=float)

    return SCCAResult(U=U, V=V, d=d, converged=converged, n_iter=n_iter, cor=cor,
                      lambda1=lambda1, lambda2=lambda2, x_std=Xs, y_std=Ys)


def scca_transform(result: SCCAResult, X: np.ndarray, Y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Canonical variates (X U, Y V) of new samples, standardized with the
    column statistics of the data `result` was fitted on.
    """
    X = _as_matrix(X, "X")
    Y = _as_matrix(Y, "Y")
    if X.shape[0] != Y.shape[0]:
        raise InvalidArgumentError(f"X has {X.shape[0]} rows but Y has {Y.shape[0]}")
    return result.x_std.transform(X) @ result.U, result.y_std.transform(Y) @ result.V


def penalty_grid(
    X: np.ndarray,
    Y: np.ndarray,
    n_lambda: int = 10,
    standx: Mode = "sd",
    standy: Mode = "sd",
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Evenly spaced candidate penalties in [0, lambda_max) for each side.

    |(Sigma v)_i| <= ||Sigma[i, :]|| for any unit v, so lambda1 at or above the
    largest row norm of Sigma zeroes u whatever v is (and likewise lambda2
    with the column norms); the grid stops short of that bound.
    """
    if isinstance(n_lambda, bool) or int(n_lambda) != n_lambda or n_lambda < 1:
        raise InvalidArgumentError(f"n_lambda must be a positive integer, got {n_lambda}")
    X = _as_matrix(X, "X")
    Y = _as_matrix(Y, "Y")
    if X.shape[0] != Y.shape[0]:
        raise InvalidArgumentError(f"X has {X.shape[0]} rows but Y has {Y.shape[0]}")
    if X.shape[0] < 2:
        raise InvalidArgumentError("need at least 2 samples")
    Sigma = cross_covariance(standardize(X, standx).data, standardize(Y, standy).data)
    lam1_max = float(np.max(np.sqrt(np.sum(Sigma * Sigma, axis=1))))
    lam2_max = float(np.max(np.sqrt(np.sum(Sigma * Sigma, axis=0))))
    return (np.linspace(0.0, lam1_max, int(n_lambda), endpoint=False),
            np.linspace(0.0, lam2_max, int(n_lambda), endpoint=False))
