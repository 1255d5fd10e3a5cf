from __future__ import annotations

import copy
import warnings
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from ._helper import Mode, standardize, _as_matrix, _check_mode, _check_penalty, _pearson_or_nan
from .exceptions import DegenerateColumnError, InfeasiblePenaltyError, InvalidArgumentError
from .scca import (
    DEFAULT_MAX_ITER, DEFAULT_TOL, SCCAResult, fit_scca, penalty_grid, scca_transform,
    _check_solver_args)

RandomState = Union[None, int, np.random.SeedSequence, np.random.Generator]


# --------------------------------------------------------------------
# Folds
# --------------------------------------------------------------------

@dataclass
class FoldAssignment:
    """labels[i] is the fold (0 .. n_folds-1) holding sample i."""
    labels: np.ndarray
    n_folds: int

    @property
    def sizes(self) -> np.ndarray:
        return np.bincount(self.labels, minlength=self.n_folds)

    def test_indices(self, fold: int) -> np.ndarray:
        return np.flatnonzero(self.labels == fold)

    def train_indices(self, fold: int) -> np.ndarray:
        return np.flatnonzero(self.labels != fold)


def partition_folds(n: int, k: int, rng_state: RandomState = None) -> FoldAssignment:
    """
    Randomly assign n samples to k folds whose sizes differ by at most one.
    The assignment depends only on `rng_state` (seed or Generator). A
    Generator is copied, not advanced, so passing it again gives the same folds.
    """
    if isinstance(n, bool) or int(n) != n or n < 1:
        raise InvalidArgumentError(f"n must be a positive integer, got {n}")
    if isinstance(k, bool) or int(k) != k:
        raise InvalidArgumentError(f"number of folds must be an integer, got {k}")
    n, k = int(n), int(k)
    if k < 2 or k > n:
        raise InvalidArgumentError(f"number of folds must be in [2, {n}], got {k}")

    if isinstance(rng_state, np.random.Generator):
        rng_state = copy.deepcopy(rng_state)
    rng = np.random.default_rng(rng_state)
    idx = rng.permutation(n)
    labels = np.empty(n, dtype=int)
    for f, fold in enumerate(np.array_split(idx, k)):
        labels[fold] = f
    return FoldAssignment(labels=labels, n_folds=k)


# --------------------------------------------------------------------
# One (lambda1, lambda2, fold) evaluation
# --------------------------------------------------------------------

def _fold_cor(
    X: np.ndarray,
    Y: np.ndarray,
    train_idx: np.ndarray,
    test_idx: np.ndarray,
    lambda1: float,
    lambda2: float,
    ndim: int,
    standx: str,
    standy: str,
    tol: float,
    max_iter: int,
) -> np.ndarray:
    """
    Fit on the training rows, then correlate the held-out canonical variates
    per dimension. Entries are NaN when undefined.
    """
    try:
        fit = fit_scca(X[train_idx], Y[train_idx], lambda1=lambda1, lambda2=lambda2,
                       ndim=ndim, standx=standx, standy=standy, tol=tol, max_iter=max_iter)
    except (InfeasiblePenaltyError, DegenerateColumnError):
        return np.full(ndim, np.nan, dtype=float)

    XU, YV = scca_transform(fit, X[test_idx], Y[test_idx])
    return np.array([_pearson_or_nan(XU[:, k], YV[:, k]) for k in range(ndim)], dtype=float)


def scca_cv_folds(
    X: np.ndarray,
    Y: np.ndarray,
    folds: FoldAssignment,
    lambda1: float = 0.0,
    lambda2: float = 0.0,
    ndim: int = 1,
    standx: Mode = "sd",
    standy: Mode = "sd",
    tol: float = DEFAULT_TOL,
    max_iter: int = DEFAULT_MAX_ITER,
) -> np.ndarray:
    """
    Single penalty pair evaluated over all folds.
    Returns held-out correlations, shape (n_folds, ndim), NaN = undefined.
    """
    X = _as_matrix(X, "X")
    Y = _as_matrix(Y, "Y")
    if folds.labels.shape[0] != X.shape[0]:
        raise InvalidArgumentError(
            f"fold assignment covers {folds.labels.shape[0]} samples, X has {X.shape[0]}")
    lambda1 = _check_penalty(lambda1, "lambda1")
    lambda2 = _check_penalty(lambda2, "lambda2")
    standx = _check_mode(standx)
    standy = _check_mode(standy)

    out = np.full((folds.n_folds, ndim), np.nan, dtype=float)
    for f in range(folds.n_folds):
        out[f] = _fold_cor(X, Y, folds.train_indices(f), folds.test_indices(f),
                           lambda1, lambda2, ndim, standx, standy, tol, max_iter)
    return out


# --------------------------------------------------------------------
# Grid search
# --------------------------------------------------------------------

@dataclass
class CVResult:
    """
    grid_means : (len(lambda1_grid), len(lambda2_grid)) mean held-out
        correlation of the first canonical pair; NaN where no fold is defined
    fold_cor : (..., n_folds) per-fold first-pair correlations
    dim_means : (..., ndim) mean held-out correlation per dimension
    n_defined : (...) number of defined folds per cell
    scores : long-format table (lambda1, lambda2, cor, se, n_defined)
    """
    grid_means: np.ndarray
    lambda1_grid: np.ndarray
    lambda2_grid: np.ndarray
    best_lambda1: Optional[float]
    best_lambda2: Optional[float]
    best_index: Optional[Tuple[int, int]]
    refit_result: Optional[SCCAResult]
    fold_cor: np.ndarray = field(repr=False)
    dim_means: np.ndarray = field(repr=False)
    n_defined: np.ndarray = field(repr=False)
    folds: FoldAssignment = field(repr=False)
    scores: pd.DataFrame = field(repr=False)

    def grid_frame(self) -> pd.DataFrame:
        """grid_means labelled by the penalty values (rows lambda1, columns lambda2)."""
        return pd.DataFrame(self.grid_means,
                            index=pd.Index(self.lambda1_grid, name="lambda1"),
                            columns=pd.Index(self.lambda2_grid, name="lambda2"))


def _check_grid(grid: Sequence[float], name: str) -> np.ndarray:
    arr = np.asarray(grid, dtype=float)
    if arr.ndim != 1 or arr.size == 0:
        raise InvalidArgumentError(f"{name} must be a non-empty 1-D sequence")
    for lam in arr:
        _check_penalty(lam, name)
    return arr


def _select_best(grid_means: np.ndarray, lam1: np.ndarray, lam2: np.ndarray) -> Optional[Tuple[int, int]]:
    # Maximum defined mean; ties go to the smallest lambda1, then lambda2.
    defined = ~np.isnan(grid_means)
    if not np.any(defined):
        return None
    best = np.max(grid_means[defined])
    ties = np.argwhere(defined & (grid_means == best))
    i, j = min(ties.tolist(), key=lambda ij: (lam1[ij[0]], lam2[ij[1]], ij[0], ij[1]))
    return int(i), int(j)


def _nan_mean_se(values: np.ndarray, axis: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    defined = ~np.isnan(values)
    count = np.sum(defined, axis=axis)
    total = np.sum(np.where(defined, values, 0.0), axis=axis)
    with np.errstate(invalid="ignore", divide="ignore"):
        mean = np.where(count > 0, total / np.maximum(count, 1), np.nan)
        dev = np.where(defined, values - np.expand_dims(mean, axis), 0.0)
        var = np.sum(dev * dev, axis=axis) / np.maximum(count - 1, 1)
        se = np.where(count > 1, np.sqrt(var) / np.sqrt(np.maximum(count, 1)), np.nan)
    return mean, se, count


def cross_validate_scca(
    X: np.ndarray,
    Y: np.ndarray,
    lambda1_grid: Optional[Sequence[float]] = None,
    lambda2_grid: Optional[Sequence[float]] = None,
    ndim: int = 1,
    nfolds: int = 5,
    standx: Mode = "sd",
    standy: Mode = "sd",
    tol: float = DEFAULT_TOL,
    max_iter: int = DEFAULT_MAX_ITER,
    seed: RandomState = None,
    refit: bool = True,
    n_jobs: Optional[int] = 1,
    verbose: bool = False,
) -> CVResult:
    """
    K-fold cross-validated selection of (lambda1, lambda2).

    Every (lambda1, lambda2, fold) triple is fitted on the training rows
    (standardized with training statistics only) and scored by the Pearson
    correlation of the first pair of held-out canonical variates. Infeasible
    penalties and degenerate held-out projections leave that fold undefined;
    a cell's score is the mean over its defined folds. The best cell has the
    largest mean, ties going to the smaller lambda1 then lambda2.

    Folds come from `partition_folds(n, nfolds, seed)`. Pass a seed for a
    reproducible search; `seed=None` draws fresh entropy on every call.

    Grids default to `penalty_grid(X, Y)`. With `refit=True` the selected
    pair is refitted on all samples. `n_jobs` > 1 (or -1) runs the triples on
    a thread pool; the result does not depend on it.

    Only malformed input (InvalidArgumentError) or a zero-variance column of
    the full data (DegenerateColumnError) aborts the search.
    """
    X = _as_matrix(X, "X")
    Y = _as_matrix(Y, "Y")
    n, p = X.shape
    q = Y.shape[1]
    if Y.shape[0] != n:
        raise InvalidArgumentError(f"X has {n} rows but Y has {Y.shape[0]}")
    if isinstance(ndim, bool) or int(ndim) != ndim or not 1 <= ndim <= min(p, q):
        raise InvalidArgumentError(f"ndim must be an integer in [1, {min(p, q)}], got {ndim}")
    ndim = int(ndim)
    standx = _check_mode(standx)
    standy = _check_mode(standy)
    tol, max_iter = _check_solver_args(tol, max_iter)

    folds = partition_folds(n, nfolds, seed)
    if n - int(np.max(folds.sizes)) < 2:
        raise InvalidArgumentError(
            f"{nfolds} folds leave fewer than 2 training samples out of {n}")

    # Zero-variance columns of the full data are the caller's problem, not a fold's.
    standardize(X, standx)
    standardize(Y, standy)

    if lambda1_grid is None or lambda2_grid is None:
        default1, default2 = penalty_grid(X, Y, standx=standx, standy=standy)
        lambda1_grid = default1 if lambda1_grid is None else lambda1_grid
        lambda2_grid = default2 if lambda2_grid is None else lambda2_grid
    lam1 = _check_grid(lambda1_grid, "lambda1_grid")
    lam2 = _check_grid(lambda2_grid, "lambda2_grid")

    splits: List[Tuple[np.ndarray, np.ndarray]] = [
        (folds.train_indices(f), folds.test_indices(f)) for f in range(folds.n_folds)]
    tasks = [(i, j, f) for i in range(lam1.size) for j in range(lam2.size)
             for f in range(folds.n_folds)]

    def _run(i: int, j: int, f: int) -> np.ndarray:
        train_idx, test_idx = splits[f]
        return _fold_cor(X, Y, train_idx, test_idx, lam1[i], lam2[j],
                         ndim, standx, standy, tol, max_iter)

    if verbose:
        print(f"{lam1.size} x {lam2.size} grid, {folds.n_folds} folds: {len(tasks)} fits")

    if n_jobs is not None and n_jobs == 1:
        results = []
        for i, j, f in tasks:
            if verbose and f == 0:
                print(f"lambda1={lam1[i]:.4g} lambda2={lam2[j]:.4g}")
            results.append(_run(i, j, f))
    else:
        results = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(_run)(i, j, f) for i, j, f in tasks
        )

    per_fold = np.full((lam1.size, lam2.size, folds.n_folds, ndim), np.nan, dtype=float)
    for (i, j, f), cor in zip(tasks, results):
        per_fold[i, j, f] = cor

    fold_cor = per_fold[:, :, :, 0]
    grid_means, grid_se, n_defined = _nan_mean_se(fold_cor, axis=2)
    dim_means, _, _ = _nan_mean_se(per_fold, axis=2)

    scores = pd.DataFrame({
        "lambda1": np.repeat(lam1, lam2.size),
        "lambda2": np.tile(lam2, lam1.size),
        "cor": grid_means.ravel(),
        "se": grid_se.ravel(),
        "n_defined": n_defined.ravel(),
    })

    best_index = _select_best(grid_means, lam1, lam2)
    best_lambda1: Optional[float] = None
    best_lambda2: Optional[float] = None
    refit_result: Optional[SCCAResult] = None

    if best_index is None:
        warnings.warn("no penalty pair gave a defined held-out correlation; "
                      "try smaller penalties", UserWarning)
    else:
        best_lambda1 = float(lam1[best_index[0]])
        best_lambda2 = float(lam2[best_index[1]])
        if verbose:
            print(f"\nselected lambda1: {best_lambda1} lambda2: {best_lambda2} "
                  f"(cor {grid_means[best_index]:.4f})")
        if refit:
            try:
                refit_result = fit_scca(X, Y, lambda1=best_lambda1, lambda2=best_lambda2,
                                        ndim=ndim, standx=standx, standy=standy,
                                        tol=tol, max_iter=max_iter, verbose=verbose)
            except InfeasiblePenaltyError as e:
                warnings.warn(f"refit on all samples failed: {e}", UserWarning)

    return CVResult(
        grid_means=grid_means,
        lambda1_grid=lam1,
        lambda2_grid=lam2,
        best_lambda1=best_lambda1,
        best_lambda2=best_lambda2,
        best_index=best_index,
        refit_result=refit_result,
        fold_cor=fold_cor,
        dim_means=dim_means,
        n_defined=n_defined,
        folds=folds,
        scores=scores,
    )
