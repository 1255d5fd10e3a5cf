import numpy as np
import pytest

from pyscca import (
    partition_folds, scca_cv_folds, cross_validate_scca, fit_scca, scca_transform,
    FoldAssignment,
    InvalidArgumentError, DegenerateColumnError,
)
from pyscca.scca_cv import _select_best, _fold_cor


def small_data(n=60, p=8, q=6, seed=0):
    rng = np.random.default_rng(seed)
    X = rng.standard_normal((n, p))
    Y = rng.standard_normal((n, q))
    return X, Y


def signal_data(n=200, p=20, q=10, seed=0):
    rng = np.random.default_rng(seed)
    z = rng.standard_normal(n)
    X = rng.standard_normal((n, p))
    Y = rng.standard_normal((n, q))
    X[:, :3] = z[:, None] + 0.5 * rng.standard_normal((n, 3))
    Y[:, :2] = z[:, None] + 0.5 * rng.standard_normal((n, 2))
    return X, Y


@pytest.mark.parametrize("n,k", [(10, 2), (11, 3), (50, 7), (23, 23), (5, 5)])
def test_partition_folds_cover_and_balance(n, k):
    folds = partition_folds(n, k, rng_state=42)
    assert folds.labels.shape == (n,)
    assert set(folds.labels.tolist()) == set(range(k))
    seen = np.concatenate([folds.test_indices(f) for f in range(k)])
    assert sorted(seen.tolist()) == list(range(n))
    assert folds.sizes.max() - folds.sizes.min() <= 1
    for f in range(k):
        assert np.intersect1d(folds.train_indices(f), folds.test_indices(f)).size == 0


def test_partition_folds_leave_one_out_and_seed():
    folds = partition_folds(7, 7, rng_state=0)
    assert np.all(folds.sizes == 1)
    a = partition_folds(30, 4, rng_state=123)
    b = partition_folds(30, 4, rng_state=123)
    np.testing.assert_array_equal(a.labels, b.labels)


def test_partition_folds_invalid():
    with pytest.raises(InvalidArgumentError):
        partition_folds(10, 1)
    with pytest.raises(InvalidArgumentError):
        partition_folds(10, 11)


def test_select_best_tie_breaking():
    means = np.array([[0.5, 0.7], [0.7, np.nan]])
    assert _select_best(means, np.array([0.0, 0.1]), np.array([0.0, 0.1])) == (0, 1)
    # grid order does not matter, the smaller lambda1 wins
    means = np.array([[0.7], [0.7]])
    assert _select_best(means, np.array([0.3, 0.1]), np.array([0.0])) == (1, 0)
    means = np.array([[0.7, 0.7]])
    assert _select_best(means, np.array([0.0]), np.array([0.2, 0.1])) == (0, 1)
    assert _select_best(np.full((2, 2), np.nan), np.zeros(2), np.zeros(2)) is None


def test_cv_reproducible_and_thread_independent():
    X, Y = small_data(seed=1)
    kwargs = dict(lambda1_grid=[0.0, 0.05, 0.1], lambda2_grid=[0.0, 0.1], nfolds=3, seed=7)
    a = cross_validate_scca(X, Y, **kwargs)
    b = cross_validate_scca(X, Y, **kwargs)
    c = cross_validate_scca(X, Y, n_jobs=2, **kwargs)
    np.testing.assert_array_equal(a.grid_means, b.grid_means)
    np.testing.assert_array_equal(a.grid_means, c.grid_means)
    assert (a.best_lambda1, a.best_lambda2) == (b.best_lambda1, b.best_lambda2)
    assert (a.best_lambda1, a.best_lambda2) == (c.best_lambda1, c.best_lambda2)
    assert a.grid_means.shape == (3, 2)
    assert a.fold_cor.shape == (3, 2, 3)


def test_cv_infeasible_cells_are_excluded():
    X, Y = small_data(seed=2)
    cv = cross_validate_scca(X, Y, lambda1_grid=[0.0, 10.0], lambda2_grid=[0.0, 0.05],
                             nfolds=4, seed=0)
    assert np.all(np.isnan(cv.grid_means[1]))
    assert np.all(cv.n_defined[1] == 0)
    assert np.all(cv.n_defined[0] == 4)
    assert cv.best_lambda1 == 0.0
    assert cv.refit_result is not None
    assert cv.refit_result.lambda1 == 0.0


def test_cv_no_feasible_cell():
    X, Y = small_data(seed=3)
    with pytest.warns(UserWarning):
        cv = cross_validate_scca(X, Y, lambda1_grid=[10.0], lambda2_grid=[10.0],
                                 nfolds=3, seed=0)
    assert cv.best_lambda1 is None and cv.best_lambda2 is None
    assert cv.best_index is None
    assert cv.refit_result is None
    assert np.isnan(cv.grid_means[0, 0])


def test_cv_leave_one_out_folds_are_undefined():
    X, Y = small_data(n=10, p=3, q=2, seed=4)
    with pytest.warns(UserWarning):
        cv = cross_validate_scca(X, Y, lambda1_grid=[0.0], lambda2_grid=[0.0],
                                 nfolds=10, seed=0)
    assert np.all(cv.folds.sizes == 1)
    assert cv.n_defined[0, 0] == 0


def test_cv_fold_local_degenerate_column():
    X, Y = small_data(n=40, seed=5)
    X[:, 0] = 0.0
    X[0, 0] = 1.0
    cv = cross_validate_scca(X, Y, lambda1_grid=[0.0], lambda2_grid=[0.0], nfolds=4, seed=0)
    # only the fold holding sample 0 leaves a constant training column
    assert cv.n_defined[0, 0] == 3
    assert np.isnan(cv.fold_cor[0, 0, cv.folds.labels[0]])


def test_cv_setup_errors():
    X, Y = small_data(seed=6)
    with pytest.raises(InvalidArgumentError):
        cross_validate_scca(X, Y, lambda1_grid=[0.0], lambda2_grid=[0.0], nfolds=1)
    with pytest.raises(InvalidArgumentError):
        cross_validate_scca(X, Y, lambda1_grid=[-0.1], lambda2_grid=[0.0])
    with pytest.raises(InvalidArgumentError):
        cross_validate_scca(X, Y, lambda1_grid=[], lambda2_grid=[0.0])
    with pytest.raises(InvalidArgumentError):
        cross_validate_scca(X, Y[:-1], lambda1_grid=[0.0], lambda2_grid=[0.0])
    X[:, 2] = 1.0
    with pytest.raises(DegenerateColumnError):
        cross_validate_scca(X, Y, lambda1_grid=[0.0], lambda2_grid=[0.0])


def test_cv_scores_and_default_grid():
    X, Y = small_data(seed=7)
    cv = cross_validate_scca(X, Y, nfolds=3, seed=1, ndim=2, refit=False)
    assert cv.lambda1_grid.shape == (10,) and cv.lambda2_grid.shape == (10,)
    assert cv.lambda1_grid[0] == 0.0
    assert cv.refit_result is None
    assert list(cv.scores.columns) == ["lambda1", "lambda2", "cor", "se", "n_defined"]
    assert len(cv.scores) == 100
    assert cv.dim_means.shape == (10, 10, 2)
    frame = cv.grid_frame()
    assert frame.shape == (10, 10)
    assert frame.index.name == "lambda1" and frame.columns.name == "lambda2"


def test_scca_cv_folds_shape():
    X, Y = small_data(seed=8)
    folds = partition_folds(X.shape[0], 3, rng_state=0)
    out = scca_cv_folds(X, Y, folds, lambda1=0.05, lambda2=0.05, ndim=2)
    assert out.shape == (3, 2)
    assert np.all(np.abs(out[~np.isnan(out)]) <= 1.0)


def test_cv_selects_sparse_signal():
    X, Y = signal_data()
    grid = [0.0, 0.1, 0.2, 0.3]
    cv = cross_validate_scca(X, Y, lambda1_grid=grid, lambda2_grid=grid, nfolds=5, seed=0)
    assert cv.best_lambda1 in grid and cv.best_lambda2 in grid
    u = cv.refit_result.U[:, 0]
    assert np.sum(u[:3] ** 2) > 0.9
    assert np.max(np.abs(u[3:])) < 0.25
    assert cv.grid_means[cv.best_index] > 0.5


def test_partition_folds_generator_reused():
    rng = np.random.default_rng(11)
    a = partition_folds(20, 4, rng_state=rng)
    b = partition_folds(20, 4, rng_state=rng)
    np.testing.assert_array_equal(a.labels, b.labels)
    np.testing.assert_array_equal(a.labels, partition_folds(20, 4, rng_state=11).labels)


def test_heldout_rows_use_training_statistics():
    X, Y = small_data(n=50, seed=9)
    X = 3.0 * X + 2.0
    tr, te = np.arange(35), np.arange(35, 50)
    fit = fit_scca(X[tr], Y[tr], lambda1=0.0, lambda2=0.0)
    XU, YV = scca_transform(fit, X[te], Y[te])
    Xte = (X[te] - X[tr].mean(axis=0)) / X[tr].std(axis=0, ddof=1)
    Yte = (Y[te] - Y[tr].mean(axis=0)) / Y[tr].std(axis=0, ddof=1)
    np.testing.assert_allclose(XU, Xte @ fit.U)
    np.testing.assert_allclose(YV, Yte @ fit.V)
    # statistics re-estimated on the held-out rows would give other variates
    Xte_own = (X[te] - X[te].mean(axis=0)) / X[te].std(axis=0, ddof=1)
    assert not np.allclose(XU, Xte_own @ fit.U)


def test_constant_heldout_projection_is_undefined():
    # X column 0 carries the shared signal on rows 0-99 and is zero on rows 100-119
    rng = np.random.default_rng(12)
    n = 120
    z = rng.standard_normal(n)
    X = rng.standard_normal((n, 5))
    Y = rng.standard_normal((n, 3))
    X[:, 0] = z
    X[100:, 0] = 0.0
    Y[:, 0] = z + 0.3 * rng.standard_normal(n)
    tr, te = np.arange(100), np.arange(100, 120)

    fit = fit_scca(X[tr], Y[tr], lambda1=0.6, lambda2=0.6)
    assert fit.U[0, 0] != 0.0 and np.all(fit.U[1:, 0] == 0.0)
    out = _fold_cor(X, Y, tr, te, 0.6, 0.6, 1, "sd", "sd", 1e-6, 1000)
    assert np.isnan(out[0])

    # held-out rows 100-119 form fold 0; rows 0-99 are split over folds 1-5
    labels = np.concatenate([np.repeat(np.arange(1, 6), 20), np.zeros(20, dtype=int)])
    folds = FoldAssignment(labels=labels, n_folds=6)
    cors = scca_cv_folds(X, Y, folds, lambda1=0.6, lambda2=0.6)
    assert np.isnan(cors[0, 0])
    assert np.sum(~np.isnan(cors[:, 0])) == 5
