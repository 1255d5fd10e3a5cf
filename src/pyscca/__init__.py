__all__ = [
    # Column standardization and soft-thresholding
    "standardize",
    "StandardizedMatrix",
    "soft_thresh",
    "threshold",
    # Sparse CCA by penalized power iteration with deflation
    "solve_pair",
    "deflate",
    "fit_scca",
    "scca_transform",
    "penalty_grid",
    "CanonicalPair",
    "SCCAResult",
    # Cross-validated penalty selection
    "partition_folds",
    "scca_cv_folds",
    "cross_validate_scca",
    "FoldAssignment",
    "CVResult",
    # Errors
    "SCCAError",
    "InvalidArgumentError",
    "DegenerateColumnError",
    "InfeasiblePenaltyError",
    "AllZeroError",
]

__version__ = "0.1.0"

from ._helper import (
    standardize,
    StandardizedMatrix,
    soft_thresh,
    threshold,
)

from .scca import (
    solve_pair,
    deflate,
    fit_scca,
    scca_transform,
    penalty_grid,
    CanonicalPair,
    SCCAResult,
)

from .scca_cv import (
    partition_folds,
    scca_cv_folds,
    cross_validate_scca,
    FoldAssignment,
    CVResult,
)

from .exceptions import (
    SCCAError,
    InvalidArgumentError,
    DegenerateColumnError,
    InfeasiblePenaltyError,
    AllZeroError,
)
