# exceptions.py
from __future__ import annotations

from typing import Optional


class SCCAError(Exception):
    """Base class for all pyscca errors."""


class InvalidArgumentError(SCCAError, ValueError):
    """Malformed shapes, counts, penalties or fold settings."""


class DegenerateColumnError(SCCAError, ValueError):
    """
    A column has zero variance and cannot be scaled to unit sd.
    `column` is the zero-based index of the offending column.
    """

    def __init__(self, column: int, message: Optional[str] = None):
        self.column = int(column)
        if message is None:
            message = f"column {self.column} has zero variance; cannot scale to unit sd"
        super().__init__(message)


class AllZeroError(SCCAError, ArithmeticError):
    """Soft-thresholding removed every entry of a vector."""


class InfeasiblePenaltyError(SCCAError, ArithmeticError):
    """
    A penalty sparsified a canonical vector to all zeros.

    side : "lambda1" (u, X side) or "lambda2" (v, Y side)
    penalty : the offending penalty value
    dimension : 1-based dimension being extracted, when known
    """

    def __init__(self, side: str, penalty: float, dimension: Optional[int] = None):
        self.side = side
        self.penalty = float(penalty)
        self.dimension = dimension
        super().__init__(self._message())

    def _message(self) -> str:
        where = f" at dimension {self.dimension}" if self.dimension is not None else ""
        return (f"{self.side}={self.penalty:.4g} thresholds every entry to zero{where}; "
                f"use a smaller penalty")

    def at_dimension(self, dimension: int) -> "InfeasiblePenaltyError":
        self.dimension = int(dimension)
        self.args = (self._message(),)
        return self
