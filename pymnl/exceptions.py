"""Exceptions raised while structuring data, evaluating the likelihood, and estimating coefficients."""

import collections
from typing import Any, List, Optional, Sequence

import numpy as np

from .utilities.basics import Array, Error, NumericalError, format_number


class MultipleErrors(Error):
    """Multiple errors that occurred around the same time."""

    _errors: List[Error]

    def __new__(cls, errors: Sequence[Error]) -> Any:
        """Defer to the class of a singular error."""
        if len(errors) == 1:
            return next(iter(errors))
        return super().__new__(cls)

    def __init__(self, errors: Sequence[Error]) -> None:
        """Store distinct errors."""
        super().__init__()
        self._errors = list(collections.OrderedDict.fromkeys(errors))

    def __str__(self) -> str:
        """Combine all the error messages."""
        return "\n".join(str(e) for e in self._errors)


class SchemaError(Error):
    r"""Observation data are malformed.

    In wide data, every consumer must have an ID and, for each product :math:`j = 1, \dots, J`, a choice indicator, a
    featured indicator, and a price. In long data, each pair of consumer and product IDs must appear at most once.
    Either way, choice indicators must sum to exactly one for each consumer.

    """

    _detail: str

    def __init__(self, detail: str) -> None:
        """Store a description of what is malformed."""
        super().__init__()
        self._detail = detail

    def __str__(self) -> str:
        """Supplement the error with the description."""
        return f"{super().__str__()} {self._detail}"


class DimensionError(Error):
    r"""The number of coefficients does not match the number of columns in the design matrix.

    Coefficients should be ordered in the same way as the design matrix: brand intercepts for products
    :math:`1, \dots, J - 1` followed by the featured and price coefficients.

    """

    _expected: int
    _actual: int

    def __init__(self, expected: int, actual: int) -> None:
        """Store the expected and actual sizes."""
        super().__init__()
        self._expected = expected
        self._actual = actual

    def __str__(self) -> str:
        """Supplement the error with the sizes."""
        return f"{super().__str__()} Expected {self._expected} coefficients but got {self._actual}."


class OptimizationError(Error):
    """Failed to maximize the log-likelihood.

    Either the optimization routine exhausted its iteration budget or stopped without satisfying its convergence
    criteria, or the negative log-likelihood evaluated to a non-finite value. This problem can sometimes be mitigated
    by choosing more reasonable initial coefficients, increasing the iteration budget, rescaling prices, or using a
    different optimization configuration.

    """

    values: Array
    objective: float
    iterations: int
    evaluations: int
    _reason: str

    def __init__(
            self, reason: str, values: Array, objective: float, iterations: int = 0, evaluations: int = 0) -> None:
        """Store the last iterate and objective value for diagnostics."""
        super().__init__()
        self._reason = reason
        self.values = np.array(values, copy=True)
        self.objective = objective
        self.iterations = iterations
        self.evaluations = evaluations

    def __str__(self) -> str:
        """Supplement the error with diagnostics."""
        formatted = ", ".join(format_number(v).strip() for v in np.asarray(self.values).flatten())
        return (
            f"{super().__str__()} Reason: {self._reason}. Last coefficients: [{formatted}]. Last objective: "
            f"{format_number(self.objective).strip()}. Iterations: {self.iterations}. Evaluations: {self.evaluations}."
        )


class ProbabilitiesNumericalError(NumericalError):
    """Encountered a numerical error when computing choice probabilities.

    This problem is often due to non-finite coefficients or overflow in utilities, and can sometimes be mitigated by
    choosing smaller initial coefficients, rescaling data, or removing outliers.

    """


class HessianNumericalError(NumericalError):
    """Encountered a numerical error when approximating the Hessian of the negative log-likelihood."""


class HessianInversionError(Error):
    """Failed to invert the Hessian of the negative log-likelihood when computing standard errors.

    This problem is often due to a characteristic that does not vary across products within consumers, which leaves
    its coefficient unidentified.

    """

    _replacement: Optional[str]

    def __init__(self, replacement: Optional[str]) -> None:
        """Store the replacement description."""
        super().__init__()
        self._replacement = replacement

    def __str__(self) -> str:
        """Supplement the error with the description."""
        return f"{super().__str__()} The inverse was replaced with {self._replacement}."
