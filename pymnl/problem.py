"""Maximum-likelihood estimation of the multinomial logit model."""

import time
from typing import Any, List, Mapping, Optional, Tuple

import numpy as np

from . import exceptions, options
from .configurations.formulation import Formulation
from .configurations.optimization import ObjectiveResults, Optimization
from .primitives import Observations
from .results.problem_results import ProblemResults
from .utilities.basics import (
    Array, Error, StringRepresentation, format_number, format_seconds, format_table, output
)


class Problem(StringRepresentation):
    r"""A multinomial logit problem.

    Each consumer :math:`i` chooses exactly one of the products in its choice set. The utility of product :math:`j` is
    linear in product characteristics, :math:`U_{ij} = x_{ij}'\beta + \varepsilon_{ij}`, and with type I extreme value
    errors, choice probabilities have the closed form

    .. math:: P_{ij} = \frac{\exp(x_{ij}'\beta)}{\sum_k \exp(x_{ik}'\beta)}.

    Coefficients are estimated by maximizing the log-likelihood :math:`\sum_{ij} y_{ij} \log P_{ij}`, which is done by
    minimizing its negative with :meth:`Problem.solve`.

    The design matrix and the index that groups rows by consumer are built once, when the problem is initialized.

    Parameters
    ----------
    long_data : `structured array-like`
        Long observations with one row for each consumer and product, typically built by
        :func:`reshape_observations`. The fields ``consumer_id``, ``product_id``, and ``chosen`` are required, along
        with any variables in ``formulation``.
    formulation : `Formulation, optional`
        :class:`Formulation` configuration for the design matrix. By default, the matrix consists of indicators for
        products :math:`1, \dots, J - 1`, the featured indicator, and price.

    Attributes
    ----------
    observations : `Observations`
        Structured long observations, which include the design matrix and the index of consumers.
    labels : `list of str`
        Coefficient labels, which are in the same order as columns of the design matrix.
    N : `int`
        Number of consumers.
    J : `int`
        Number of products.
    K : `int`
        Number of coefficients.

    """

    observations: Observations
    labels: List[str]
    N: int
    J: int
    K: int

    def __init__(self, long_data: Mapping, formulation: Optional[Formulation] = None) -> None:
        """Structure and validate data."""
        output("Initializing the problem ...")
        start_time = time.time()
        self.observations = Observations(long_data, formulation)
        self.labels = self.observations.labels
        self.N = self.observations.N
        self.J = self.observations.J
        self.K = self.observations.K

        # every consumer must have chosen exactly one product
        counts = self.observations.groups.sum(self.observations.chosen)
        if not np.all(counts == 1):
            bad_ids = self.observations.unique_consumer_ids[counts.flatten() != 1]
            raise exceptions.SchemaError(
                f"Choice indicators do not sum to one for consumers with IDs {list(bad_ids[:10])}."
            )

        output(f"Initialized the problem after {format_seconds(time.time() - start_time)}.")
        output("")
        output(self)

    def __str__(self) -> str:
        """Format problem information as a string."""
        dimensions = format_table([" N ", " J ", " K "], [self.N, self.J, self.K], title="Dimensions")
        formulation = format_table(
            ["Column Indices:"] + [f" {i} " for i in range(self.K)], ["X: Characteristics"] + self.labels,
            title="Formulations"
        )
        return "\n\n".join([dimensions, formulation])

    def compute_probabilities(self, beta: Any) -> Array:
        """Compute choice probabilities at the given coefficients.

        Parameters
        ----------
        beta : `array-like`
            Coefficients, which are in the same order as :attr:`Problem.labels`.

        Returns
        -------
        `ndarray`
            Choice probabilities with one row for each consumer in the same order as
            ``observations.unique_consumer_ids`` and one column for each product in the same order as
            ``observations.unique_product_ids``. Rows sum to one.

        """
        probabilities, errors = self.observations.compute_probabilities(beta)
        self._output_errors(errors)
        return self.observations.reshape_probabilities(probabilities)

    def compute_objective(self, beta: Any) -> float:
        """Compute the negative log-likelihood at the given coefficients.

        Parameters
        ----------
        beta : `array-like`
            Coefficients, which are in the same order as :attr:`Problem.labels`.

        Returns
        -------
        `float`
            The negative log-likelihood, computed with ``options.probability_floor`` added to probabilities.

        """
        objective, _, errors = self.observations.compute_objective(beta, compute_gradient=False)
        self._output_errors(errors)
        return objective

    def solve(
            self, beta: Optional[Any] = None, beta_bounds: Optional[Tuple[Any, Any]] = None,
            optimization: Optional[Optimization] = None, scale_objective: bool = True) -> ProblemResults:
        r"""Estimate coefficients by maximizing the log-likelihood.

        Parameters
        ----------
        beta : `array-like, optional`
            Starting values for the coefficients, which are in the same order as :attr:`Problem.labels`. By default,
            all coefficients start at ``0.1``.
        beta_bounds : `tuple, optional`
            Configuration for :math:`\beta` bounds of the form ``(lb, ub)``, in which both ``lb`` and ``ub`` are of the
            same size as ``beta``. Bounds are only used by optimization routines that support them. By default,
            coefficients are unbounded.
        optimization : `Optimization, optional`
            :class:`Optimization` configuration for how to solve the optimization problem. By default,
            ``Optimization('bfgs')`` is used, which is BFGS with analytic gradients and SciPy's default tolerances and
            iteration budget.
        scale_objective : `bool, optional`
            Whether to divide the negative log-likelihood and its gradient by :math:`N`, the number of consumers, before
            passing them to the optimization routine. By default, the objective is scaled by :math:`N`.

            In theory the scale of the objective does not matter, but in practice having similar objective values for
            different problem sizes is helpful because similar optimization tolerances can be used. Reported objective
            values are never scaled.

        Returns
        -------
        `ProblemResults`
            Immutable results of the solved problem.

        Raises
        ------
        DimensionError
            If the starting values or bounds do not have one element for each coefficient.
        OptimizationError
            If the optimization routine fails to converge within its iteration budget or if the negative log-likelihood
            evaluates to a non-finite value.

        """
        output("Solving the problem ...")
        start_time = time.time()

        # validate settings
        if optimization is None:
            optimization = Optimization('bfgs')
        elif not isinstance(optimization, Optimization):
            raise TypeError("optimization must be None or an Optimization instance.")
        initial = np.full((self.K, 1), 0.1, options.dtype) if beta is None else self.observations.coerce_beta(beta)
        bounds = self._coerce_optional_bounds(beta_bounds)
        output(optimization)
        output("")

        # evaluate the objective at the starting values
        initial_objective = self.compute_objective(initial)

        # define the objective function
        smallest_objective = np.inf

        def wrapper(values: Array, iterations: int, evaluations: int) -> ObjectiveResults:
            """Compute and output progress associated with a single objective evaluation."""
            nonlocal smallest_objective
            progress_start_time = time.time()
            objective, gradient, errors = self.observations.compute_objective(values, optimization._compute_gradient)
            if scale_objective:
                objective /= self.N
                gradient = None if gradient is None else gradient / self.N
            formatted = self._format_progress(
                values, objective, gradient, errors, iterations, evaluations, time.time() - progress_start_time,
                smallest_objective
            )
            output(formatted)
            smallest_objective = min(smallest_objective, objective)
            return objective, gradient

        # optimize the coefficients
        output("Starting optimization ...")
        output("")
        optimization_start_time = time.time()
        final, stats = optimization._optimize(initial, bounds, wrapper)
        optimization_time = time.time() - optimization_start_time
        output("")
        if not stats.converged:
            output(f"Optimization failed after {format_seconds(optimization_time)}.")
            objective = self.observations.compute_objective(final, compute_gradient=False)[0]
            raise exceptions.OptimizationError(
                "the optimization routine did not converge", final, objective, stats.iterations, stats.evaluations
            )
        output(f"Optimization completed after {format_seconds(optimization_time)}.")

        # structure the results
        output("Computing the Hessian and estimating standard errors ...")
        results = ProblemResults(self, final, initial, initial_objective, stats, start_time, optimization_time)
        output(f"Computed results after {format_seconds(results.total_time - results.optimization_time)}.")
        output("")
        output(results)
        return results

    def _coerce_optional_bounds(self, bounds: Optional[Tuple[Any, Any]]) -> Optional[List[Tuple[float, float]]]:
        """Validate the configuration of coefficient bounds and convert them into pairs for each coefficient."""
        if bounds is None:
            return None
        if len(bounds) != 2:
            raise ValueError("beta_bounds must be a tuple of the form (lb, ub).")
        lb = np.full(self.K, -np.inf, options.dtype) if bounds[0] is None else self.observations.coerce_beta(bounds[0])
        ub = np.full(self.K, +np.inf, options.dtype) if bounds[1] is None else self.observations.coerce_beta(bounds[1])
        if (lb.flatten() > ub.flatten()).any():
            raise ValueError("Lower bounds in beta_bounds must not exceed upper bounds.")
        return list(zip(lb.flatten(), ub.flatten()))

    @staticmethod
    def _output_errors(errors: List[Error]) -> None:
        """Output a warning about any numerical errors."""
        if errors:
            output("")
            output(exceptions.MultipleErrors(errors))
            output("")

    @staticmethod
    def _format_progress(
            values: Array, objective: float, gradient: Optional[Array], errors: List[Error], iterations: int,
            evaluations: int, progress_time: float, smallest_objective: float) -> str:
        """Format a display of optimization progress as a string. The first evaluation will include the progress table
        header. Errors are formatted as well.
        """
        lines: List[str] = []

        # include information about any errors
        if errors:
            preamble = (
                "At least one error was encountered. As long as the optimization routine does not get stuck at "
                "coefficients that give rise to errors, this is not necessarily a problem."
            )
            lines.extend(["", preamble, str(exceptions.MultipleErrors(errors)), ""])

        # construct the table
        header = [
            ("Computation", "Time"), ("Optimization", "Iterations"), ("Objective", "Evaluations"),
            ("Objective", "Value"), ("Objective", "Improvement")
        ]
        values_row = [format_seconds(progress_time), str(iterations), str(evaluations), format_number(objective)]
        improvement = smallest_objective - objective
        if np.isfinite(improvement) and improvement > 0:
            values_row.append(format_number(improvement))
        else:
            values_row.append(" " * len(format_number(improvement)))
        if gradient is not None:
            header.append(("Gradient", "Norm"))
            values_row.append(format_number(np.abs(gradient).max()))
        header.append(("", "Beta"))
        values_row.append(", ".join(format_number(x) for x in np.asarray(values).flatten()))

        # add a space and an extra header every 50 evaluations
        include_header = (evaluations - 1) % 50 == 0
        if include_header and evaluations > 1:
            lines.append("")

        lines.append(format_table(header, values_row, include_border=False, include_header=include_header))
        return "\n".join(lines)
