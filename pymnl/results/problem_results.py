"""Structuring of multinomial logit problem results."""

from pathlib import Path
import pickle
import time
from typing import Any, List, Optional, Sequence, TYPE_CHECKING, Tuple, Union

import numpy as np

from .. import exceptions, options
from ..counterfactuals import compute_price_elasticities, compute_probability_matrix, shift_prices
from ..utilities.algebra import approximately_invert, compute_condition_number, precisely_identify_singularity
from ..utilities.basics import (
    Array, Error, NumericalErrorHandler, SolverStats, StringRepresentation, compute_finite_differences, format_number,
    format_se, format_seconds, format_table, freeze, output, warn
)


# only import objects that create import cycles when checking types
if TYPE_CHECKING:
    from ..problem import Problem  # noqa


class ProblemResults(StringRepresentation):
    r"""Results of a solved multinomial logit problem.

    Results are immutable: array attributes are read-only. Counterfactual methods never modify the underlying data.

    Standard errors are the square roots of the diagonal of the inverted Hessian of the negative log-likelihood, which
    is approximated with central finite differences of its analytic gradient.

    Attributes
    ----------
    problem : `Problem`
        :class:`Problem` that created these results.
    beta : `ndarray`
        Estimated coefficients, :math:`\hat{\beta}`.
    beta_se : `ndarray`
        Estimated standard errors for :math:`\hat{\beta}`.
    beta_labels : `list of str`
        Labels for the coefficients, which are in the same order as :attr:`ProblemResults.beta`.
    initial_beta : `ndarray`
        Coefficients from which optimization started.
    objective : `float`
        Negative log-likelihood at :math:`\hat{\beta}`.
    initial_objective : `float`
        Negative log-likelihood at the initial coefficients.
    log_likelihood : `float`
        Log-likelihood at :math:`\hat{\beta}`.
    null_log_likelihood : `float`
        Log-likelihood at :math:`\beta = 0`, at which each consumer chooses among its products with equal probabilities.
    pseudo_r_squared : `float`
        McFadden's pseudo :math:`R^2`, :math:`1 - \mathcal{L}(\hat{\beta}) / \mathcal{L}(0)`.
    aic : `float`
        Akaike information criterion, :math:`2K - 2\mathcal{L}(\hat{\beta})`.
    bic : `float`
        Bayesian information criterion, :math:`K \log N - 2\mathcal{L}(\hat{\beta})`.
    gradient : `ndarray`
        Gradient of the negative log-likelihood with respect to :math:`\beta` at :math:`\hat{\beta}`.
    gradient_norm : `float`
        Infinity norm of :attr:`ProblemResults.gradient`.
    hessian : `ndarray`
        Estimated Hessian of the negative log-likelihood at :math:`\hat{\beta}`.
    hessian_eigenvalues : `ndarray`
        Eigenvalues of :attr:`ProblemResults.hessian`, which are all positive at a strict local optimum.
    parameter_covariances : `ndarray`
        Estimated covariance matrix of :math:`\hat{\beta}`, which is the inverse of the Hessian.
    converged : `bool`
        Whether the optimization routine converged. Since :meth:`Problem.solve` raises an :class:`OptimizationError`
        instead of returning results when the routine does not converge, this is always ``True`` for results returned
        by :meth:`Problem.solve`.
    optimization_iterations : `int`
        Number of major iterations completed by the optimization routine.
    objective_evaluations : `int`
        Number of times the objective was evaluated.
    optimization_time : `float`
        Number of seconds it took the optimization routine to finish.
    total_time : `float`
        Sum of :attr:`ProblemResults.optimization_time` and the number of seconds it took to set up the problem and
        compute results after optimization had finished.
    N : `int`
        Number of consumers.
    J : `int`
        Number of products.
    K : `int`
        Number of coefficients.

    Examples
    --------
    .. code-block:: python

       results = pymnl.Problem(long_data).solve()
       shares = results.compute_shares()
       counterfactual_shares = results.simulate_price_change(1, 0.1)

    """

    problem: 'Problem'
    beta: Array
    beta_se: Array
    beta_labels: List[str]
    initial_beta: Array
    objective: float
    initial_objective: float
    log_likelihood: float
    null_log_likelihood: float
    pseudo_r_squared: float
    aic: float
    bic: float
    gradient: Array
    gradient_norm: float
    hessian: Array
    hessian_eigenvalues: Array
    parameter_covariances: Array
    converged: bool
    optimization_iterations: int
    objective_evaluations: int
    optimization_time: float
    total_time: float
    N: int
    J: int
    K: int
    _errors: List[Error]

    def __init__(
            self, problem: 'Problem', beta: Array, initial_beta: Array, initial_objective: float,
            optimization_stats: SolverStats, start_time: float, optimization_time: float) -> None:
        """Compute the Hessian, estimate standard errors, and compute goodness of fit statistics."""
        self.problem = problem
        self.beta = beta
        self.beta_labels = problem.labels
        self.initial_beta = initial_beta
        self.initial_objective = initial_objective
        self.N = problem.N
        self.J = problem.J
        self.K = problem.K
        self._errors = []

        # compute the objective and its gradient at the optimum
        observations = problem.observations
        self.objective, gradient, errors = observations.compute_objective(beta)
        self._errors.extend(errors)
        self.gradient = np.c_[gradient]
        self.gradient_norm = np.abs(self.gradient).max()

        # approximate the Hessian and compute its eigenvalues
        self.hessian, errors = self._compute_hessian()
        self._errors.extend(errors)
        self.hessian_eigenvalues = np.full(self.K, np.nan, options.dtype)
        if np.isfinite(self.hessian).all():
            self.hessian_eigenvalues = np.linalg.eigvalsh(self.hessian)
            singular, successful, condition = precisely_identify_singularity(self.hessian)
            if singular or not successful:
                warn(f"The Hessian is nearly singular with condition number {format_number(condition).strip()}.")

        # estimate parameter covariances and standard errors
        with np.errstate(all='ignore'):
            self.parameter_covariances, replacement = approximately_invert(self.hessian)
            if replacement is not None:
                self._errors.append(exceptions.HessianInversionError(replacement))
            self.beta_se = np.sqrt(np.c_[self.parameter_covariances.diagonal()])

        # compute goodness of fit statistics
        self.log_likelihood = -self.objective
        self.null_log_likelihood = -float(np.log(observations.groups.counts).sum())
        self.pseudo_r_squared = 1 - self.log_likelihood / self.null_log_likelihood
        self.aic = 2 * self.K - 2 * self.log_likelihood
        self.bic = self.K * np.log(self.N) - 2 * self.log_likelihood

        # store optimization statistics and times
        self.converged = optimization_stats.converged
        self.optimization_iterations = optimization_stats.iterations
        self.objective_evaluations = optimization_stats.evaluations
        self.optimization_time = optimization_time
        self.total_time = time.time() - start_time

        # make arrays immutable
        for array in [self.beta, self.beta_se, self.initial_beta, self.gradient, self.hessian, self.hessian_eigenvalues,
                      self.parameter_covariances]:
            freeze(array)

        # output any errors
        if self._errors:
            output("")
            output(exceptions.MultipleErrors(self._errors))
            output("")

    @NumericalErrorHandler(exceptions.HessianNumericalError)
    def _compute_hessian(self) -> Tuple[Array, List[Error]]:
        """Approximate the Hessian with central finite differences of the analytic gradient, which are symmetrized."""
        errors: List[Error] = []
        observations = self.problem.observations
        hessian = compute_finite_differences(lambda x: np.c_[observations._compute_objective(x)[1]], self.beta)
        return (hessian + hessian.T) / 2, errors

    def __str__(self) -> str:
        """Format problem results as a string."""
        sections = [
            self._format_summary(), self._format_fit(), self._format_statistics(),
            format_table(
                self.beta_labels, [format_number(x) for x in self.beta.flatten()],
                [format_se(x) for x in self.beta_se.flatten()],
                title="Beta Estimates (Standard Errors in Parentheses)"
            )
        ]
        return "\n\n".join(sections)

    def _format_summary(self) -> str:
        """Format a summary table of problem results."""
        header = [("Objective", "Value"), ("Gradient", "Norm")]
        values = [format_number(self.objective), format_number(self.gradient_norm)]

        # add information about second order conditions
        if np.isfinite(self.hessian_eigenvalues).any():
            if self.hessian_eigenvalues.size == 1:
                header.append(("", "Hessian"))
                values.append(format_number(self.hessian_eigenvalues[0]))
            else:
                header.extend([("Hessian", "Min Eigenvalue"), ("Hessian", "Max Eigenvalue")])
                values.extend([
                    format_number(self.hessian_eigenvalues.min()),
                    format_number(self.hessian_eigenvalues.max())
                ])

        # add information about the covariance matrix
        if np.isfinite(self.parameter_covariances).any() and self.parameter_covariances.size > 1:
            header.append(("Covariance Matrix", "Condition Number"))
            values.append(format_number(compute_condition_number(self.parameter_covariances)))

        return format_table(header, values, title="Problem Results Summary")

    def _format_fit(self) -> str:
        """Format a table of goodness of fit statistics."""
        header = [
            ("Log", "Likelihood"), ("Null Log", "Likelihood"), ("Pseudo", "R-Squared"), ("", "AIC"), ("", "BIC")
        ]
        values = [
            format_number(self.log_likelihood), format_number(self.null_log_likelihood),
            format_number(self.pseudo_r_squared), format_number(self.aic), format_number(self.bic)
        ]
        return format_table(header, values, title="Goodness of Fit")

    def _format_statistics(self) -> str:
        """Format a table of optimization statistics."""
        header = [
            ("Computation", "Time"), ("Optimizer", "Converged"), ("Optimization", "Iterations"),
            ("Objective", "Evaluations")
        ]
        values = [
            format_seconds(self.total_time), "Yes" if self.converged else "No", str(self.optimization_iterations),
            str(self.objective_evaluations)
        ]
        return format_table(header, values, title="Cumulative Statistics")

    def to_pickle(self, path: Union[str, Path]) -> None:
        """Save these results as a pickle file.

        Parameters
        ----------
        path: `str or Path`
            File path to which these results will be saved.

        """
        with open(path, 'wb') as handle:
            pickle.dump(self, handle)

    def to_dict(
            self, attributes: Sequence[str] = (
                'N', 'J', 'K', 'beta', 'beta_se', 'beta_labels', 'initial_beta', 'objective', 'initial_objective',
                'log_likelihood', 'null_log_likelihood', 'pseudo_r_squared', 'aic', 'bic', 'gradient', 'gradient_norm',
                'hessian', 'hessian_eigenvalues', 'parameter_covariances', 'converged', 'optimization_iterations',
                'objective_evaluations', 'optimization_time', 'total_time'
            )) -> dict:
        """Convert these results into a dictionary that maps attribute names to values.

        Parameters
        ----------
        attributes : `sequence of str, optional`
            Name of attributes that will be added to the dictionary. By default, all :class:`ProblemResults` attributes
            are added except for :attr:`ProblemResults.problem`.

        Returns
        -------
        `dict`
            Mapping from attribute names to values.

        """
        return {k: getattr(self, k) for k in attributes}

    def compute_probabilities(self, prices: Optional[Any] = None) -> Array:
        """Compute choice probabilities at the estimated coefficients.

        Parameters
        ----------
        prices : `array-like, optional`
            Prices with one element for each row of the long observations, which replace the observed prices. By
            default, observed prices are used.

        Returns
        -------
        `ndarray`
            Choice probabilities with one row for each consumer, sorted by consumer ID, and one column for each product,
            sorted by product ID.

        """
        X = None if prices is None else self.problem.observations.build_X({'price': self._coerce_prices(prices)})
        return compute_probability_matrix(self.problem.observations, self.beta, X)

    def compute_shares(self, prices: Optional[Any] = None) -> Array:
        """Compute market shares at the estimated coefficients.

        Parameters
        ----------
        prices : `array-like, optional`
            Prices with one element for each row of the long observations, which replace the observed prices. By
            default, observed prices are used.

        Returns
        -------
        `ndarray`
            Market shares of each product, sorted by product ID, which sum to one.

        """
        return self.compute_probabilities(prices).mean(axis=0)

    def simulate_price_change(self, product_id: Any, delta: float) -> Array:
        """Compute market shares at the estimated coefficients after adding an amount to the price of a product.

        Parameters
        ----------
        product_id : `object`
            ID of the product whose price will be changed.
        delta : `float`
            Amount added to the price of the product, which can be negative.

        Returns
        -------
        `ndarray`
            Counterfactual market shares of each product, sorted by product ID.

        """
        return self.compute_shares(shift_prices(self.problem.observations, product_id, delta))

    def compute_elasticities(self) -> Array:
        """Compute price elasticities of choice probabilities at the estimated coefficients, averaged across consumers.

        Returns
        -------
        `ndarray`
            Square matrix of elasticities. Rows correspond to products whose probabilities change and columns correspond
            to products whose prices change, both sorted by product ID.

        """
        return compute_price_elasticities(self.problem.observations, self.beta)

    def _coerce_prices(self, prices: Any) -> Array:
        """Coerce array-like prices into a vector and validate its size."""
        prices = np.asarray(prices, options.dtype).flatten()
        rows = self.problem.observations.product_ids.size
        if prices.size != rows:
            raise ValueError(f"prices must be None or a {rows}-vector.")
        return prices
