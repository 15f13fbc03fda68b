"""Tests of estimation and the structure of results."""

from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple

import numpy as np
import pytest

from pymnl import (
    Formulation, Optimization, Problem, data_to_dict, exceptions, options, read_pickle, reshape_observations
)
from pymnl.utilities.basics import Array
from .conftest import TOY_BETA, SimulatedFixture, ToyFixture


def test_toy_estimates(toy: ToyFixture) -> None:
    """Test that estimates reproduce the observed choice frequencies of the toy data, so product 1 has a positive
    intercept and price has a negative coefficient.
    """
    _, _, problem, results = toy
    assert results.beta_labels == problem.labels == ['brand_1', 'featured', 'price']
    assert results.beta.shape == (3, 1)
    np.testing.assert_allclose(results.beta.flatten(), TOY_BETA, rtol=0, atol=1e-3)
    assert results.beta[0, 0] > 0
    assert results.beta[2, 0] < 0
    assert results.converged


def test_toy_fit(toy: ToyFixture) -> None:
    """Test that goodness of fit statistics match their closed forms."""
    _, _, problem, results = toy
    log_likelihood = (
        3 * np.log(3 / 4) + np.log(1 / 4) + 4 * np.log(1 / 2) + 7 * np.log(7 / 8) + np.log(1 / 8)
    )
    null_log_likelihood = 16 * np.log(1 / 2)
    np.testing.assert_allclose(results.log_likelihood, log_likelihood, rtol=1e-6)
    np.testing.assert_allclose(results.objective, -log_likelihood, rtol=1e-6)
    np.testing.assert_allclose(results.null_log_likelihood, null_log_likelihood, rtol=1e-12)
    np.testing.assert_allclose(results.pseudo_r_squared, 1 - log_likelihood / null_log_likelihood, rtol=1e-6)
    np.testing.assert_allclose(results.aic, 2 * 3 - 2 * log_likelihood, rtol=1e-6)
    np.testing.assert_allclose(results.bic, 3 * np.log(16) - 2 * log_likelihood, rtol=1e-6)
    assert 0 < results.pseudo_r_squared < 1
    assert results.objective <= results.initial_objective
    np.testing.assert_allclose(results.initial_objective, problem.compute_objective([0.1, 0.1, 0.1]), rtol=1e-12)


def test_hessian(toy: ToyFixture) -> None:
    """Test that the finite difference Hessian is close to its analytic counterpart, and that standard errors are
    consistent with its inverse.
    """
    _, _, problem, results = toy
    observations = problem.observations
    probabilities, _ = observations.compute_probabilities(results.beta)
    groups = observations.groups
    centered = observations.X - groups.expand(groups.sum(probabilities * observations.X))
    hessian = (probabilities * centered).T @ centered
    np.testing.assert_allclose(results.hessian, hessian, rtol=1e-5, atol=1e-5)
    assert (results.hessian_eigenvalues > 0).all()
    np.testing.assert_allclose(results.parameter_covariances, np.linalg.inv(hessian), rtol=1e-4, atol=1e-6)
    np.testing.assert_allclose(results.beta_se.flatten(), np.sqrt(np.linalg.inv(hessian).diagonal()), rtol=1e-4)
    assert results.gradient_norm < 1e-3


def test_simulated_recovery(simulated: SimulatedFixture) -> None:
    """Test that estimates from simulated data are close to the coefficients that generated them."""
    simulation, problem, results = simulated
    assert (problem.N, problem.J, problem.K) == (5000, 4, 5)
    assert results.beta_labels == ['brand_1', 'brand_2', 'brand_3', 'featured', 'price']
    assert (results.beta_se > 0).all()
    np.testing.assert_array_less(np.abs(results.beta - simulation.beta), 5 * results.beta_se)
    assert results.objective <= results.initial_objective
    assert results.optimization_iterations > 0
    assert results.objective_evaluations >= results.optimization_iterations


def test_scaled_objective(toy: ToyFixture) -> None:
    """Test that scaling the objective does not change estimates or reported objective values."""
    _, _, problem, results = toy
    unscaled_results = problem.solve(optimization=Optimization('bfgs', {'gtol': 1e-7}), scale_objective=False)
    np.testing.assert_allclose(unscaled_results.beta, results.beta, rtol=0, atol=1e-3)
    np.testing.assert_allclose(unscaled_results.objective, results.objective, rtol=1e-6)


def test_custom_formulation(toy: ToyFixture) -> None:
    """Test that rescaling price in the formulation rescales its coefficient."""
    _, long_data, _, _ = toy
    problem = Problem(long_data, Formulation('0 + is_brand_1 + featured + I(price / 10)'))
    assert problem.labels == ['brand_1', 'featured', 'I(price / 10)']
    results = problem.solve(optimization=Optimization('bfgs', {'gtol': 1e-8}))
    np.testing.assert_allclose(results.beta.flatten(), TOY_BETA * [1, 1, 10], rtol=0, atol=1e-2)


def test_bounds(toy: ToyFixture) -> None:
    """Test that a binding bound on the price coefficient is respected by routines that support bounds."""
    _, _, problem, _ = toy
    results = problem.solve(
        beta_bounds=([-np.inf, -np.inf, -np.inf], [np.inf, np.inf, -1.5]), optimization=Optimization('l-bfgs-b')
    )
    np.testing.assert_allclose(results.beta[2], -1.5, atol=1e-8)
    with pytest.raises(ValueError):
        problem.solve(beta_bounds=([0, 0, 0], [-1, -1, -1]))
    with pytest.raises(exceptions.DimensionError):
        problem.solve(beta_bounds=([0, 0], None))


@pytest.mark.parametrize('method', [
    pytest.param('l-bfgs-b', id="L-BFGS-B"),
    pytest.param('newton-cg', id="Newton-CG"),
    pytest.param('trust-constr', id="trust-region")
])
def test_other_methods(toy: ToyFixture, method: str) -> None:
    """Test that other routines with analytic gradients find the same estimates."""
    _, _, problem, results = toy
    other_results = problem.solve(optimization=Optimization(method))
    np.testing.assert_allclose(other_results.beta, results.beta, rtol=0, atol=5e-3)


def test_return(toy: ToyFixture) -> None:
    """Test that the trivial routine evaluates results at the initial coefficients."""
    _, _, problem, _ = toy
    results = problem.solve(TOY_BETA, optimization=Optimization('return'))
    np.testing.assert_array_equal(results.beta.flatten(), TOY_BETA)
    assert results.objective == results.initial_objective
    assert results.optimization_iterations == 0


def test_non_convergence(toy: ToyFixture) -> None:
    """Test that exhausting the iteration budget raises an error that carries the last iterate."""
    _, _, problem, _ = toy
    with pytest.raises(exceptions.OptimizationError) as exception_info:
        problem.solve(optimization=Optimization('bfgs', {'maxiter': 1}))
    error = exception_info.value
    assert error.values.shape == (3, 1)
    assert np.isfinite(error.objective)
    assert error.iterations <= 1
    assert "did not converge" in str(error)


def test_non_finite_objective(toy: ToyFixture) -> None:
    """Test that an objective that is not finite immediately stops optimization with an error."""
    _, _, problem, _ = toy
    evaluations: List[float] = []

    def evaluate(initial: Array, _: Any, objective_function: Callable, *__: Any, **___: Any) -> Tuple[Array, bool]:
        """Evaluate the objective once at the initial values."""
        evaluations.append(objective_function(initial)[0])
        return initial, True

    old_floor = options.probability_floor
    try:
        options.probability_floor = 0
        with pytest.raises(exceptions.OptimizationError) as exception_info:
            problem.solve([0, 0, -5000], optimization=Optimization(evaluate))
    finally:
        options.probability_floor = old_floor
    assert not evaluations
    assert exception_info.value.objective == np.inf
    np.testing.assert_array_equal(exception_info.value.values.flatten(), [0, 0, -5000])


def test_invalid_configuration(toy: ToyFixture) -> None:
    """Test that invalid arguments raise errors."""
    _, long_data, problem, _ = toy
    with pytest.raises(TypeError):
        problem.solve(optimization='bfgs')
    with pytest.raises(exceptions.DimensionError):
        problem.solve([0.1, 0.1])
    with pytest.raises(TypeError):
        Problem(long_data, 'price')


def test_multiple_choices(toy: ToyFixture) -> None:
    """Test that long data in which a consumer chooses more than one product cannot be estimated."""
    _, long_data, _, _ = toy
    mapping = data_to_dict(long_data)
    mapping['chosen'][:2] = 1
    with pytest.raises(exceptions.SchemaError, match="^Observation data are malformed"):
        Problem(mapping)


def test_duplicate_products(toy: ToyFixture) -> None:
    """Test that long data in which a consumer faces the same product twice cannot be structured."""
    _, long_data, _, _ = toy
    mapping = data_to_dict(long_data)
    mapping['product_id'][1] = mapping['product_id'][0]
    with pytest.raises(exceptions.SchemaError, match="more than once"):
        Problem(mapping)


@pytest.mark.parametrize('beta', [
    pytest.param([0, 0, 0], id="zeros"),
    pytest.param([-2, 1, 3], id="wrong signs"),
    pytest.param([5, -5, -10], id="far")
])
def test_starting_values(toy: ToyFixture, beta: List[float]) -> None:
    """Test that the negative log-likelihood at the estimates does not exceed its value at the starting values, and
    that estimates do not depend on where optimization starts.
    """
    _, _, problem, results = toy
    new_results = problem.solve(beta, optimization=Optimization('bfgs', {'gtol': 1e-8}))
    np.testing.assert_allclose(new_results.initial_beta.flatten(), beta)
    np.testing.assert_allclose(new_results.initial_objective, problem.compute_objective(beta), rtol=1e-12)
    assert new_results.objective <= new_results.initial_objective
    np.testing.assert_allclose(new_results.beta, results.beta, rtol=0, atol=1e-3)
    assert new_results.converged


def test_immutable_results(toy: ToyFixture) -> None:
    """Test that results cannot be modified."""
    _, _, _, results = toy
    for array in [results.beta, results.beta_se, results.gradient, results.hessian, results.parameter_covariances]:
        assert not array.flags.writeable
    with pytest.raises(ValueError):
        results.beta[0, 0] = 0


def test_serialization(tmp_path: Path, toy: ToyFixture) -> None:
    """Test that results can be converted into a dictionary, pickled, and formatted."""
    _, _, problem, results = toy
    mapping = results.to_dict()
    assert {'beta', 'beta_se', 'beta_labels', 'objective', 'log_likelihood', 'pseudo_r_squared'} <= set(mapping)
    assert mapping['beta'] is results.beta
    path = tmp_path / 'results.pkl'
    results.to_pickle(path)
    loaded = read_pickle(path)
    np.testing.assert_array_equal(loaded.beta, results.beta)
    np.testing.assert_array_equal(loaded.compute_shares(), results.compute_shares())
    for formatted in [str(results), repr(results)]:
        assert "Beta Estimates" in formatted and "Goodness of Fit" in formatted and "brand_1" in formatted
    assert "Dimensions" in str(problem) and "price" in str(problem)


def test_status_output(toy_wide_data: Dict[str, Array]) -> None:
    """Test that status updates are output when verbosity is turned on."""
    messages: List[str] = []
    old_verbose = options.verbose
    old_verbose_output = options.verbose_output
    try:
        options.verbose = True
        options.verbose_output = lambda x: messages.append(str(x))
        Problem(reshape_observations(toy_wide_data)).solve()
    finally:
        options.verbose = old_verbose
        options.verbose_output = old_verbose_output
    combined = "\n".join(messages)
    expected = ["Initializing the problem", "Objective", "Evaluations", "Optimization completed", "Beta Estimates"]
    for text in expected:
        assert text in combined
