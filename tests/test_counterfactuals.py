"""Tests of counterfactual market shares and price elasticities."""

from typing import Dict

import numpy as np
import pytest

from pymnl import (
    Formulation, compute_market_shares, compute_price_elasticities, reshape_observations, simulate_price_change
)
from pymnl.utilities.basics import Array
from .conftest import SimulatedFixture, ToyFixture


def test_shares_sum_to_one(simulated: SimulatedFixture) -> None:
    """Test that market shares are a probability distribution over products."""
    simulation, _, results = simulated
    shares = results.compute_shares()
    assert shares.shape == (4,)
    assert (shares > 0).all()
    np.testing.assert_allclose(shares.sum(), 1, rtol=0, atol=1e-10)
    np.testing.assert_allclose(shares, compute_market_shares(simulation.long_data, results.beta), rtol=1e-12)


@pytest.mark.parametrize('product_id', [1, 2, 3, 4])
@pytest.mark.parametrize('delta', [0.1, 1.0])
def test_price_increase(simulated: SimulatedFixture, product_id: int, delta: float) -> None:
    """Test that with a negative price coefficient, raising a product's price lowers its share and raises the shares of
    all other products.
    """
    _, problem, results = simulated
    assert results.beta[-1, 0] < 0
    baseline = results.compute_shares()
    counterfactual = results.simulate_price_change(product_id, delta)
    index = list(problem.observations.unique_product_ids).index(product_id)
    assert counterfactual[index] < baseline[index]
    assert (np.delete(counterfactual, index) > np.delete(baseline, index)).all()
    np.testing.assert_allclose(counterfactual.sum(), 1, rtol=0, atol=1e-10)


def test_price_change_does_not_modify_data(toy_wide_data: Dict[str, Array]) -> None:
    """Test that long data are never modified by a counterfactual, and that a zero change reproduces baseline shares."""
    long_data = reshape_observations(toy_wide_data)
    copied = long_data.copy()
    beta = [0.5, 0.8, -1.1]
    baseline = compute_market_shares(long_data, beta)
    counterfactual = simulate_price_change(long_data, 1, 0.5, beta)
    for key in copied.dtype.names:
        np.testing.assert_array_equal(long_data[key], copied[key], err_msg=key)
    assert counterfactual[0] < baseline[0]
    np.testing.assert_allclose(simulate_price_change(long_data, 1, 0, beta), baseline, rtol=1e-12)
    assert simulate_price_change(long_data, 2, -0.25, beta)[1] > baseline[1]


def test_negative_prices(toy_wide_data: Dict[str, Array]) -> None:
    """Test that price changes are not bounded, so prices can become negative."""
    long_data = reshape_observations(toy_wide_data)
    beta = [0.5, 0.8, -1.1]
    shares = simulate_price_change(long_data, 2, -10, beta)
    assert np.isfinite(shares).all()
    assert shares[1] > 0.99


def test_functional_interface(simulated: SimulatedFixture) -> None:
    """Test that results methods agree with functions of long data."""
    simulation, problem, results = simulated
    expected = simulate_price_change(simulation.long_data, 2, -0.2, results.beta)
    np.testing.assert_allclose(results.simulate_price_change(2, -0.2), expected, rtol=1e-12)
    np.testing.assert_allclose(
        simulate_price_change(problem.observations, 2, -0.2, results.beta), expected, rtol=1e-12
    )
    observed_prices = problem.observations.data['price']
    np.testing.assert_allclose(results.compute_shares(observed_prices), results.compute_shares(), rtol=1e-12)
    with pytest.raises(ValueError):
        results.compute_shares(observed_prices[1:])
    with pytest.raises(ValueError):
        results.simulate_price_change(5, 0.1)
    with pytest.raises(ValueError):
        compute_market_shares(problem.observations, results.beta, Formulation('0 + price'))


def test_elasticities(simulated: SimulatedFixture) -> None:
    """Test that elasticities match the closed form of the multinomial logit model."""
    _, problem, results = simulated
    observations = problem.observations
    elasticities = results.compute_elasticities()
    assert elasticities.shape == (4, 4)
    assert (np.diag(elasticities) < 0).all()
    assert (elasticities[~np.eye(4, dtype=bool)] > 0).all()

    # compare with the closed form
    alpha = results.beta[-1, 0]
    probabilities = results.compute_probabilities()
    prices = observations.reshape_probabilities(observations.data['price'])
    own = (alpha * prices * (1 - probabilities)).mean(axis=0)
    cross = -(alpha * prices * probabilities).mean(axis=0)
    np.testing.assert_allclose(np.diag(elasticities), own, rtol=1e-5)
    for j in range(4):
        for k in range(4):
            if j != k:
                np.testing.assert_allclose(elasticities[j, k], cross[k], rtol=1e-5)


def test_elasticities_with_rescaled_prices(toy: ToyFixture) -> None:
    """Test that elasticities do not depend on how price enters the formulation if utilities are unchanged."""
    _, long_data, _, results = toy
    beta = results.beta.flatten()
    rescaled = compute_price_elasticities(
        long_data, beta * [1, 1, 10], Formulation('0 + is_brand_1 + featured + I(price / 10)')
    )
    np.testing.assert_allclose(rescaled, results.compute_elasticities(), rtol=1e-5)
