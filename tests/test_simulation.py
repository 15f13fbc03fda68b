"""Tests of simulation of synthetic data."""

import numpy as np
import pytest

from pymnl import Simulation, exceptions
from .conftest import SimulatedFixture


def test_simulated_data(simulated: SimulatedFixture) -> None:
    """Test that simulated data are well-formed and that choice frequencies are close to model shares."""
    simulation, _, _ = simulated
    wide_data = simulation.wide_data
    choices = np.c_[[wide_data[f'choice_{j}'] for j in range(1, 5)]].T
    assert choices.shape == (5000, 4)
    np.testing.assert_array_equal(choices.sum(axis=1), 1)
    prices = np.c_[[wide_data[f'price_{j}'] for j in range(1, 5)]].T
    assert (prices >= 0.5).all() and (prices <= 1.5).all()
    featured = np.c_[[wide_data[f'featured_{j}'] for j in range(1, 5)]].T
    np.testing.assert_allclose(featured.mean(), 0.2, atol=0.02)
    assert simulation.long_data.shape[0] == 5000 * 4
    assert "Simulated Beta" in str(simulation)


def test_seed() -> None:
    """Test that seeds make simulations reproducible."""
    simulation1 = Simulation(J=3, N=50, beta=[0.5, -0.5, 1, -1], seed=1)
    simulation2 = Simulation(J=3, N=50, beta=[0.5, -0.5, 1, -1], seed=1)
    simulation3 = Simulation(J=3, N=50, beta=[0.5, -0.5, 1, -1], seed=2)
    for key, value in simulation1.wide_data.items():
        np.testing.assert_array_equal(value, simulation2.wide_data[key], err_msg=key)
    assert not np.array_equal(simulation1.wide_data['price_1'], simulation3.wide_data['price_1'])


def test_dominant_product() -> None:
    """Test that a product with a very large intercept is always chosen."""
    simulation = Simulation(J=2, N=100, beta=[100, 0, -1], seed=0)
    np.testing.assert_array_equal(simulation.wide_data['choice_1'], 1)


@pytest.mark.parametrize(['kwargs', 'error'], [
    pytest.param({'J': 1, 'beta': [1, 1]}, ValueError, id="one product"),
    pytest.param({'N': 0}, ValueError, id="no consumers"),
    pytest.param({'beta': [1, 1]}, exceptions.DimensionError, id="wrong size"),
    pytest.param({'price_bounds': (2, 1)}, ValueError, id="invalid price bounds"),
    pytest.param({'featured_probability': 2}, ValueError, id="invalid probability")
])
def test_invalid_configuration(kwargs: dict, error: type) -> None:
    """Test that invalid configurations raise errors."""
    with pytest.raises(error):
        Simulation(**{'J': 2, 'N': 10, 'beta': [1, 1, -1], **kwargs})
