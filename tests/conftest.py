"""Fixtures used by tests."""

from typing import Dict, Iterator, List, Tuple

import numpy as np
import pytest

from pymnl import Optimization, Problem, ProblemResults, Simulation, options, reshape_observations
from pymnl.utilities.basics import Array, RecArray


# define common types
ToyFixture = Tuple[Dict[str, Array], RecArray, Problem, ProblemResults]
SimulatedFixture = Tuple[Simulation, Problem, ProblemResults]


@pytest.fixture(scope='session', autouse=True)
def configure() -> Iterator[None]:
    """Configure NumPy so that it raises all warnings other than underflow as exceptions, and silence status updates."""
    old_error = np.seterr(all='raise', under='ignore')
    old_verbose = options.verbose
    options.verbose = False
    yield
    options.verbose = old_verbose
    np.seterr(**old_error)


def build_toy_wide_data() -> Dict[str, Array]:
    """Build wide data for two products with three distinct patterns of characteristics.

    When product 1 is cheaper, it is chosen by three of four consumers. When it is more expensive, it is chosen by
    two of four consumers. When it is cheaper and featured, it is chosen by seven of eight consumers. Since there are
    as many patterns as coefficients, the maximum likelihood estimates reproduce these frequencies exactly: the brand
    1 intercept is log(3) / 2, the featured coefficient is log(7 / 3), and the price coefficient is -log(3).
    """
    rows: List[Tuple[int, int, float, float]] = []
    rows.extend([(1, 0, 1.0, 1.5)] * 3 + [(0, 0, 1.0, 1.5)])
    rows.extend([(1, 0, 2.0, 1.5)] * 2 + [(0, 0, 2.0, 1.5)] * 2)
    rows.extend([(1, 1, 1.0, 1.5)] * 7 + [(0, 1, 1.0, 1.5)])
    chosen, featured, price_1, price_2 = (np.array(c) for c in zip(*rows))
    return {
        'id': np.arange(1, len(rows) + 1),
        'choice_1': chosen,
        'choice_2': 1 - chosen,
        'featured_1': featured,
        'featured_2': np.zeros_like(featured),
        'price_1': price_1,
        'price_2': price_2
    }


TOY_BETA = np.array([np.log(3) / 2, np.log(7 / 3), -np.log(3)])


@pytest.fixture
def toy_wide_data() -> Dict[str, Array]:
    """Build fresh toy wide data that tests can freely modify."""
    return build_toy_wide_data()


@pytest.fixture(scope='session')
def toy() -> ToyFixture:
    """Reshape and solve the toy problem with two products."""
    wide_data = build_toy_wide_data()
    long_data = reshape_observations(wide_data)
    problem = Problem(long_data)
    results = problem.solve(optimization=Optimization('bfgs', {'gtol': 1e-8}))
    return wide_data, long_data, problem, results


@pytest.fixture(scope='session')
def simulated() -> SimulatedFixture:
    """Simulate and solve a problem with four products and many consumers."""
    simulation = Simulation(J=4, N=5000, beta=[1.0, 0.5, -0.5, 1.0, -2.0], seed=0)
    problem = Problem(simulation.long_data)
    results = problem.solve()
    return simulation, problem, results
