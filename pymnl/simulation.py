"""Simulation of synthetic multinomial logit data."""

import time
from typing import Any, Dict, Optional, Tuple

import numpy as np

from . import exceptions, options
from .construction import reshape_observations
from .utilities.basics import Array, RecArray, StringRepresentation, format_number, format_seconds, format_table, output


class Simulation(StringRepresentation):
    r"""Simulation of synthetic data in the wide format of consumer choices.

    All data are simulated during initialization. Each of :math:`N` consumers faces the same :math:`J` products. Prices
    are drawn independently from a uniform distribution, and each product is featured independently with a fixed
    probability. Consumers then choose the product that maximizes

    .. math:: U_{ij} = x_{ij}'\beta + \varepsilon_{ij},

    in which :math:`x_{ij}` consists of indicators for products :math:`1, \dots, J - 1`, the featured indicator, and
    price, and :math:`\varepsilon_{ij}` are drawn from the type I extreme value distribution, so choices are consistent
    with the multinomial logit model.

    Parameters
    ----------
    J : `int`
        Number of products, which must be at least two.
    N : `int`
        Number of consumers, which must be positive.
    beta : `array-like`
        Coefficients ordered as brand intercepts for products :math:`1, \dots, J - 1` followed by the featured and price
        coefficients.
    seed : `int, optional`
        Passed to :class:`numpy.random.RandomState` to seed the random number generator before data are simulated. By
        default, a seed is not passed to the random number generator.
    price_bounds : `tuple of float, optional`
        Lower and upper bounds of the uniform distribution from which prices are drawn. By default, prices are drawn
        between ``0.5`` and ``1.5``.
    featured_probability : `float, optional`
        Probability that a product is featured for a consumer, which is by default ``0.2``.

    Attributes
    ----------
    J : `int`
        Number of products.
    N : `int`
        Number of consumers.
    beta : `ndarray`
        Coefficients used to simulate choices.
    seed : `int`
        Seed passed to the random number generator.
    wide_data : `dict`
        Simulated wide observations with the fields ``id``, ``choice_j``, ``featured_j``, and ``price_j`` for
        :math:`j = 1, \dots, J`, which can be passed to :func:`reshape_observations`.
    long_data : `recarray`
        Simulated long observations built by :func:`reshape_observations`, which can be passed to :class:`Problem`.

    Examples
    --------
    .. code-block:: python

       simulation = pymnl.Simulation(J=4, N=1000, beta=[1.0, 0.5, -0.5, 1.0, -2.0], seed=0)
       results = pymnl.Problem(simulation.long_data).solve()

    """

    J: int
    N: int
    beta: Array
    seed: Optional[int]
    price_bounds: Tuple[float, float]
    featured_probability: float
    wide_data: Dict[str, Array]
    long_data: RecArray

    def __init__(
            self, J: int, N: int, beta: Any, seed: Optional[int] = None, price_bounds: Tuple[float, float] = (0.5, 1.5),
            featured_probability: float = 0.2) -> None:
        """Validate the configuration and simulate data."""
        output("Simulating data ...")
        start_time = time.time()

        # validate the configuration
        if not isinstance(J, int) or J < 2:
            raise ValueError("J must be an int that is at least 2.")
        if not isinstance(N, int) or N < 1:
            raise ValueError("N must be a positive int.")
        beta = np.asarray(beta, options.dtype)
        if beta.size != J + 1:
            raise exceptions.DimensionError(J + 1, beta.size)
        if len(price_bounds) != 2 or price_bounds[0] > price_bounds[1]:
            raise ValueError("price_bounds must be a tuple of the form (lb, ub) with lb <= ub.")
        if not 0 <= featured_probability <= 1:
            raise ValueError("featured_probability must be between 0 and 1.")
        self.J = J
        self.N = N
        self.beta = beta.reshape(J + 1, 1)
        self.seed = seed
        self.price_bounds = (float(price_bounds[0]), float(price_bounds[1]))
        self.featured_probability = float(featured_probability)

        # simulate characteristics and unobserved preferences
        state = np.random.RandomState(seed)
        prices = state.uniform(*self.price_bounds, size=(N, J)).astype(options.dtype)
        featured = (state.uniform(size=(N, J)) < self.featured_probability).astype(np.int64)
        epsilon = state.gumbel(size=(N, J)).astype(options.dtype)

        # choose the products with the highest utilities
        intercepts = np.r_[self.beta[:J - 1, 0], 0]
        utilities = intercepts[None] + self.beta[J - 1, 0] * featured + self.beta[J, 0] * prices + epsilon
        choices = np.zeros((N, J), np.int64)
        choices[np.arange(N), utilities.argmax(axis=1)] = 1

        # structure the data
        self.wide_data = {'id': np.arange(1, N + 1, dtype=np.int64)}
        for prefix, matrix in [('choice_', choices), ('featured_', featured), ('price_', prices)]:
            self.wide_data.update({f'{prefix}{j + 1}': matrix[:, j] for j in range(J)})
        self.long_data = reshape_observations(self.wide_data, J)
        output(f"Simulated data after {format_seconds(time.time() - start_time)}.")
        output("")
        output(self)

    def __str__(self) -> str:
        """Format simulation information as a string."""
        labels = [f'brand_{k}' for k in range(1, self.J)] + ['featured', 'price']
        dimensions = format_table([" N ", " J ", "Seed"], [self.N, self.J, self.seed], title="Dimensions")
        beta = format_table(labels, [format_number(x) for x in self.beta.flatten()], title="Simulated Beta")
        shares = format_table(
            [f'choice_{j}' for j in range(1, self.J + 1)],
            [format_number(self.wide_data[f'choice_{j}'].mean()) for j in range(1, self.J + 1)],
            title="Simulated Choice Frequencies"
        )
        return "\n\n".join([dimensions, beta, shares])
