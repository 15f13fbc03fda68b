"""Counterfactual choice probabilities, market shares, and price elasticities."""

from typing import Any, Mapping, Optional, Union

import numpy as np

from . import exceptions, options
from .configurations.formulation import Formulation
from .primitives import Observations
from .utilities.basics import Array, output


def compute_choice_probabilities(
        long_data: Union[Mapping, Observations], beta: Any, formulation: Optional[Formulation] = None) -> Array:
    r"""Compute the choice probabilities of each consumer at the given coefficients.

    Parameters
    ----------
    long_data : `structured array-like or Observations`
        Long observations with one row for each consumer and product, typically built by :func:`reshape_observations`.
        The ``chosen`` field is required but not used.
    beta : `array-like`
        Coefficients, which are in the same order as columns of the design matrix.
    formulation : `Formulation, optional`
        :class:`Formulation` configuration for the design matrix. By default, the matrix consists of indicators for
        products :math:`1, \dots, J - 1`, the featured indicator, and price.

    Returns
    -------
    `ndarray`
        Choice probabilities with one row for each consumer, sorted by consumer ID, and one column for each product,
        sorted by product ID. Rows sum to one. Products that are not in a consumer's choice set have zero probability.

    Raises
    ------
    DimensionError
        If ``beta`` does not have one element for each column of the design matrix.

    """
    observations = structure_observations(long_data, formulation)
    return compute_probability_matrix(observations, beta)


def compute_market_shares(
        long_data: Union[Mapping, Observations], beta: Any, formulation: Optional[Formulation] = None) -> Array:
    """Compute market shares, which are choice probabilities averaged across consumers.

    Parameters
    ----------
    long_data : `structured array-like or Observations`
        Long observations with one row for each consumer and product.
    beta : `array-like`
        Coefficients, which are in the same order as columns of the design matrix.
    formulation : `Formulation, optional`
        :class:`Formulation` configuration for the design matrix.

    Returns
    -------
    `ndarray`
        Market shares of each product, sorted by product ID, which sum to one.

    """
    observations = structure_observations(long_data, formulation)
    return compute_probability_matrix(observations, beta).mean(axis=0)


def simulate_price_change(
        long_data: Union[Mapping, Observations], product_id: Any, delta: float, beta: Any,
        formulation: Optional[Formulation] = None) -> Array:
    """Compute market shares after adding an amount to the price of a product for every consumer.

    Data are copied before prices are changed, so the original data are never modified. Changes can be negative, and
    changed prices are not required to be positive. Coefficients are held fixed.

    Parameters
    ----------
    long_data : `structured array-like or Observations`
        Long observations with one row for each consumer and product, which must have a ``price`` field.
    product_id : `object`
        ID of the product whose price will be changed.
    delta : `float`
        Amount added to the price of the product.
    beta : `array-like`
        Coefficients, which are in the same order as columns of the design matrix.
    formulation : `Formulation, optional`
        :class:`Formulation` configuration for the design matrix.

    Returns
    -------
    `ndarray`
        Counterfactual market shares of each product, sorted by product ID, which sum to one.

    Examples
    --------
    .. code-block:: python

       baseline = pymnl.compute_market_shares(long_data, results.beta)
       counterfactual = pymnl.simulate_price_change(long_data, 1, 0.1, results.beta)

    """
    observations = structure_observations(long_data, formulation)
    X = observations.build_X({'price': shift_prices(observations, product_id, delta)})
    return compute_probability_matrix(observations, beta, X).mean(axis=0)


def compute_price_elasticities(
        long_data: Union[Mapping, Observations], beta: Any, formulation: Optional[Formulation] = None) -> Array:
    r"""Compute price elasticities of choice probabilities, averaged across consumers.

    For each consumer :math:`i`, the elasticity of the probability of choosing product :math:`j` with respect to the
    price of product :math:`k` is

    .. math:: \varepsilon_{ijk} = \frac{\partial U_{ik}}{\partial p_{ik}} p_{ik} (1\{j = k\} - P_{ik}),

    in which the derivative of utility with respect to price is simply the price coefficient under the default
    formulation. Derivatives are approximated with central finite differences so that price can enter the formulation
    in any way, for example as ``I(price ** 2)``.

    Parameters
    ----------
    long_data : `structured array-like or Observations`
        Long observations with one row for each consumer and product, which must have a ``price`` field.
    beta : `array-like`
        Coefficients, which are in the same order as columns of the design matrix.
    formulation : `Formulation, optional`
        :class:`Formulation` configuration for the design matrix.

    Returns
    -------
    `ndarray`
        Square matrix of elasticities averaged across consumers. Rows correspond to products whose probabilities
        change and columns correspond to products whose prices change, both sorted by product ID.

    """
    observations = structure_observations(long_data, formulation)
    probabilities = compute_probability_matrix(observations, beta)

    # approximate derivatives of utilities with respect to prices
    epsilon = options.finite_differences_epsilon
    X1 = observations.build_X({'price': shift_prices(observations, None, +epsilon / 2)})
    X2 = observations.build_X({'price': shift_prices(observations, None, -epsilon / 2)})
    derivatives = observations.reshape_probabilities(((X1 - X2) / epsilon) @ observations.coerce_beta(beta))

    # own elasticities are on the diagonal and cross elasticities do not depend on the product whose probability changes
    prices = observations.reshape_probabilities(shift_prices(observations, None, 0))
    scaled = derivatives * prices
    return np.diag(scaled.mean(axis=0)) - np.tile((scaled * probabilities).mean(axis=0), (observations.J, 1))


def structure_observations(long_data: Union[Mapping, Observations], formulation: Optional[Formulation]) -> (
        Observations):
    """Structure long data unless they have already been structured."""
    if isinstance(long_data, Observations):
        if formulation is not None:
            raise ValueError("formulation must be None when long_data are already structured Observations.")
        return long_data
    return Observations(long_data, formulation)


def compute_probability_matrix(observations: Observations, beta: Any, X: Optional[Array] = None) -> Array:
    """Compute a matrix of choice probabilities and output any numerical errors."""
    probabilities, errors = observations.compute_probabilities(beta, X)
    if errors:
        output("")
        output(exceptions.MultipleErrors(errors))
        output("")
    return observations.reshape_probabilities(probabilities)


def shift_prices(observations: Observations, product_id: Optional[Any], delta: float) -> Array:
    """Add an amount to the prices of a product, or to all prices if no product is specified."""
    if 'price' not in observations.data.dtype.names:
        raise KeyError("Long observations must have a price field.")
    prices = observations.data['price'].flatten().astype(options.dtype)
    if product_id is None:
        return prices + delta
    if product_id not in observations.unique_product_ids:
        raise ValueError(f"product_id must be one of {list(observations.unique_product_ids)}.")
    return np.where(observations.product_ids == product_id, prices + delta, prices)
