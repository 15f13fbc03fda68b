"""Primitive data structures that constitute the foundation of the multinomial logit model."""

from typing import List, Mapping, Optional, Tuple

import numpy as np

from . import exceptions, options
from .configurations.formulation import Formulation, format_label
from .utilities.basics import (
    Array, Error, Groups, NumericalErrorHandler, RecArray, extract_names, freeze, structure_matrices
)


class Observations(object):
    r"""Long observations structured for repeated evaluation of choice probabilities.

    The design matrix :math:`X` and an index that groups rows by consumer are built once, when observations are
    initialized, and are reused by every evaluation of utilities, probabilities, and the log-likelihood. All arrays are
    read-only, so observations can be safely shared.

    Attributes
    ----------
    data : `recarray`
        Long observations, with rows in their original order.
    X : `ndarray`
        Design matrix with one row for each consumer and product and one column for each coefficient.
    column_names : `list of str`
        Names of the columns in :math:`X`.
    labels : `list of str`
        Coefficient labels, which are the column names without any ``is_`` prefix.
    consumer_ids : `ndarray`
        Consumer ID of each row.
    product_ids : `ndarray`
        Product ID of each row.
    chosen : `ndarray`
        Choice indicator of each row.
    unique_consumer_ids : `ndarray`
        Unique consumer IDs, in the order of rows in probability matrices.
    unique_product_ids : `ndarray`
        Unique product IDs, in the order of columns in probability matrices.
    groups : `Groups`
        Index that groups rows by consumer.
    N : `int`
        Number of consumers.
    J : `int`
        Number of unique products.
    K : `int`
        Number of coefficients.

    """

    data: RecArray
    X: Array
    column_names: List[str]
    labels: List[str]
    consumer_ids: Array
    product_ids: Array
    chosen: Array
    unique_consumer_ids: Array
    unique_product_ids: Array
    groups: Groups
    N: int
    J: int
    K: int
    formulation: Formulation
    _product_indices: Array

    def __init__(self, long_data: Mapping, formulation: Optional[Formulation] = None) -> None:
        """Structure long data, design the matrix of characteristics, and index consumers."""
        names = extract_names(long_data)
        missing = [n for n in ['consumer_id', 'product_id', 'chosen'] if n not in names]
        if missing:
            raise KeyError(f"Long observations are missing the fields {missing}.")

        # load identifiers and choices
        self.consumer_ids = np.asarray(long_data['consumer_id']).flatten()
        self.product_ids = np.asarray(long_data['product_id']).flatten()
        self.chosen = np.asarray(long_data['chosen'], options.dtype).reshape(-1, 1)
        self.unique_product_ids = np.unique(self.product_ids)
        self.J = self.unique_product_ids.size

        # build the design matrix
        if formulation is None:
            formulation = Formulation.from_products(self.J)
        if not isinstance(formulation, Formulation):
            raise TypeError("formulation must be None or a Formulation instance.")
        self.formulation = formulation
        self.X, self.column_names = formulation._build_matrix(long_data)
        self.labels = [format_label(n) for n in self.column_names]
        self.K = self.X.shape[1]

        # index consumers and locate products in probability matrices
        self.groups = Groups(self.consumer_ids)
        self.unique_consumer_ids = self.groups.unique
        self.N = self.groups.group_count
        self._product_indices = np.searchsorted(self.unique_product_ids, self.product_ids)

        # each consumer can face each product at most once
        pairs = self.groups.codes * self.J + self._product_indices
        unique_pairs, counts = np.unique(pairs, return_counts=True)
        if (counts > 1).any():
            bad_ids = self.unique_consumer_ids[unique_pairs[counts > 1] // self.J]
            raise exceptions.SchemaError(
                f"Products appear more than once for consumers with IDs {list(np.unique(bad_ids)[:10])}."
            )

        # keep a structured copy of the underlying data
        self.data = structure_matrices({
            **{n: (np.asarray(long_data[n]), np.asarray(long_data[n]).dtype) for n in names if n != 'consumer_id'},
            'consumer_id': (self.consumer_ids, np.object_),
        })
        for array in [self.X, self.consumer_ids, self.product_ids, self.chosen, self.unique_product_ids,
                      self.unique_consumer_ids, self._product_indices, self.data]:
            freeze(array)

    def __str__(self) -> str:
        """Format the dimensions as a string."""
        return f"{self.N} consumers, {self.J} products, {self.K} coefficients ({', '.join(self.labels)})"

    def coerce_beta(self, beta: Array) -> Array:
        """Coerce an array-like coefficient vector into a column vector and validate its size."""
        beta = np.asarray(beta, options.dtype)
        if beta.size != self.K:
            raise exceptions.DimensionError(self.K, beta.size)
        return beta.reshape(self.K, 1)

    def compute_utilities(self, beta: Array, X: Optional[Array] = None) -> Array:
        """Compute the linear utility of each row. By default, use the unchanged design matrix."""
        return (self.X if X is None else X) @ self.coerce_beta(beta)

    @NumericalErrorHandler(exceptions.ProbabilitiesNumericalError)
    def compute_probabilities(self, beta: Array, X: Optional[Array] = None) -> Tuple[Array, List[Error]]:
        """Compute the choice probability of each row and collect any numerical errors."""
        errors: List[Error] = []
        probabilities = self._compute_probabilities(beta, X)
        return probabilities, errors

    def _compute_probabilities(self, beta: Array, X: Optional[Array] = None) -> Array:
        """Compute the choice probability of each row with a softmax within each consumer. Utilities are shifted by
        their maximum within each consumer before being exponentiated, so exponentiated utilities are at most one and
        their sum within each consumer is at least one.
        """
        utilities = self.compute_utilities(beta, X)
        utilities = utilities - self.groups.expand(self.groups.max(utilities))
        exp_utilities = np.exp(utilities)
        return exp_utilities / self.groups.expand(self.groups.sum(exp_utilities))

    @NumericalErrorHandler(exceptions.ProbabilitiesNumericalError)
    def compute_objective(
            self, beta: Array, compute_gradient: bool = True) -> Tuple[float, Optional[Array], List[Error]]:
        """Compute the negative log-likelihood and optionally its gradient, and collect any numerical errors."""
        errors: List[Error] = []
        objective, gradient = self._compute_objective(beta, compute_gradient)
        return objective, gradient, errors

    def _compute_objective(self, beta: Array, compute_gradient: bool = True) -> Tuple[float, Optional[Array]]:
        r"""Compute the negative log-likelihood and optionally its gradient with respect to the coefficients.

        A floor is added to probabilities before taking logarithms, so the objective is

        .. math:: -\sum_{ij} y_{ij} \log(P_{ij} + \epsilon),

        and its gradient is

        .. math:: -\sum_{ij} y_{ij} \frac{P_{ij}}{P_{ij} + \epsilon} (x_{ij} - \bar{x}_i)

        in which :math:`\bar{x}_i = \sum_j P_{ij} x_{ij}`.
        """
        probabilities = self._compute_probabilities(beta)
        floored = probabilities + options.probability_floor
        log_floored = np.log(floored, out=np.zeros_like(floored), where=self.chosen > 0)
        objective = -float((self.chosen * log_floored).sum())
        gradient = None
        if compute_gradient:
            mean_X = self.groups.expand(self.groups.sum(probabilities * self.X))
            weights = self.chosen * probabilities / floored
            gradient = -(weights * (self.X - mean_X)).sum(axis=0)
        return objective, gradient

    def reshape_probabilities(self, probabilities: Array) -> Array:
        """Reshape a column of probabilities for each row into a matrix with one row for each consumer and one column
        for each product. Products that are not in a consumer's choice set have zero probability.
        """
        matrix = np.zeros((self.N, self.J), options.dtype)
        matrix[self.groups.codes, self._product_indices] = probabilities.flatten()
        return matrix

    def build_X(self, data_override: Mapping) -> Array:
        """Design the matrix of characteristics after replacing the underlying data fields with any overrides."""
        data = {n: self.data[n] for n in self.data.dtype.names}
        data.update(data_override)
        return self.formulation._build_matrix(data)[0]
