"""Formulation of design matrices."""

from typing import List, Mapping, Tuple, Type

import numpy as np
import patsy
import patsy.desc
import patsy.origin

from .. import options
from ..utilities.basics import Array, Data, StringRepresentation, extract_names


class Formulation(StringRepresentation):
    r"""Configuration for designing the matrix of product characteristics, :math:`X`.

    Internally, the `patsy <https://patsy.readthedocs.io/en/stable/>`_ package is used to convert long observation data
    and R-style formulas into matrices. Variable names refer to fields of the long data built by
    :func:`reshape_observations`: ``chosen``, ``featured``, ``price``, ``product_id``, ``consumer_id``, and the brand
    indicators ``is_brand_1`` through ``is_brand_{J-1}``. All of the standard
    `binary operators <https://patsy.readthedocs.io/en/stable/formulas.html#operators>`_ can be used, along with
    ``I()`` to encapsulate mathematical operations such as ``I(price / 100)``.

    Columns of the designed matrix are in the same order as terms in the formula, and coefficients are ordered in the
    same way. Coefficient labels are the column names, with any ``is_`` prefix removed.

    Since only differences in utility across products within a consumer matter, an intercept is never identified and
    must be removed with ``0`` or ``-1``.

    Parameters
    ----------
    formula : `str`
        R-style formula used to design the matrix. Variable names will be validated when this formulation and data are
        passed to a function that uses them.

    Examples
    --------
    The default formulation used for :math:`J = 4` products, in which product 4 is the reference category, is:

    .. code-block:: python

       formulation = pymnl.Formulation('0 + is_brand_1 + is_brand_2 + is_brand_3 + featured + price')

    """

    _formula: str
    _terms: List[patsy.desc.Term]

    def __init__(self, formula: str) -> None:
        """Parse the formula into patsy terms. In the process, validate it as much as possible without any data."""
        if not isinstance(formula, str):
            raise TypeError("formula must be a str.")
        self._formula = formula
        self._terms = parse_terms(formula)
        if not self._terms:
            raise patsy.PatsyError("formula has no terms.", patsy.origin.Origin(formula, 0, len(formula)))
        if patsy.desc.INTERCEPT in self._terms:
            message = "formula should not have an intercept, which is not identified. Remove it with 0 or -1."
            raise patsy.PatsyError(message, patsy.origin.Origin(formula, 0, len(formula)))

    @classmethod
    def from_products(cls: Type['Formulation'], J: int) -> 'Formulation':
        """Build the default formulation for J products: J - 1 brand indicators (product J is the reference category)
        followed by the featured indicator and price.
        """
        if not isinstance(J, int) or J < 2:
            raise ValueError("J must be an int that is at least 2.")
        names = [f'is_brand_{k}' for k in range(1, J)] + ['featured', 'price']
        return cls(' + '.join(['0'] + names))

    def __reduce__(self) -> Tuple[Type['Formulation'], Tuple]:
        """Handle pickling."""
        return (self.__class__, (self._formula,))

    def __str__(self) -> str:
        """Format the terms as a string."""
        return ' + '.join(t.name() for t in self._terms)

    def _build_matrix(self, data: Mapping) -> Tuple[Array, List[str]]:
        """Convert a mapping from variable names to arrays into the designed matrix and its column names."""
        data_mapping: Data = {n: np.asarray(data[n]).flatten() for n in extract_names(data)}
        description = patsy.desc.ModelDesc([], self._terms)
        try:
            matrix = patsy.dmatrix(description, data_mapping, NA_action='raise')
        except patsy.PatsyError:
            raise
        except Exception as exception:
            origin = patsy.origin.Origin(self._formula, 0, len(self._formula))
            message = "Failed to design the matrix because of the above exception."
            raise patsy.PatsyError(message, origin) from exception
        return np.asarray(matrix, options.dtype), list(matrix.design_info.column_names)


def parse_terms(formula: str) -> List[patsy.desc.Term]:
    """Parse patsy terms from a string. Validate that the string contains only right-hand side terms."""
    description = patsy.desc.ModelDesc.from_formula(formula)
    if description.lhs_termlist:
        end = formula.index('~') + 1 if '~' in formula else len(formula)
        raise patsy.PatsyError("Formulas should not have left-hand sides.", patsy.origin.Origin(formula, 0, end))
    return description.rhs_termlist


def format_label(column_name: str) -> str:
    """Convert a designed column name into a coefficient label."""
    return column_name[3:] if column_name.startswith('is_') else column_name
