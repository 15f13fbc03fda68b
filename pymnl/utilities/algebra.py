"""Algebraic routines."""

from typing import Callable, List, Optional, Tuple
import warnings

import numpy as np
import scipy.linalg

from .basics import Array
from .. import options


def compute_condition_number(x: Array) -> float:
    """Compute the condition number of a square matrix."""
    if x.size == 0:
        return 0
    if not np.isfinite(x).all():
        return np.nan
    try:
        return np.linalg.cond(x.astype(np.float64))
    except scipy.linalg.LinAlgError:
        return np.nan


def precisely_identify_singularity(x: Array) -> Tuple[bool, bool, float]:
    """Compute the condition number of a matrix to identify whether it is nearly singular."""
    singular = False
    successful = True
    condition = np.nan
    if options.singular_tol < np.inf:
        condition = compute_condition_number(x)
        successful = not np.isnan(condition)
        singular = successful and condition > options.singular_tol

    return singular, successful, condition


def approximately_invert(x: Array) -> Tuple[Array, Optional[str]]:
    """Attempt to invert a matrix with decreasingly precise replacements for the inverse."""
    inverted = np.full_like(x, np.nan)
    replacement = None
    if x.size > 0:
        # collect the different inversion methods
        methods: List[Tuple[Callable, Optional[str]]] = []
        if options.pseudo_inverses:
            methods.append((scipy.linalg.pinv, None))
        else:
            methods.extend([(scipy.linalg.inv, None), (scipy.linalg.pinv, "its Moore-Penrose pseudo inverse")])
        methods.append((
            lambda y: np.diag(1 / y.diagonal()),
            "inverted diagonal terms because the Moore-Penrose pseudo-inverse could not be computed"
        ))

        # use the different methods to invert the matrix, stopping at the first one that works
        for invert, description in methods:
            try:
                with warnings.catch_warnings():
                    warnings.filterwarnings('error')
                    inverted = invert(x)
                replacement = description
                break
            except ValueError:
                replacement = "null values"
                break
            except (scipy.linalg.LinAlgError, scipy.linalg.LinAlgWarning):
                pass

    return inverted, replacement
