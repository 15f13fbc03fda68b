"""General functionality."""

from .basics import (
    Groups, SolverStats, compute_finite_differences, format_number, format_se, format_seconds, format_table, output
)
from .algebra import approximately_invert, compute_condition_number
