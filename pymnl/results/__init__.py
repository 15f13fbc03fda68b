"""Structured results."""

from .problem_results import ProblemResults
