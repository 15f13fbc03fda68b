"""Public-facing objects."""

from . import exceptions, options
from .configurations.formulation import Formulation
from .configurations.optimization import Optimization
from .construction import data_to_dict, read_observations, read_pickle, reshape_observations, save_pickle
from .counterfactuals import (
    compute_choice_probabilities, compute_market_shares, compute_price_elasticities, simulate_price_change
)
from .primitives import Observations
from .problem import Problem
from .results.problem_results import ProblemResults
from .simulation import Simulation
from .version import __version__

__all__ = [
    'exceptions', 'options', 'Formulation', 'Optimization', 'data_to_dict', 'read_observations', 'read_pickle',
    'reshape_observations', 'save_pickle', 'compute_choice_probabilities', 'compute_market_shares',
    'compute_price_elasticities', 'simulate_price_change', 'Observations', 'Problem', 'ProblemResults', 'Simulation',
    '__version__'
]
