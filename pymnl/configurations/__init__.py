"""Configuration classes."""

from .formulation import Formulation
from .optimization import Optimization
