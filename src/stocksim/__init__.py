"""
stocksim - Monte-Carlo simulation experiments for stock-assessment models.

Mutate operating models, sample observations, fit estimation models.
"""

from stocksim.models.experiment import ExperimentSpec
from stocksim.orchestrator import run_batch
from stocksim.solver import SolverAdapter

__version__ = "0.1.0"
__all__ = ["ExperimentSpec", "SolverAdapter", "run_batch", "__version__"]
