"""
Objective module: restricted scoring formulas for offers.
"""

from .errors import ConfigError, DivisionByZeroError, FormulaError, GasExceededError
from .formula import Formula, compile_formula
from .evaluator import ObjectiveConfig, ObjectiveEvaluator, RECOMMENDED_FORMULA
from .gas_meter import GasMeter

__all__ = [
    "ConfigError",
    "DivisionByZeroError",
    "FormulaError",
    "GasExceededError",
    "Formula",
    "compile_formula",
    "ObjectiveConfig",
    "ObjectiveEvaluator",
    "RECOMMENDED_FORMULA",
    "GasMeter",
]
