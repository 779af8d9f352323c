"""
Errors raised while compiling, configuring or evaluating objective formulas.
"""


class FormulaError(ValueError):
    """Raised when a formula is malformed or cannot be evaluated"""
    pass


class DivisionByZeroError(FormulaError, ZeroDivisionError):
    """Raised when a formula divides by zero, e.g. a worker reporting zero total memory"""
    pass


class GasExceededError(FormulaError):
    """Raised when evaluation exceeds its gas limit"""
    pass


class ConfigError(ValueError):
    """Raised when required configuration is missing or inconsistent"""
    pass
