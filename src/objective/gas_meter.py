"""
Gas Metering for Objective Evaluation

Bounds the cost of evaluating one scoring formula so that a formula
received from elsewhere can never stall an auction.

Metering Strategy:
- Each node visited costs gas
- count() additionally costs gas per item scanned
- Raises exception when the configured limit is exceeded
"""

import logging
from typing import Optional

from .errors import GasExceededError

logger = logging.getLogger(__name__)


class GasMeter:
    """
    Tracks gas consumption while a formula is evaluated.

    Gas costs:
    - Constant: 1 gas
    - Field access: 1 gas
    - Arithmetic: 2 gas
    - count(): 5 gas plus 1 gas per item scanned
    """

    COST_CONSTANT = 1
    COST_FIELD_ACCESS = 1
    COST_ARITHMETIC = 2
    COST_COUNT = 5
    COST_COUNT_PER_ITEM = 1

    def __init__(self, gas_limit: int = 10000):
        """
        Initialize gas meter.

        Args:
            gas_limit: Maximum gas allowed for one evaluation
        """
        self.limit = gas_limit
        self.used = 0

    def consume(self, amount: int, operation: Optional[str] = None) -> None:
        """
        Consume gas.

        Args:
            amount: Gas to consume
            operation: Optional operation name for debugging

        Raises:
            GasExceededError: If gas limit exceeded
        """
        self.used += amount

        if self.used > self.limit:
            raise GasExceededError(
                f"Gas limit exceeded: {self.used} > {self.limit} "
                f"(operation: {operation or 'unknown'})"
            )

    def consume_constant(self) -> None:
        self.consume(self.COST_CONSTANT, "constant")

    def consume_field_access(self, field_name: Optional[str] = None) -> None:
        """Consume gas for field access"""
        self.consume(self.COST_FIELD_ACCESS, f"field_access:{field_name or 'unknown'}")

    def consume_arithmetic(self, operator: str) -> None:
        self.consume(self.COST_ARITHMETIC, f"arithmetic:{operator}")

    def consume_count(self, item_count: int) -> None:
        """Consume gas for a count() scan over item_count items"""
        cost = self.COST_COUNT + self.COST_COUNT_PER_ITEM * item_count
        self.consume(cost, f"count:{item_count}_items")
