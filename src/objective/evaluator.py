"""
Objective Evaluator

Scores (request, offer) pairs with a configurable formula. The weights
and zone count are deployment configuration, never baked into the
formula text; they are bound as named constants at compile time.
"""

import os
import math
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .errors import ConfigError, FormulaError
from .formula import Formula, compile_formula

logger = logging.getLogger(__name__)


# Zone preference is an integer >= 1 and the weighted terms sum to at most
# 1, so the zone term always acts as the most significant digit.
RECOMMENDED_FORMULA = """(
((request.instance_number + request.app_id + offer.zone_id) % zones) + 1
+ alpha * count(request.source_artifact_id, offer.cached_artifact_ids)
+ beta * (offer.available_memory_mb / offer.total_memory_mb)
+ gamma * (offer.available_disk_mb / offer.total_disk_mb)
+ delta * (1 - count(request.app_id, offer.running_app_ids) / request.total_instances)
)"""

WEIGHT_TOLERANCE = 1e-9


@dataclass(frozen=True)
class ObjectiveConfig:
    """
    Configuration for the objective evaluator.

    Weights have no defaults: every deployment must choose them.
    """

    alpha: float
    beta: float
    gamma: float
    delta: float
    zones: int
    formula: str = RECOMMENDED_FORMULA
    gas_limit: int = 10000

    def __post_init__(self):
        weights = self.weights()
        for name, value in weights.items():
            if not math.isfinite(value):
                raise ConfigError(f"weight {name} must be a finite number, got {value}")
            if value < 0:
                raise ConfigError(f"weight {name} must be non-negative, got {value}")
        total = sum(weights.values())
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ConfigError(f"weights must sum to 1, got {total}")
        if not isinstance(self.zones, int) or self.zones < 1:
            raise ConfigError(f"zones must be a positive integer, got {self.zones!r}")
        if self.gas_limit <= 0:
            raise ConfigError(f"gas_limit must be positive, got {self.gas_limit}")

    def weights(self) -> Dict[str, float]:
        return {
            "alpha": self.alpha,
            "beta": self.beta,
            "gamma": self.gamma,
            "delta": self.delta,
        }

    def constants(self) -> Dict[str, float]:
        """Named constants bound into the formula"""
        bound = dict(self.weights())
        bound["zones"] = self.zones
        return bound

    @classmethod
    def from_env(cls) -> "ObjectiveConfig":
        """
        Build configuration from environment variables.

        OBJECTIVE_WEIGHTS: "alpha,beta,gamma,delta" (required)
        OBJECTIVE_ZONES: number of availability zones (required)
        OBJECTIVE_FORMULA: formula text (optional)
        OBJECTIVE_GAS_LIMIT: evaluation gas limit (optional)
        """
        raw_weights = os.getenv("OBJECTIVE_WEIGHTS")
        raw_zones = os.getenv("OBJECTIVE_ZONES")
        if not raw_weights or not raw_zones:
            raise ConfigError("OBJECTIVE_WEIGHTS and OBJECTIVE_ZONES must both be set")

        try:
            weights = [float(part) for part in raw_weights.split(",")]
            zones = int(raw_zones)
            gas_limit = int(os.getenv("OBJECTIVE_GAS_LIMIT", "10000"))
        except ValueError as e:
            raise ConfigError(f"invalid objective configuration: {e}") from e

        if len(weights) != 4:
            raise ConfigError(f"OBJECTIVE_WEIGHTS needs 4 values, got {len(weights)}")

        return cls(
            alpha=weights[0],
            beta=weights[1],
            gamma=weights[2],
            delta=weights[3],
            zones=zones,
            formula=os.getenv("OBJECTIVE_FORMULA", RECOMMENDED_FORMULA),
            gas_limit=gas_limit,
        )


class ObjectiveEvaluator:
    """
    Pure scoring function held by the auctioneer.

    Compiles the configured formula once; scoring performs no I/O.
    """

    def __init__(self, config: ObjectiveConfig, extra_constants: Optional[Dict[str, float]] = None):
        """
        Initialize evaluator.

        Args:
            config: Objective configuration (weights, zones, formula)
            extra_constants: Additional named constants for custom formulas

        Raises:
            FormulaError: If the configured formula does not compile
        """
        self.config = config
        constants = config.constants()
        constants.update(extra_constants or {})
        self.formula: Formula = compile_formula(config.formula, constants)

    def score(self, request: Any, offer: Any) -> float:
        """
        Score one offer for a request. Higher is better.

        Raises:
            DivisionByZeroError: If the offer reports a zero total
            FormulaError: For any other evaluation failure
        """
        try:
            return self.formula.evaluate(request, offer, gas_limit=self.config.gas_limit)
        except FormulaError:
            raise
        except (TypeError, AttributeError) as e:
            raise FormulaError(f"formula evaluation failed: {e}") from e

    def zone_preference(self, request: Any, zone_id: int) -> int:
        """Integer zone preference (1 = least preferred) used by the recommended formula"""
        return ((request.instance_number + request.app_id + zone_id) % self.config.zones) + 1
