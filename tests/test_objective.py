"""
Unit tests for the objective evaluator.

Tests:
- Formula grammar and compile errors
- Division by zero and gas limits
- Recommended formula scores
- Zone preference rotation
- Objective configuration
"""

import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest
from auction.models import Offer, PlacementRequest
from objective import (
    ConfigError,
    DivisionByZeroError,
    FormulaError,
    GasExceededError,
    GasMeter,
    ObjectiveConfig,
    ObjectiveEvaluator,
    RECOMMENDED_FORMULA,
    compile_formula,
)


def make_request(**overrides):
    fields = dict(
        required_memory_mb=1024,
        required_disk_mb=1024,
        app_id=0,
        instance_number=0,
        total_instances=1,
        source_artifact_id="A",
        stack="linux",
    )
    fields.update(overrides)
    return PlacementRequest(**fields)


def make_offer(**overrides):
    fields = dict(
        available_memory_mb=4096,
        available_disk_mb=10240,
        total_memory_mb=8192,
        total_disk_mb=20480,
        zone_id=1,
        stack="linux",
    )
    fields.update(overrides)
    return Offer(**fields)


def make_config(**overrides):
    fields = dict(alpha=0.4, beta=0.3, gamma=0.2, delta=0.1, zones=2)
    fields.update(overrides)
    return ObjectiveConfig(**fields)


class TestFormulaGrammar:
    """Test which formulas compile"""

    def test_field_arithmetic(self):
        """Verify field access and arithmetic evaluate"""
        formula = compile_formula("offer.available_memory_mb / offer.total_memory_mb")

        assert formula.evaluate(make_request(), make_offer()) == pytest.approx(0.5)

    def test_subtraction_is_sugar(self):
        """Verify '-' and unary minus evaluate like the usual operators"""
        formula = compile_formula("offer.total_memory_mb - offer.available_memory_mb - -1")

        assert formula.evaluate(make_request(), make_offer()) == pytest.approx(4097)

    def test_named_constants(self):
        """Verify constants are bound at compile time"""
        formula = compile_formula("k * offer.zone_id", {"k": 3})

        assert formula.evaluate(make_request(), make_offer()) == pytest.approx(3)

    def test_modulo_by_constant(self):
        """Verify modulo by a literal or constant"""
        request = make_request(app_id=4)

        assert compile_formula("request.app_id % 3").evaluate(request, make_offer()) == 1
        assert compile_formula("request.app_id % zones", {"zones": 3}).evaluate(request, make_offer()) == 1

    def test_count_over_multiset(self):
        """Verify count() counts occurrences"""
        formula = compile_formula("count(request.app_id, offer.running_app_ids)")
        offer = make_offer(running_app_ids=(0, 0, 5))

        assert formula.evaluate(make_request(), offer) == 2

    def test_count_over_set(self):
        """Verify count() over a set is membership"""
        formula = compile_formula("count(request.source_artifact_id, offer.cached_artifact_ids)")

        assert formula.evaluate(make_request(), make_offer(cached_artifact_ids={"A"})) == 1
        assert formula.evaluate(make_request(), make_offer()) == 0

    @pytest.mark.parametrize(
        "source",
        [
            "offer.available_memory_mb % offer.zone_id",  # derived modulo operand
            "offer.available_memory_mb if 1 else 0",  # conditional
            "offer.zone_id > 1",  # comparison
            "max(offer.zone_id, 1)",  # other call
            "offer.running_app_ids[0]",  # subscript
            "request.offer.zone_id",  # chain
            "foo.zone_id",  # unknown record
            "offer.nonexistent",  # unknown field
            "unknown_name + 1",  # unbound constant
            "offer.stack + 1",  # text field in arithmetic
            "count(request.app_id, offer.zone_id)",  # count over scalar
            "count(request.app_id)",  # arity
            "offer.zone_id ** 2",  # unsupported operator
            "True + 1",  # non-numeric literal
            "'a'",  # string literal
            "[x for x in offer.running_app_ids]",  # comprehension
        ],
    )
    def test_rejected_syntax(self, source):
        """Verify anything outside the grammar raises FormulaError"""
        with pytest.raises(FormulaError):
            compile_formula(source)

    def test_syntax_error_wrapped(self):
        """Verify Python syntax errors surface as FormulaError"""
        with pytest.raises(FormulaError):
            compile_formula("offer.zone_id +")

    def test_modulo_by_zero_constant(self):
        """Verify modulo by a zero constant fails at compile time"""
        with pytest.raises(DivisionByZeroError):
            compile_formula("request.app_id % zones", {"zones": 0})

    def test_reserved_constant_name(self):
        """Verify constants cannot shadow records or count"""
        with pytest.raises(FormulaError):
            compile_formula("1", {"offer": 1})


class TestFormulaEvaluation:
    """Test evaluation failures"""

    def test_division_by_zero(self):
        """Verify division by zero raises DivisionByZeroError"""
        formula = compile_formula("offer.available_memory_mb / offer.total_memory_mb")
        offer = make_offer(available_memory_mb=0, total_memory_mb=0)

        with pytest.raises(DivisionByZeroError) as exc_info:
            formula.evaluate(make_request(), offer)

        assert isinstance(exc_info.value, FormulaError)
        assert isinstance(exc_info.value, ZeroDivisionError)

    def test_gas_limit(self):
        """Verify gas exhaustion raises GasExceededError"""
        formula = compile_formula("count(request.app_id, offer.running_app_ids)")
        offer = make_offer(running_app_ids=tuple(range(100)))

        assert formula.evaluate(make_request(), offer, gas_limit=1000) == 1
        with pytest.raises(GasExceededError):
            formula.evaluate(make_request(), offer, gas_limit=50)

    def test_gas_meter_costs(self):
        """Verify per-operation gas costs"""
        meter = GasMeter(gas_limit=100)
        meter.consume_constant()
        meter.consume_field_access("offer.zone_id")
        meter.consume_arithmetic("+")
        meter.consume_count(3)

        assert meter.used == 1 + 1 + 2 + 8

        with pytest.raises(GasExceededError):
            meter.consume_count(100)


class TestRecommendedFormula:
    """Test the recommended objective"""

    def test_compiles_on_its_own(self):
        """The multi-line default formula parses as one expression"""
        formula = compile_formula(RECOMMENDED_FORMULA, make_config().constants())

        assert formula.evaluate(make_request(), make_offer()) == pytest.approx(2.35)

    def test_cache_bonus_outweighs_memory(self):
        """Two workers in the same zone: the cached artifact wins"""
        evaluator = ObjectiveEvaluator(make_config())
        request = make_request(required_memory_mb=512, stack="lucid64")

        w1 = make_offer(available_memory_mb=4096, stack="lucid64")
        w2 = make_offer(available_memory_mb=2048, stack="lucid64", cached_artifact_ids={"A"})

        assert evaluator.score(request, w1) == pytest.approx(2.35)
        assert evaluator.score(request, w2) == pytest.approx(2.675)

    def test_spread_term(self):
        """Verify instances already running lower the score"""
        evaluator = ObjectiveEvaluator(make_config())
        request = make_request(total_instances=4)

        empty = evaluator.score(request, make_offer())
        crowded = evaluator.score(request, make_offer(running_app_ids=(0, 0)))

        assert empty - crowded == pytest.approx(0.1 * 2 / 4)

    def test_zone_rotation(self):
        """Instances 0..Z-1 of one app each prefer a different zone"""
        zones = 4
        evaluator = ObjectiveEvaluator(make_config(zones=zones))
        preferred = set()

        for instance in range(zones):
            request = make_request(app_id=3, instance_number=instance, total_instances=zones)
            scores = {
                zone: evaluator.score(request, make_offer(zone_id=zone))
                for zone in range(zones)
            }
            preferred.add(max(scores, key=scores.get))

        assert preferred == set(range(zones))

    def test_zone_preference_dominates(self):
        """A worse offer in a preferred zone beats a better one elsewhere"""
        evaluator = ObjectiveEvaluator(make_config())
        request = make_request()

        preferred = make_offer(zone_id=1, available_memory_mb=0, available_disk_mb=0)
        other = make_offer(zone_id=0, available_memory_mb=8192, available_disk_mb=20480,
                           cached_artifact_ids={"A"})

        assert evaluator.score(request, preferred) > evaluator.score(request, other)

    def test_monotonic_in_memory(self):
        """More available memory never lowers the score"""
        evaluator = ObjectiveEvaluator(make_config())
        request = make_request()

        scores = [
            evaluator.score(request, make_offer(available_memory_mb=memory))
            for memory in range(0, 8193, 1024)
        ]

        assert scores == sorted(scores)

    def test_zone_preference_helper(self):
        evaluator = ObjectiveEvaluator(make_config(zones=3))

        assert evaluator.zone_preference(make_request(app_id=1, instance_number=0), 1) == 3

    def test_zero_total_is_formula_error(self):
        """Verify a worker reporting zero totals fails scoring"""
        evaluator = ObjectiveEvaluator(make_config())
        offer = make_offer(available_memory_mb=0, total_memory_mb=0)

        with pytest.raises(FormulaError):
            evaluator.score(make_request(), offer)

    def test_extra_constants(self):
        """Verify custom formulas can use extra constants"""
        config = make_config(formula="bias + offer.zone_id")
        evaluator = ObjectiveEvaluator(config, extra_constants={"bias": 10})

        assert evaluator.score(make_request(), make_offer()) == pytest.approx(11)


class TestObjectiveConfig:
    """Test objective configuration validation"""

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ConfigError):
            make_config(alpha=0.5)

    def test_tolerance(self):
        """Verify float rounding within 1e-9 is accepted"""
        config = make_config(alpha=0.1, beta=0.2, gamma=0.3, delta=0.4)

        assert sum(config.weights().values()) == pytest.approx(1.0)

    def test_negative_weight(self):
        with pytest.raises(ConfigError):
            make_config(alpha=1.1, beta=-0.1, gamma=0.0, delta=0.0)

    @pytest.mark.parametrize("value", [float("nan"), float("inf")])
    def test_non_finite_weight(self, value):
        with pytest.raises(ConfigError):
            make_config(alpha=value)

    def test_nan_weight_from_env(self, monkeypatch):
        monkeypatch.setenv("OBJECTIVE_WEIGHTS", "nan,0.3,0.2,0.1")
        monkeypatch.setenv("OBJECTIVE_ZONES", "2")

        with pytest.raises(ConfigError):
            ObjectiveConfig.from_env()

    def test_zones_positive(self):
        with pytest.raises(ConfigError):
            make_config(zones=0)

    def test_bad_formula_fails_evaluator(self):
        """Verify a formula outside the grammar fails at construction"""
        with pytest.raises(FormulaError):
            ObjectiveEvaluator(make_config(formula="offer.zone_id > 1"))

    def test_from_env(self, monkeypatch):
        """Verify configuration from environment variables"""
        monkeypatch.setenv("OBJECTIVE_WEIGHTS", "0.25,0.25,0.25,0.25")
        monkeypatch.setenv("OBJECTIVE_ZONES", "3")
        monkeypatch.setenv("OBJECTIVE_GAS_LIMIT", "500")
        monkeypatch.delenv("OBJECTIVE_FORMULA", raising=False)

        config = ObjectiveConfig.from_env()

        assert config.zones == 3
        assert config.alpha == 0.25
        assert config.gas_limit == 500

    def test_from_env_requires_weights(self, monkeypatch):
        """Verify weights have no default"""
        monkeypatch.delenv("OBJECTIVE_WEIGHTS", raising=False)
        monkeypatch.setenv("OBJECTIVE_ZONES", "3")

        with pytest.raises(ConfigError):
            ObjectiveConfig.from_env()

    def test_from_env_bad_number(self, monkeypatch):
        monkeypatch.setenv("OBJECTIVE_WEIGHTS", "a,b,c,d")
        monkeypatch.setenv("OBJECTIVE_ZONES", "3")

        with pytest.raises(ConfigError):
            ObjectiveConfig.from_env()
