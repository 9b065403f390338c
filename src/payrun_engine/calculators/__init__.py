"""Payroll calculation engine."""

from payrun_engine.calculators.breakdown_builder import BreakdownBuilder, BreakdownCandidate
from payrun_engine.calculators.contribution import ContributionCalculator, get_contribution
from payrun_engine.calculators.eligibility import EligibilityFilter, LinkedRecordNotFoundError
from payrun_engine.calculators.engine import CalculationResult, PayrollEngine
from payrun_engine.calculators.expression import EvaluationError, calculate_all_payheads
from payrun_engine.calculators.undertime import get_undertime_total

__all__ = [
    "PayrollEngine",
    "CalculationResult",
    "BreakdownBuilder",
    "BreakdownCandidate",
    "ContributionCalculator",
    "get_contribution",
    "EligibilityFilter",
    "LinkedRecordNotFoundError",
    "EvaluationError",
    "calculate_all_payheads",
    "get_undertime_total",
]
