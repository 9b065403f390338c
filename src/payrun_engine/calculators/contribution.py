"""Benefit contribution calculation using flat rates or bracket tables."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal

from payrun_engine.calculators.types import ContributionBracketTable, ContributionSetting

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENTS = Decimal("0.01")


class ConfigurationError(Exception):
    """Raised when a contribution setting cannot produce a contribution."""

    def __init__(self, plan_id: int, reason: str):
        self.plan_id = plan_id
        self.reason = reason
        super().__init__(f"Benefit plan {plan_id} is misconfigured: {reason}")


@dataclass(frozen=True)
class ContributionResult:
    """Full contribution split for one salary."""

    salary: Decimal
    msc: Decimal  # monthly salary credit (equals salary in flat mode)
    employee_share: Decimal
    employer_share: Decimal
    wisp_employee: Decimal = ZERO
    wisp_employer: Decimal = ZERO
    ec_contribution: Decimal = ZERO  # employer only

    @property
    def employee_total(self) -> Decimal:
        return self.employee_share + self.wisp_employee

    @property
    def employer_total(self) -> Decimal:
        return self.employer_share + self.wisp_employer + self.ec_contribution


def _percent(amount: Decimal, rate: Decimal | None) -> Decimal:
    if not rate:
        return ZERO
    return (amount * rate / HUNDRED).quantize(CENTS, rounding=ROUND_HALF_UP)


class ContributionCalculator:
    """Calculates employee/employer contributions for one benefit plan.

    Mode selection:
    - bracket table with a minimum MSC: bracket mode
    - bracket table without a minimum MSC: flat mode with the table's rates
    - no bracket table: flat mode with the plan's own percentages
    - nothing usable: ConfigurationError, logged, contribution 0

    Bracket mode maps salary to a monthly salary credit (MSC):

        salary <= min_salary  -> min_msc
        salary >= max_salary  -> max_msc
        otherwise             -> min_msc + (floor((salary - min_salary) / step) + 1) * step

    The credit up to ``wisp_threshold`` is charged at the regular rates, the
    excess is the WISP component. EC is employer-only, charged at the low rate
    below ``ec_threshold`` and the high rate from it upward.
    """

    def __init__(self, setting: ContributionSetting):
        self.setting = setting

    def get_contribution(self, salary: Decimal) -> Decimal:
        """Employee share (including WISP) for a salary. Never raises."""
        try:
            return self.calculate(salary).employee_total
        except ConfigurationError as e:
            logger.warning("Contribution set to 0: %s", e)
            return ZERO
        except (ArithmeticError, TypeError, ValueError):
            logger.exception(
                "Contribution set to 0: benefit plan %s failed for salary %s",
                self.setting.id,
                salary,
            )
            return ZERO

    def calculate(self, salary: Decimal) -> ContributionResult:
        """Full contribution split.

        Raises:
            ConfigurationError: if the plan has neither a bracket table nor rates
        """
        salary = Decimal(salary)
        table = self.setting.table

        if salary <= 0:
            logger.debug("Benefit plan %s: non-positive salary %s", self.setting.id, salary)
            return ContributionResult(salary=salary, msc=ZERO, employee_share=ZERO, employer_share=ZERO)

        if table is not None and table.min_msc:
            return self._calculate_bracket(salary, table)

        if table is not None:
            return self._calculate_flat(salary, table.employee_rate, table.employer_rate)

        if self.setting.employee_rate is None and self.setting.employer_rate is None:
            raise ConfigurationError(self.setting.id, "no contribution table and no flat rates")

        return self._calculate_flat(salary, self.setting.employee_rate, self.setting.employer_rate)

    def _calculate_flat(
        self,
        salary: Decimal,
        employee_rate: Decimal | None,
        employer_rate: Decimal | None,
    ) -> ContributionResult:
        """Straight percentages of salary."""
        return ContributionResult(
            salary=salary,
            msc=salary,
            employee_share=_percent(salary, employee_rate),
            employer_share=_percent(salary, employer_rate),
        )

    def _calculate_bracket(
        self, salary: Decimal, table: ContributionBracketTable
    ) -> ContributionResult:
        """Contribution from the monthly salary credit bucket."""
        msc = self.monthly_salary_credit(salary, table)

        regular_msc = msc
        wisp_msc = ZERO
        if table.wisp_threshold and msc > table.wisp_threshold:
            regular_msc = table.wisp_threshold
            wisp_msc = msc - table.wisp_threshold

        if table.ec_threshold is not None and msc < table.ec_threshold:
            ec_rate = table.ec_low_rate
        else:
            ec_rate = table.ec_high_rate

        return ContributionResult(
            salary=salary,
            msc=msc,
            employee_share=_percent(regular_msc, table.employee_rate),
            employer_share=_percent(regular_msc, table.employer_rate),
            wisp_employee=_percent(wisp_msc, table.employee_rate),
            wisp_employer=_percent(wisp_msc, table.employer_rate),
            ec_contribution=_percent(msc, ec_rate),
        )

    def monthly_salary_credit(self, salary: Decimal, table: ContributionBracketTable) -> Decimal:
        """Map a salary to its MSC bucket, clamped to the table's range."""
        min_msc = table.min_msc or ZERO
        max_msc = table.max_msc if table.max_msc is not None else min_msc
        min_salary = table.min_salary or ZERO
        step = table.msc_step

        if not step or step <= 0:
            raise ConfigurationError(self.setting.id, f"invalid MSC step {step}")
        if max_msc < min_msc:
            raise ConfigurationError(self.setting.id, "max MSC is below min MSC")

        if salary <= min_salary:
            return min_msc
        if table.max_salary is not None and salary >= table.max_salary:
            return max_msc

        steps = ((salary - min_salary) / step).to_integral_value(rounding=ROUND_FLOOR) + 1
        msc = min_msc + steps * step
        return min(max(msc, min_msc), max_msc)


def get_contribution(salary: Decimal, setting: ContributionSetting) -> Decimal:
    """Employee contribution share for a salary under a benefit plan."""
    return ContributionCalculator(setting).get_contribution(salary)
