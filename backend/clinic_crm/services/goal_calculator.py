"""
Cálculo do que falta para bater a meta.

Todas as telas de metas usam estas funções para contar dias úteis e dividir
o valor restante; não há outra implementação de contagem de dias no projeto.
"""
import calendar
import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional


@dataclass
class GoalRemaining:
    goal: float
    actual: float
    remaining: float
    required_units: int
    per_calendar_day: float
    per_business_day: float
    units_per_calendar_day: float
    units_per_business_day: float
    percent_complete: float

    def to_dict(self) -> dict:
        return {
            "goal": self.goal,
            "actual": self.actual,
            "remaining": self.remaining,
            "required_units": self.required_units,
            "per_calendar_day": round(self.per_calendar_day, 2),
            "per_business_day": round(self.per_business_day, 2),
            "units_per_calendar_day": round(self.units_per_calendar_day, 2),
            "units_per_business_day": round(self.units_per_business_day, 2),
            "percent_complete": round(self.percent_complete, 2),
        }


def calculate_goal_remaining(
    goal: float,
    actual: float,
    avg_unit_value: float,
    days_remaining: int,
    business_days_remaining: int,
) -> GoalRemaining:
    remaining = max(0.0, goal - actual)
    required_units = math.ceil(remaining / avg_unit_value) if avg_unit_value > 0 else 0
    calendar_days = max(days_remaining, 1)
    business_days = max(business_days_remaining, 1)
    percent = max(0.0, min(100.0, (actual / goal) * 100)) if goal > 0 else 0.0

    return GoalRemaining(
        goal=goal,
        actual=actual,
        remaining=remaining,
        required_units=required_units,
        per_calendar_day=remaining / calendar_days,
        per_business_day=remaining / business_days,
        units_per_calendar_day=required_units / calendar_days,
        units_per_business_day=required_units / business_days,
        percent_complete=percent,
    )


def month_bounds(year: int, month: int):
    """Primeiro e último dia do mês"""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def business_days_remaining(year: int, month: int, today: Optional[date] = None) -> int:
    """Dias úteis (segunda a sexta) de max(hoje, dia 1) até o fim do mês, no mínimo 1"""
    today = today or date.today()
    first_day, last_day = month_bounds(year, month)
    current = max(today, first_day)
    business_days = 0
    while current <= last_day:
        if current.weekday() < 5:
            business_days += 1
        current += timedelta(days=1)
    return max(business_days, 1)


def calendar_days_remaining(year: int, month: int, today: Optional[date] = None) -> int:
    today = today or date.today()
    first_day, last_day = month_bounds(year, month)
    if today < first_day:
        return last_day.day
    if today > last_day:
        return 1
    return max(1, last_day.day - today.day)
