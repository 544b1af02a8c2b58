"""
Acompanhamento das metas de procedimentos (Meta1/Meta2/Meta3).

O vendido líquido é o faturamento do mês menos os cancelamentos efetivados
no mês. As metas são a soma das metas por departamento; sem metas
cadastradas usam-se os valores padrão da configuração.
"""
import logging
from datetime import date
from typing import List, Optional
from sqlmodel import Session, select
from clinic_crm.config import settings
from clinic_crm.models import Cancellation, CancellationStatus, DepartmentGoal, RevenueRecord
from clinic_crm.services.goal_calculator import (
    business_days_remaining,
    calculate_goal_remaining,
    calendar_days_remaining,
    month_bounds,
)

logger = logging.getLogger(__name__)

# Cancelamentos que reduzem o faturamento
EFFECTIVE_CANCELLATION_STATUSES = [
    CancellationStatus.CANCELLED_WITH_FINE,
    CancellationStatus.CANCELLED_NO_FINE,
    CancellationStatus.CREDIT_USED,
]


def normalize_department_name(department: Optional[str]) -> str:
    """Agrupa as variações de nome de departamento usadas no faturamento"""
    if not department:
        return "Outros"
    d = department.lower().strip()

    if "consulta" in d and "cirurgia" in d:
        return "Consultas Cirurgia"
    if "cirurgia" in d and "plástica" in d:
        return "Cirurgia Plástica"
    if "pós" in d or "pos" in d:
        return "Pós Operatório"
    if "soro" in d or "nutri" in d:
        return "Soroterapia"
    if "harmoni" in d:
        return "Harmonização"
    if "spa" in d or "estét" in d:
        return "Spa & Estética"
    if "travel" in d:
        return "Unique Travel"
    if "luxskin" in d:
        return "Luxskin"
    return department


def _belongs_to_department(record_department: Optional[str], goal_name: str) -> bool:
    first_word = goal_name.lower().split(" ")[0]
    if record_department and first_word in record_department.lower():
        return True
    return normalize_department_name(record_department) == goal_name


def department_breakdown(
    goals: List[DepartmentGoal],
    records: List[RevenueRecord],
    days_remaining: int,
    business_days: int,
) -> List[dict]:
    """Progresso da Meta1 por departamento, do mais atrasado ao mais adiantado"""
    breakdown = []
    for goal in goals:
        if goal.meta1_goal <= 0:
            continue
        dept_records = [r for r in records if _belongs_to_department(r.department, goal.department_name)]
        revenue = sum(r.amount for r in dept_records)
        avg_ticket = revenue / len(dept_records) if dept_records else settings.default_avg_ticket
        result = calculate_goal_remaining(goal.meta1_goal, revenue, avg_ticket, days_remaining, business_days)
        breakdown.append({
            "name": goal.department_name,
            "short_name": " ".join(goal.department_name.split(" ")[:2]),
            "revenue": revenue,
            "count": len(dept_records),
            "meta": goal.meta1_goal,
            "remaining": result.remaining,
            "procedures_needed": result.required_units,
            "avg_ticket": round(avg_ticket, 2),
            "percent": round(result.percent_complete, 2),
            "per_day": round(result.per_calendar_day, 2),
            "procedures_per_day": round(result.units_per_calendar_day, 2),
        })
    breakdown.sort(key=lambda item: item["percent"])
    return breakdown


def get_procedures_goal_progress(
    session: Session,
    month: int,
    year: int,
    today: Optional[date] = None,
) -> dict:
    today = today or date.today()
    start_date, end_date = month_bounds(year, month)

    goals = list(session.exec(
        select(DepartmentGoal).where(DepartmentGoal.month == month, DepartmentGoal.year == year)
    ).all())
    records = list(session.exec(
        select(RevenueRecord).where(RevenueRecord.date >= start_date, RevenueRecord.date <= end_date)
    ).all())
    cancellations = session.exec(
        select(Cancellation).where(
            Cancellation.cancellation_request_date >= start_date,
            Cancellation.cancellation_request_date <= end_date,
            Cancellation.status.in_(EFFECTIVE_CANCELLATION_STATUSES),
        )
    ).all()

    total_sold = sum(r.amount for r in records)
    total_cancelled = sum(c.contract_value for c in cancellations)
    net_sold = total_sold - total_cancelled
    procedure_count = len(records)
    avg_ticket = total_sold / procedure_count if procedure_count > 0 else settings.default_avg_ticket

    # Soma zero (ou nenhuma meta) cai no padrão
    meta1 = sum(g.meta1_goal for g in goals) or settings.default_meta1
    meta2 = sum(g.meta2_goal for g in goals) or settings.default_meta2
    meta3 = sum(g.meta3_goal for g in goals) or settings.default_meta3

    days_remaining = calendar_days_remaining(year, month, today)
    business_days = business_days_remaining(year, month, today)

    tiers = {
        name: calculate_goal_remaining(goal, net_sold, avg_ticket, days_remaining, business_days).to_dict()
        for name, goal in (("meta1", meta1), ("meta2", meta2), ("meta3", meta3))
    }

    logger.info(
        f"🎯 [METAS] {month:02d}/{year}: líquido {net_sold:.2f} em {procedure_count} procedimento(s)"
    )
    return {
        "month": month,
        "year": year,
        "is_current_month": today.month == month and today.year == year,
        "total_sold": total_sold,
        "total_cancelled": total_cancelled,
        "net_sold": net_sold,
        "procedure_count": procedure_count,
        "avg_ticket": round(avg_ticket, 2),
        "days_remaining": days_remaining,
        "business_days_remaining": business_days,
        "tiers": tiers,
        "departments": department_breakdown(goals, records, days_remaining, business_days),
    }
