"""Resumo dos leads de recorrência para os cards do painel"""
from datetime import date
from typing import Dict
from sqlmodel import Session, select
from clinic_crm.models import CrmLead
from clinic_crm.services.urgency import CRITICAL_THRESHOLD_DAYS

UPCOMING_WINDOW_DAYS = 30


def get_recurrence_stats(session: Session, year_from: int = 2024) -> dict:
    """
    Conta os leads de recorrência cujo último procedimento é de `year_from` em diante.

    - upcoming_30_days: vence nos próximos 30 dias (ou hoje)
    - overdue_recent: 1 a 59 dias de atraso
    - overdue_critical: 60 dias ou mais
    """
    leads = session.exec(
        select(CrmLead).where(
            CrmLead.is_recurrence_lead == True,  # noqa: E712
            CrmLead.last_procedure_date >= date(year_from, 1, 1),
        )
    ).all()

    upcoming = overdue_recent = overdue_critical = 0
    by_group: Dict[str, int] = {}
    for lead in leads:
        days = lead.recurrence_days_overdue or 0
        if -UPCOMING_WINDOW_DAYS <= days <= 0:
            upcoming += 1
        elif 1 <= days < CRITICAL_THRESHOLD_DAYS:
            overdue_recent += 1
        elif days >= CRITICAL_THRESHOLD_DAYS:
            overdue_critical += 1

        group = lead.recurrence_group or "Sem grupo"
        by_group[group] = by_group.get(group, 0) + 1

    return {
        "total_pending": len(leads),
        "upcoming_30_days": upcoming,
        "overdue_recent": overdue_recent,
        "overdue_critical": overdue_critical,
        "by_procedure_group": dict(sorted(by_group.items(), key=lambda item: (-item[1], item[0]))),
    }
