"""Filtro multi-predicado da lista de recorrências"""
from enum import Enum
from typing import Iterable, List, Optional
from pydantic import BaseModel, Field
from clinic_crm.models import CrmLead
from clinic_crm.services.urgency import classify_urgency

ALL = "all"


class AssignmentFilter(str, Enum):
    ALL = "all"
    ASSIGNED = "assigned"
    UNASSIGNED = "unassigned"


class UrgencyFilter(str, Enum):
    ALL = "all"
    CRITICAL = "critical"
    OVERDUE = "overdue"
    UPCOMING = "upcoming"


class RecurrenceFilter(BaseModel):
    """Configuração de filtro; 'all' e busca vazia desativam o predicado"""
    search: str = Field("", description="Busca em nome, telefone, CPF ou procedimento")
    group: str = Field(ALL, description="Trecho do grupo de procedimento (ex: '04 - SOROTERAPIA')")
    urgency: UrgencyFilter = Field(UrgencyFilter.ALL)
    assignment: AssignmentFilter = Field(AssignmentFilter.ALL)


def _contains(value: Optional[str], needle: str) -> bool:
    return bool(value) and needle in value.lower()


def matches_search(lead: CrmLead, search: str) -> bool:
    if not search:
        return True
    needle = search.lower()
    return (
        _contains(lead.name, needle)
        or _contains(lead.phone, needle)
        or _contains(lead.cpf, needle)
        or _contains(lead.last_procedure_name, needle)
    )


def matches_group(lead: CrmLead, group: str) -> bool:
    if not group or group == ALL:
        return True
    # Contém, não igualdade: os grupos são rótulos compostos ('04 - SOROTERAPIA / IMPLANTES')
    return bool(lead.recurrence_group) and group in lead.recurrence_group


def matches_urgency(lead: CrmLead, urgency: UrgencyFilter) -> bool:
    if urgency == UrgencyFilter.ALL:
        return True
    return classify_urgency(lead.recurrence_days_overdue).value == urgency.value


def matches_assignment(lead: CrmLead, assignment: AssignmentFilter) -> bool:
    if assignment == AssignmentFilter.ASSIGNED:
        return bool(lead.assigned_to)
    if assignment == AssignmentFilter.UNASSIGNED:
        return not lead.assigned_to
    return True


def matches(lead: CrmLead, filters: RecurrenceFilter) -> bool:
    return (
        matches_search(lead, filters.search)
        and matches_group(lead, filters.group)
        and matches_urgency(lead, filters.urgency)
        and matches_assignment(lead, filters.assignment)
    )


def filter_leads(leads: Iterable[CrmLead], filters: RecurrenceFilter) -> List[CrmLead]:
    return [lead for lead in leads if matches(lead, filters)]
