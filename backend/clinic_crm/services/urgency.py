"""Classificação de urgência de recorrências a partir dos dias em atraso"""
from enum import Enum
from typing import Optional
from clinic_crm.models import LeadTemperature

CRITICAL_THRESHOLD_DAYS = 60


class UrgencyLevel(str, Enum):
    CRITICAL = "critical"
    OVERDUE = "overdue"
    UPCOMING = "upcoming"


def classify_urgency(days_overdue: Optional[int]) -> UrgencyLevel:
    """
    Retorna o bucket de urgência:
    - >= 60 dias: crítico
    - 1 a 59 dias: vencido
    - <= 0: por vencer (o dia do vencimento ainda conta como por vencer)
    """
    days = days_overdue or 0
    if days >= CRITICAL_THRESHOLD_DAYS:
        return UrgencyLevel.CRITICAL
    if days >= 1:
        return UrgencyLevel.OVERDUE
    return UrgencyLevel.UPCOMING


def temperature_for_urgency(urgency: UrgencyLevel) -> LeadTemperature:
    if urgency == UrgencyLevel.CRITICAL:
        return LeadTemperature.HOT
    if urgency == UrgencyLevel.OVERDUE:
        return LeadTemperature.WARM
    return LeadTemperature.COLD
