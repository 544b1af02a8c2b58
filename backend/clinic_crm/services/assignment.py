"""Distribuição automática de leads de recorrência em rodízio"""
import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple, TypeVar
from clinic_crm.models import CrmLead, RosterMember

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class AssignmentResult:
    assigned_count: int
    total: int
    failed_count: int = 0

    def to_dict(self) -> dict:
        return {
            "assignedCount": self.assigned_count,
            "total": self.total,
            "failedCount": self.failed_count,
        }


def plan_round_robin(
    unassigned: Sequence[T],
    roster: Sequence[RosterMember],
) -> List[Tuple[T, RosterMember]]:
    """O i-ésimo lead vai para roster[i % len(roster)], sem considerar carga atual"""
    if not roster:
        return []
    return [(lead, roster[index % len(roster)]) for index, lead in enumerate(unassigned)]


def auto_assign(store, leads: Sequence[CrmLead], roster: Sequence[RosterMember]) -> AssignmentResult:
    """
    Atribui os leads sem responsável, um update por lead.

    Falhas individuais são contadas e não interrompem o lote. Não há trava
    contra duas execuções simultâneas sobre o mesmo conjunto.
    """
    unassigned = [lead for lead in leads if not lead.assigned_to]
    result = AssignmentResult(assigned_count=0, total=len(unassigned))

    if not roster:
        logger.warning(f"⚠️ [AUTO-ASSIGN] Nenhum vendedor elegível para {len(unassigned)} lead(s)")
        return result

    logger.info(f"🔄 [AUTO-ASSIGN] Distribuindo {len(unassigned)} lead(s) entre {len(roster)} vendedor(es)")

    for lead, member in plan_round_robin(unassigned, roster):
        try:
            store.update_assignment(lead.id, member.id)
            result.assigned_count += 1
        except Exception as e:
            result.failed_count += 1
            logger.error(f"❌ [AUTO-ASSIGN] Erro ao atribuir lead {lead.id} a {member.id}: {e}")

    logger.info(f"✅ [AUTO-ASSIGN] {result.assigned_count}/{result.total} lead(s) atribuído(s)")
    return result
