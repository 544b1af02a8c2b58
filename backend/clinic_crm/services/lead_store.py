"""Acesso a dados usado pelo painel de recorrências"""
import logging
from typing import Dict, List, Optional
from sqlmodel import Session, select
from clinic_crm.models import CrmLead, CrmStage, User, UserRole, RosterMember, utc_now

logger = logging.getLogger(__name__)


class LeadNotFoundError(LookupError):
    pass


class LeadStore:
    """
    Consultas e escritas do painel de recorrências.

    Os serviços recebem uma instância desta classe em vez de uma sessão, para
    que a lógica de distribuição possa ser testada com um store falso.
    """

    def __init__(self, session: Session):
        self.session = session

    def list_recurrence_leads(self, limit: int = 1000) -> List[CrmLead]:
        query = (
            select(CrmLead)
            .where(CrmLead.is_recurrence_lead == True)  # noqa: E712
            .order_by(CrmLead.recurrence_days_overdue.desc().nulls_last(), CrmLead.id)
            .limit(limit)
        )
        return list(self.session.exec(query).all())

    def get_leads(self, lead_ids: List[str]) -> List[CrmLead]:
        if not lead_ids:
            return []
        leads = self.session.exec(select(CrmLead).where(CrmLead.id.in_(lead_ids))).all()
        # Manter a ordem pedida pelo cliente
        by_id = {lead.id: lead for lead in leads}
        return [by_id[lead_id] for lead_id in lead_ids if lead_id in by_id]

    def get_lead(self, lead_id: str) -> CrmLead:
        lead = self.session.get(CrmLead, lead_id)
        if not lead:
            raise LeadNotFoundError(lead_id)
        return lead

    def list_roster(self) -> List[RosterMember]:
        """Vendedores aprovados e ativos, na ordem usada pelo rodízio"""
        users = self.session.exec(
            select(User)
            .where(
                User.role == UserRole.SELLER,
                User.is_approved == True,  # noqa: E712
                User.is_active == True,  # noqa: E712
            )
            .order_by(User.full_name, User.id)
        ).all()
        return [RosterMember(id=user.id, full_name=user.full_name, team_id=user.team_id) for user in users]

    def stages_by_id(self) -> Dict[str, CrmStage]:
        return {stage.id: stage for stage in self.session.exec(select(CrmStage)).all()}

    def update_assignment(self, lead_id: str, user_id: Optional[str]) -> CrmLead:
        lead = self.get_lead(lead_id)
        lead.assigned_to = user_id
        lead.updated_at = utc_now()
        self.session.add(lead)
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(lead)
        return lead
