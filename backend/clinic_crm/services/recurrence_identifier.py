"""
Identificação de recorrências.

Procura pacientes cujo último procedimento recorrente está por vencer ou
vencido, e cria/atualiza os leads correspondentes no pipeline Farmer, no
estágio da urgência. Pode distribuir os novos leads em rodízio e avisar os
administradores (modo cron).
"""
import logging
from dataclasses import dataclass, asdict
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple
from sqlmodel import Session, select
from clinic_crm.models import (
    CrmLead, CrmPipeline, CrmStage, CrmNotification,
    RecurrentProcedure, RevenueRecord, User, UserRole, utc_now,
)
from clinic_crm.services.assignment import plan_round_robin
from clinic_crm.services.lead_store import LeadStore
from clinic_crm.services.urgency import UrgencyLevel, classify_urgency, temperature_for_urgency
from clinic_crm.services.whatsapp import generate_recurrence_script

logger = logging.getLogger(__name__)

INSERT_CHUNK_SIZE = 50

# Trecho do nome do estágio -> urgência
STAGE_NAME_MARKERS = {
    UrgencyLevel.UPCOMING: "Por Vencer",
    UrgencyLevel.OVERDUE: "Vencido Recente",
    UrgencyLevel.CRITICAL: "Vencido Crítico",
}


class RecurrenceSetupError(Exception):
    """Pipeline Farmer ou estágios de recorrência ausentes"""


@dataclass
class RecurrenceOpportunity:
    patient_cpf: Optional[str]
    patient_name: Optional[str]
    patient_phone: Optional[str]
    patient_email: Optional[str]
    patient_prontuario: Optional[str]
    procedure_name: str
    procedure_group: str
    last_procedure_date: date
    recurrence_days: int
    due_date: date
    days_overdue: int
    urgency_level: UrgencyLevel
    whatsapp_script: str
    existing_lead_id: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["last_procedure_date"] = self.last_procedure_date.isoformat()
        data["due_date"] = self.due_date.isoformat()
        data["urgency_level"] = self.urgency_level.value
        return data


def _patient_key(record: RevenueRecord) -> Optional[str]:
    for value in (record.patient_cpf, record.patient_prontuario, record.patient_name):
        if value and value.strip():
            return value.strip().lower()
    return None


def match_procedure(
    procedure_name: Optional[str],
    procedures: List[RecurrentProcedure],
) -> Optional[RecurrentProcedure]:
    """Procedimento recorrente cujo nome aparece no lançamento; o nome mais longo vence"""
    if not procedure_name:
        return None
    name = procedure_name.lower()
    candidates = [p for p in procedures if p.procedure_name and p.procedure_name.lower() in name]
    if not candidates:
        return None
    return max(candidates, key=lambda p: len(p.procedure_name))


def find_opportunities(
    session: Session,
    days_ahead: int = 30,
    limit: int = 100,
    year_from: int = 2024,
    today: Optional[date] = None,
) -> List[RecurrenceOpportunity]:
    today = today or date.today()
    procedures = session.exec(
        select(RecurrentProcedure).where(RecurrentProcedure.is_active == True)  # noqa: E712
    ).all()
    if not procedures:
        logger.warning("⚠️ [RECORRÊNCIA] Nenhum procedimento recorrente ativo cadastrado")
        return []

    records = session.exec(
        select(RevenueRecord).where(
            RevenueRecord.date >= date(year_from, 1, 1),
            RevenueRecord.procedure_name.is_not(None),
        )
    ).all()

    # Último procedimento por (paciente, grupo)
    latest: Dict[Tuple[str, str], Tuple[RevenueRecord, RecurrentProcedure]] = {}
    for record in records:
        procedure = match_procedure(record.procedure_name, procedures)
        patient_key = _patient_key(record)
        if not procedure or not patient_key:
            continue
        key = (patient_key, procedure.group_name)
        current = latest.get(key)
        if current is None or record.date > current[0].date:
            latest[key] = (record, procedure)

    opportunities = []
    for record, procedure in latest.values():
        due_date = record.date + timedelta(days=procedure.recurrence_days)
        days_overdue = (today - due_date).days
        if days_overdue < -days_ahead:
            continue
        opportunities.append(RecurrenceOpportunity(
            patient_cpf=record.patient_cpf,
            patient_name=record.patient_name,
            patient_phone=record.patient_phone,
            patient_email=record.patient_email,
            patient_prontuario=record.patient_prontuario,
            procedure_name=record.procedure_name,
            procedure_group=procedure.group_name,
            last_procedure_date=record.date,
            recurrence_days=procedure.recurrence_days,
            due_date=due_date,
            days_overdue=days_overdue,
            urgency_level=classify_urgency(days_overdue),
            whatsapp_script=generate_recurrence_script(
                record.patient_name, record.procedure_name, procedure.script_whatsapp
            ),
        ))

    opportunities.sort(key=lambda o: (-o.days_overdue, o.patient_name or ""))
    opportunities = opportunities[:limit]

    # Leads já existentes para o mesmo CPF são atualizados em vez de duplicados
    cpfs = [o.patient_cpf for o in opportunities if o.patient_cpf]
    if cpfs:
        existing = session.exec(select(CrmLead).where(CrmLead.cpf.in_(cpfs))).all()
        lead_by_cpf = {lead.cpf: lead.id for lead in existing}
        for opportunity in opportunities:
            opportunity.existing_lead_id = lead_by_cpf.get(opportunity.patient_cpf)

    return opportunities


def _recurrence_stage_map(session: Session) -> Tuple[CrmPipeline, Dict[UrgencyLevel, Optional[str]]]:
    pipeline = session.exec(
        select(CrmPipeline).where(CrmPipeline.pipeline_type == "farmer")
    ).first()
    if not pipeline:
        raise RecurrenceSetupError("Pipeline Farmer não encontrado")

    stages = [
        stage for stage in session.exec(
            select(CrmStage).where(CrmStage.pipeline_id == pipeline.id)
        ).all()
        if "Recorrência" in stage.name
    ]
    stage_map = {
        urgency: next((s.id for s in stages if marker in s.name), None)
        for urgency, marker in STAGE_NAME_MARKERS.items()
    }
    logger.info(f"📊 [RECORRÊNCIA] Mapeamento de estágios: {stage_map}")

    if not any(stage_map.values()):
        raise RecurrenceSetupError("Estágios de recorrência não encontrados no pipeline Farmer")
    return pipeline, stage_map


def _build_notes(opportunity: RecurrenceOpportunity) -> str:
    notes = (
        f"📅 Último: {opportunity.procedure_name} em {opportunity.last_procedure_date.isoformat()}\n"
        f"⏰ Venc: {opportunity.due_date.isoformat()}\n"
    )
    if opportunity.days_overdue > 0:
        return notes + f"⚠️ Atrasado: {opportunity.days_overdue}d"
    return notes + f"📌 Faltam: {abs(opportunity.days_overdue)}d"


def _notify_admins(session: Session, stats: dict) -> int:
    admins = session.exec(select(User).where(User.role == UserRole.ADMIN)).all()
    for admin in admins:
        session.add(CrmNotification(
            user_id=admin.id,
            notification_type="recurrence_alert",
            title="🔄 Recorrências Identificadas",
            message=f"{stats['leadsCreated']} novos leads criados, {stats['critical']} em estado crítico",
        ))
    if admins:
        session.commit()
    return len(admins)


def identify_recurrences(
    session: Session,
    days_ahead: int = 30,
    limit: int = 100,
    create_leads: bool = True,
    year_from: int = 2024,
    auto_assign: bool = False,
    notify_team: bool = False,
    source: str = "recurrence_system",
    today: Optional[date] = None,
) -> dict:
    logger.info(
        f"🔄 [RECORRÊNCIA] Identificando oportunidades (daysAhead: {days_ahead}, "
        f"limit: {limit}, yearFrom: {year_from})"
    )
    pipeline, stage_map = _recurrence_stage_map(session)
    opportunities = find_opportunities(session, days_ahead, limit, year_from, today)
    logger.info(f"📋 [RECORRÊNCIA] {len(opportunities)} oportunidade(s) encontrada(s)")

    stats = {
        "total": len(opportunities),
        "upcoming": 0,
        "overdue": 0,
        "critical": 0,
        "leadsCreated": 0,
        "leadsUpdated": 0,
        "notificationsSent": 0,
        "errors": 0,
    }

    if not create_leads or not opportunities:
        return {
            "success": True,
            "message": "Identificação concluída (sem criação de leads)",
            "stats": stats,
            "opportunities": [o.to_dict() for o in opportunities],
        }

    rows = []
    for opportunity in opportunities:
        stats[opportunity.urgency_level.value] += 1
        stage_id = stage_map.get(opportunity.urgency_level)
        if stage_id:
            rows.append((opportunity, stage_id))

    existing_ids = [o.existing_lead_id for o, _ in rows if o.existing_lead_id]
    existing_leads = {lead.id: lead for lead in LeadStore(session).get_leads(existing_ids)}

    # Rodízio apenas para quem ainda não tem responsável
    assignees: Dict[int, str] = {}
    if auto_assign:
        roster = LeadStore(session).list_roster()
        needs_owner = [
            index for index, (o, _) in enumerate(rows)
            if not (o.existing_lead_id in existing_leads and existing_leads[o.existing_lead_id].assigned_to)
        ]
        assignees = {index: member.id for index, member in plan_round_robin(needs_owner, roster)}

    now = utc_now()
    inserts: List[CrmLead] = []
    for index, (opportunity, stage_id) in enumerate(rows):
        lead_data = {
            "pipeline_id": pipeline.id,
            "stage_id": stage_id,
            "is_recurrence_lead": True,
            "last_procedure_date": opportunity.last_procedure_date,
            "last_procedure_name": opportunity.procedure_name,
            "recurrence_due_date": opportunity.due_date,
            "recurrence_days_overdue": opportunity.days_overdue,
            "recurrence_group": opportunity.procedure_group,
            "last_activity_at": now,
            "updated_at": now,
        }
        if index in assignees:
            lead_data["assigned_to"] = assignees[index]

        lead = existing_leads.get(opportunity.existing_lead_id)
        if lead:
            try:
                for field_name, value in lead_data.items():
                    setattr(lead, field_name, value)
                session.add(lead)
                session.commit()
                stats["leadsUpdated"] += 1
            except Exception as e:
                session.rollback()
                stats["errors"] += 1
                logger.error(f"❌ [RECORRÊNCIA] Erro ao atualizar lead {lead.id}: {e}")
        else:
            inserts.append(CrmLead(
                name=opportunity.patient_name or "Paciente Recorrência",
                phone=opportunity.patient_phone,
                email=opportunity.patient_email,
                cpf=opportunity.patient_cpf,
                prontuario=opportunity.patient_prontuario,
                source=source,
                source_detail=f"Recorrência: {opportunity.procedure_name}",
                temperature=temperature_for_urgency(opportunity.urgency_level),
                notes=_build_notes(opportunity),
                **lead_data,
            ))

    for start in range(0, len(inserts), INSERT_CHUNK_SIZE):
        chunk = inserts[start:start + INSERT_CHUNK_SIZE]
        try:
            session.add_all(chunk)
            session.commit()
            stats["leadsCreated"] += len(chunk)
        except Exception as e:
            session.rollback()
            stats["errors"] += len(chunk)
            logger.error(f"❌ [RECORRÊNCIA] Erro ao inserir lote de {len(chunk)} lead(s): {e}")

    if notify_team and (stats["leadsCreated"] > 0 or stats["critical"] > 0):
        stats["notificationsSent"] = _notify_admins(session, stats)

    logger.info(f"✅ [RECORRÊNCIA] Processamento concluído: {stats}")
    return {
        "success": True,
        "message": f"{stats['leadsCreated']} criados, {stats['leadsUpdated']} atualizados",
        "stats": stats,
    }
