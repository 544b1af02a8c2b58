import logging
from datetime import date
from typing import List, Optional
import pandas as pd
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse, Response
from sqlmodel import Session, select
from clinic_crm.config import settings
from clinic_crm.database import get_session
from clinic_crm.models import (
    User, CrmLead, CrmStage, RecurrentProcedure,
    RecurrenceLeadResponse, StageSummary, AssignLeadRequest,
    IdentifyRecurrencesRequest, WhatsAppDispatchRequest,
)
from clinic_crm.dependencies import get_current_active_user, get_query_cache, require_manager
from clinic_crm.routers.users import load_roster
from clinic_crm.services.assignment import auto_assign
from clinic_crm.services.lead_store import LeadStore, LeadNotFoundError
from clinic_crm.services.pagination import Paginator
from clinic_crm.services.query_cache import QueryCache
from clinic_crm.services.recurrence_filter import (
    AssignmentFilter, RecurrenceFilter, UrgencyFilter, filter_leads,
)
from clinic_crm.services.recurrence_identifier import (
    RecurrenceSetupError, identify_recurrences, match_procedure,
)
from clinic_crm.services.recurrence_stats import get_recurrence_stats
from clinic_crm.services.urgency import classify_urgency
from clinic_crm.services.whatsapp import (
    build_whatsapp_link, dispatch_batch, generate_recurrence_script, lead_phone,
)

router = APIRouter()
logger = logging.getLogger(__name__)

STATS_CACHE_KEY = ("recurrence-stats",)


def get_recurrence_filter(
    search: str = Query("", description="Busca em nome, telefone, CPF ou procedimento"),
    group: str = Query("all", description="Trecho do grupo de procedimento"),
    urgency: UrgencyFilter = Query(UrgencyFilter.ALL),
    assignment: AssignmentFilter = Query(AssignmentFilter.ALL),
) -> RecurrenceFilter:
    return RecurrenceFilter(search=search, group=group, urgency=urgency, assignment=assignment)


def _filtered_leads(session: Session, filters: RecurrenceFilter) -> List[CrmLead]:
    leads = LeadStore(session).list_recurrence_leads(limit=settings.recurrence_fetch_limit)
    return filter_leads(leads, filters)


def _to_response(lead: CrmLead, stages: dict) -> RecurrenceLeadResponse:
    stage: Optional[CrmStage] = stages.get(lead.stage_id)
    days_overdue = lead.recurrence_days_overdue or 0
    return RecurrenceLeadResponse(
        id=lead.id,
        name=lead.name,
        phone=lead.phone,
        whatsapp=lead.whatsapp,
        email=lead.email,
        cpf=lead.cpf,
        last_procedure_date=lead.last_procedure_date,
        last_procedure_name=lead.last_procedure_name,
        recurrence_due_date=lead.recurrence_due_date,
        recurrence_days_overdue=days_overdue,
        recurrence_group=lead.recurrence_group,
        temperature=lead.temperature,
        assigned_to=lead.assigned_to,
        urgency=classify_urgency(days_overdue).value,
        stage=StageSummary(name=stage.name, order_index=stage.order_index) if stage else None,
    )


@router.get("/leads", response_model=List[RecurrenceLeadResponse])
async def list_recurrence_leads(
    filters: RecurrenceFilter = Depends(get_recurrence_filter),
    page: int = Query(1, ge=1, description="Página (começa em 1)"),
    page_size: Optional[int] = Query(None, ge=1, le=500),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_active_user)
):
    """Leads de recorrência filtrados e paginados; total filtrado no header X-Total-Count"""
    leads = _filtered_leads(session, filters)
    paginator = Paginator(leads, page_size or settings.default_page_size)
    paginator.go_to_page(page - 1)

    stages = LeadStore(session).stages_by_id()
    leads_data = [_to_response(lead, stages).model_dump(mode="json") for lead in paginator.paginated_items]

    response = JSONResponse(content=leads_data)
    response.headers["X-Total-Count"] = str(paginator.total_count)
    response.headers["X-Total-Pages"] = str(paginator.total_pages)
    response.headers["X-Page"] = str(paginator.current_page + 1)
    return response


@router.get("/stats")
async def recurrence_stats(
    year_from: Optional[int] = Query(None, description="Ano inicial do último procedimento"),
    session: Session = Depends(get_session),
    cache: QueryCache = Depends(get_query_cache),
    current_user: User = Depends(get_current_active_user)
):
    year = year_from or settings.recurrence_year_from
    return cache.get(STATS_CACHE_KEY + (year,), lambda: get_recurrence_stats(session, year))


@router.post("/identify")
async def identify(
    payload: IdentifyRecurrencesRequest,
    session: Session = Depends(get_session),
    cache: QueryCache = Depends(get_query_cache),
    current_user: User = Depends(require_manager)
):
    """Busca recorrências no faturamento e cria/atualiza os leads no pipeline Farmer"""
    try:
        result = identify_recurrences(
            session,
            days_ahead=payload.days_ahead if payload.days_ahead is not None else settings.recurrence_days_ahead,
            limit=payload.limit or settings.recurrence_limit,
            create_leads=payload.create_leads,
            year_from=payload.year_from or settings.recurrence_year_from,
            auto_assign=payload.auto_assign,
            notify_team=payload.notify_team,
        )
    except RecurrenceSetupError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e)
        )

    if payload.create_leads:
        cache.invalidate(STATS_CACHE_KEY)
    return result


@router.post("/auto-assign")
async def auto_assign_leads(
    filters: RecurrenceFilter = Depends(get_recurrence_filter),
    session: Session = Depends(get_session),
    cache: QueryCache = Depends(get_query_cache),
    current_user: User = Depends(require_manager)
):
    """Distribui em rodízio os leads sem responsável que passam no filtro atual"""
    leads = _filtered_leads(session, filters)
    roster = load_roster(session, cache)
    result = auto_assign(LeadStore(session), leads, roster)
    return result.to_dict()


@router.patch("/leads/{lead_id}/assign", response_model=RecurrenceLeadResponse)
async def assign_lead(
    lead_id: str,
    payload: AssignLeadRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_active_user)
):
    """Assign or unassign a recurrence lead"""
    if payload.user_id and not session.get(User, payload.user_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid user"
        )

    store = LeadStore(session)
    try:
        lead = store.update_assignment(lead_id, payload.user_id)
    except LeadNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Lead not found"
        )
    return _to_response(lead, store.stages_by_id())


@router.post("/whatsapp-dispatch")
async def whatsapp_dispatch(
    payload: WhatsAppDispatchRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_active_user)
):
    """Um link wa.me com a mensagem de recorrência para cada lead selecionado"""
    if not payload.lead_ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Selecione ao menos um lead"
        )
    leads = LeadStore(session).get_leads(payload.lead_ids)
    return dispatch_batch(leads).to_dict()


@router.get("/leads/{lead_id}/script")
async def lead_script(
    lead_id: str,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_active_user)
):
    """Script de WhatsApp personalizado para o procedimento do lead"""
    try:
        lead = LeadStore(session).get_lead(lead_id)
    except LeadNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Lead not found"
        )

    procedures = list(session.exec(
        select(RecurrentProcedure).where(RecurrentProcedure.is_active == True)  # noqa: E712
    ).all())
    procedure = match_procedure(lead.last_procedure_name, procedures)
    script = generate_recurrence_script(
        lead.name, lead.last_procedure_name, procedure.script_whatsapp if procedure else None
    )
    phone = lead_phone(lead)
    return {
        "lead_id": lead.id,
        "script": script,
        "whatsapp_url": build_whatsapp_link(phone, script) if phone else None,
    }


@router.get("/export")
async def export_recurrence_leads(
    filters: RecurrenceFilter = Depends(get_recurrence_filter),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_active_user)
):
    """Exporta a lista filtrada em CSV"""
    leads = _filtered_leads(session, filters)
    df = pd.DataFrame(
        [
            {
                "Nome": lead.name or "",
                "Telefone": lead.whatsapp or lead.phone or "",
                "CPF": lead.cpf or "",
                "Grupo": lead.recurrence_group or "",
                "Último procedimento": lead.last_procedure_name or "",
                "Data do procedimento": lead.last_procedure_date.isoformat() if lead.last_procedure_date else "",
                "Vencimento": lead.recurrence_due_date.isoformat() if lead.recurrence_due_date else "",
                "Dias em atraso": lead.recurrence_days_overdue or 0,
                "Urgência": classify_urgency(lead.recurrence_days_overdue).value,
                "Responsável": lead.assigned_to or "",
            }
            for lead in leads
        ],
        columns=[
            "Nome", "Telefone", "CPF", "Grupo", "Último procedimento", "Data do procedimento",
            "Vencimento", "Dias em atraso", "Urgência", "Responsável",
        ],
    )
    csv_content = df.to_csv(index=False)
    filename = f"recorrencias_{date.today().isoformat()}.csv"

    return Response(
        content=csv_content.encode('utf-8-sig'),  # BOM for Excel compatibility
        media_type='text/csv',
        headers={
            'Content-Disposition': f'attachment; filename="{filename}"'
        }
    )
