from typing import List
from fastapi import APIRouter, Depends
from sqlmodel import Session
from clinic_crm.database import get_session
from clinic_crm.models import User, RosterMember
from clinic_crm.dependencies import get_current_active_user, get_query_cache
from clinic_crm.services.lead_store import LeadStore
from clinic_crm.services.query_cache import QueryCache

router = APIRouter()


def load_roster(session: Session, cache: QueryCache) -> List[RosterMember]:
    """Vendedores elegíveis, servidos do cache enquanto estiverem frescos"""
    return cache.get(("roster",), lambda: LeadStore(session).list_roster())


@router.get("/roster", response_model=List[RosterMember])
async def get_roster(
    session: Session = Depends(get_session),
    cache: QueryCache = Depends(get_query_cache),
    current_user: User = Depends(get_current_active_user)
):
    """Vendedores aprovados, na ordem usada pela distribuição automática"""
    return load_roster(session, cache)
