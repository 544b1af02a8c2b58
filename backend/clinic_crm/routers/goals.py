from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlmodel import Session
from clinic_crm.database import get_session
from clinic_crm.models import User, GoalCalculationRequest
from clinic_crm.dependencies import get_current_active_user
from clinic_crm.services.goal_calculator import calculate_goal_remaining
from clinic_crm.services.goal_tracker import get_procedures_goal_progress

router = APIRouter()


@router.get("/procedures")
async def procedures_goal_progress(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_active_user)
):
    """O que falta para bater Meta1/Meta2/Meta3 no mês (padrão: mês atual)"""
    today = date.today()
    return get_procedures_goal_progress(session, month or today.month, year or today.year)


@router.post("/calculate")
async def calculate(
    payload: GoalCalculationRequest,
    current_user: User = Depends(get_current_active_user)
):
    result = calculate_goal_remaining(
        payload.goal,
        payload.actual,
        payload.avg_unit_value,
        payload.days_remaining,
        payload.business_days_remaining,
    )
    return result.to_dict()
