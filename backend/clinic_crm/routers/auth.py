import logging
from datetime import timedelta
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlmodel import Session, select
from clinic_crm.database import get_session
from clinic_crm.models import User, UserCreate, UserLogin, UserResponse, UserRole, Team
from clinic_crm.auth import verify_password, get_password_hash, create_access_token
from clinic_crm.config import settings
from clinic_crm.dependencies import get_current_active_user, get_current_user, get_query_cache
from clinic_crm.services.query_cache import QueryCache

router = APIRouter()
logger = logging.getLogger(__name__)


def _to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        role=user.role,
        team_id=user.team_id,
        is_approved=user.is_approved,
        is_active=user.is_active
    )


def _registering_admin(request: Request, session: Session) -> Optional[User]:
    """Administrador autenticado que está cadastrando o usuário, se houver"""
    if not request.headers.get("Authorization"):
        return None
    user = get_current_user(request, session)
    return user if user.role == UserRole.ADMIN and user.is_active else None


@router.post("/register", response_model=UserResponse)
async def register(
    user_data: UserCreate,
    request: Request,
    session: Session = Depends(get_session),
    cache: QueryCache = Depends(get_query_cache)
):
    """
    Register a new user.

    O primeiro usuário vira administrador aprovado; depois disso só
    administradores cadastram novos usuários.
    """
    is_first_user = session.exec(select(User)).first() is None
    if not is_first_user and _registering_admin(request, session) is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Apenas administradores podem cadastrar usuários"
        )

    existing_user = session.exec(
        select(User).where(User.email == user_data.email)
    ).first()
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    if user_data.team_id and not session.get(Team, user_data.team_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Team not found"
        )

    try:
        user = User(
            email=user_data.email,
            full_name=user_data.full_name,
            hashed_password=get_password_hash(user_data.password),
            role=UserRole.ADMIN if is_first_user else user_data.role,
            team_id=user_data.team_id,
            is_approved=True if is_first_user else user_data.is_approved,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
    except Exception as e:
        session.rollback()
        logger.error(f"❌ [AUTH] Erro ao cadastrar {user_data.email}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error during registration: {str(e)}"
        )

    # Novo vendedor pode entrar no rodízio
    cache.invalidate(("roster",))
    logger.info(f"✅ [AUTH] Usuário {user.email} cadastrado como {user.role.value}")
    return _to_response(user)


@router.post("/login")
async def login(
    credentials: UserLogin,
    session: Session = Depends(get_session)
):
    """Login and get access token"""
    user = session.exec(
        select(User).where(User.email == credentials.email)
    ).first()

    if not user or not verify_password(credentials.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is inactive"
        )

    access_token = create_access_token(
        data={"sub": user.id, "role": user.role.value},
        expires_delta=timedelta(minutes=settings.access_token_expire_minutes)
    )

    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user": _to_response(user)
    }


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_active_user)
):
    """Get current user information"""
    return _to_response(current_user)
