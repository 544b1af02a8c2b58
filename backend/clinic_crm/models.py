import uuid
import datetime as dt
from sqlmodel import SQLModel, Field, Relationship
from typing import Optional, List
from datetime import datetime, date, timezone
from enum import Enum
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import Field as PydanticField


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    # Timestamps sempre com fuso (UTC)
    return datetime.now(timezone.utc)


class UserRole(str, Enum):
    ADMIN = "admin"
    COORDINATOR = "coordinator"
    SELLER = "seller"


class Team(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    name: str = Field(index=True)
    created_at: datetime = Field(default_factory=utc_now)

    users: List["User"] = Relationship(back_populates="team")


class UserBase(SQLModel):
    email: str = Field(unique=True, index=True)
    full_name: str
    is_active: bool = True
    role: UserRole = UserRole.SELLER


class User(UserBase, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    team_id: Optional[str] = Field(foreign_key="team.id", index=True, default=None)
    is_approved: bool = False  # vendedores só entram no rodízio após aprovação
    hashed_password: str
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    team: Optional[Team] = Relationship(back_populates="users")


class UserCreate(SQLModel):
    email: str
    password: str
    full_name: str
    role: UserRole = UserRole.SELLER
    team_id: Optional[str] = None
    is_approved: bool = False

    @field_validator('password')
    @classmethod
    def validate_password(cls, v: str) -> str:
        if not v:
            raise ValueError('Password cannot be empty')
        # Bcrypt has a 72 byte limit
        password_bytes = v.encode('utf-8')
        if len(password_bytes) > 72:
            raise ValueError('Password is too long. Maximum length is 72 characters.')
        if len(v) < 6:
            raise ValueError('Password must be at least 6 characters long')
        return v


class UserLogin(SQLModel):
    email: str
    password: str


class UserResponse(SQLModel):
    id: str
    email: str
    full_name: str
    role: UserRole
    team_id: Optional[str]
    is_approved: bool
    is_active: bool


class RosterMember(SQLModel):
    """Vendedor elegível para distribuição de leads"""
    id: str
    full_name: str
    team_id: Optional[str] = None


# ==================== PIPELINE ====================

class CrmPipeline(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    name: str
    pipeline_type: str = Field(index=True)  # 'farmer', 'hunter', ...
    created_at: datetime = Field(default_factory=utc_now)


class CrmStage(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    pipeline_id: str = Field(foreign_key="crmpipeline.id", index=True)
    name: str
    order_index: int = 0


# ==================== LEADS ====================

class LeadTemperature(str, Enum):
    HOT = "hot"
    WARM = "warm"
    COLD = "cold"


class CrmLead(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    name: Optional[str] = None
    phone: Optional[str] = None
    whatsapp: Optional[str] = None
    email: Optional[str] = None
    cpf: Optional[str] = Field(default=None, index=True)
    prontuario: Optional[str] = None
    temperature: Optional[LeadTemperature] = None
    assigned_to: Optional[str] = Field(foreign_key="user.id", index=True, default=None)
    pipeline_id: Optional[str] = Field(foreign_key="crmpipeline.id", default=None)
    stage_id: Optional[str] = Field(foreign_key="crmstage.id", default=None)
    source: Optional[str] = None  # origem do lead (recurrence_system, recurrence_cron, ...)
    source_detail: Optional[str] = None
    notes: Optional[str] = None
    # Campos de recorrência (preenchidos pela identificação de recorrências)
    is_recurrence_lead: bool = Field(default=False, index=True)
    last_procedure_date: Optional[date] = None
    last_procedure_name: Optional[str] = None
    recurrence_due_date: Optional[date] = None
    recurrence_days_overdue: Optional[int] = None  # negativo = por vencer, positivo = vencido
    recurrence_group: Optional[str] = None
    last_activity_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class StageSummary(SQLModel):
    name: str
    order_index: int


class RecurrenceLeadResponse(SQLModel):
    id: str
    name: Optional[str]
    phone: Optional[str]
    whatsapp: Optional[str]
    email: Optional[str]
    cpf: Optional[str]
    last_procedure_date: Optional[date]
    last_procedure_name: Optional[str]
    recurrence_due_date: Optional[date]
    recurrence_days_overdue: int
    recurrence_group: Optional[str]
    temperature: Optional[LeadTemperature]
    assigned_to: Optional[str]
    urgency: str
    stage: Optional[StageSummary] = None


class AssignLeadRequest(SQLModel):
    user_id: Optional[str] = None


# ==================== RECORRÊNCIA / FATURAMENTO ====================

class RecurrentProcedure(SQLModel, table=True):
    """Procedimentos que exigem renovação periódica"""
    id: str = Field(default_factory=new_id, primary_key=True)
    group_name: str  # ex: '04 - SOROTERAPIA'
    procedure_name: str
    recurrence_days: int
    trigger_days_before: int = 30
    script_whatsapp: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)


class RevenueRecord(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    amount: float
    date: dt.date = Field(index=True)
    department: Optional[str] = None
    procedure_name: Optional[str] = None
    patient_name: Optional[str] = None
    patient_cpf: Optional[str] = Field(default=None, index=True)
    patient_phone: Optional[str] = None
    patient_email: Optional[str] = None
    patient_prontuario: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class CancellationStatus(str, Enum):
    PENDING = "pending"
    RETAINED = "retained"
    CANCELLED_WITH_FINE = "cancelled_with_fine"
    CANCELLED_NO_FINE = "cancelled_no_fine"
    CREDIT_USED = "credit_used"


class Cancellation(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    contract_value: float
    cancellation_request_date: date = Field(index=True)
    status: CancellationStatus = CancellationStatus.PENDING


class DepartmentGoal(SQLModel, table=True):
    """Metas mensais por departamento (Meta1/Meta2/Meta3)"""
    id: str = Field(default_factory=new_id, primary_key=True)
    department_name: str
    month: int = Field(index=True)
    year: int = Field(index=True)
    meta1_goal: float = 0.0
    meta2_goal: float = 0.0
    meta3_goal: float = 0.0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class CrmNotification(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    notification_type: str
    title: str
    message: str
    is_read: bool = False
    created_at: datetime = Field(default_factory=utc_now)


# ==================== REQUISIÇÕES ====================

class IdentifyRecurrencesRequest(BaseModel):
    """Parâmetros aceitos no mesmo formato (camelCase) usado pelo painel"""
    days_ahead: Optional[int] = PydanticField(default=None, alias="daysAhead", ge=0)
    limit: Optional[int] = PydanticField(default=None, ge=1)
    create_leads: bool = PydanticField(default=True, alias="createLeads")
    year_from: Optional[int] = PydanticField(default=None, alias="yearFrom")
    auto_assign: bool = PydanticField(default=False, alias="autoAssign")
    notify_team: bool = PydanticField(default=False, alias="notifyTeam")

    model_config = ConfigDict(populate_by_name=True)


class WhatsAppDispatchRequest(SQLModel):
    lead_ids: List[str]


class GoalCalculationRequest(SQLModel):
    goal: float
    actual: float
    avg_unit_value: float
    days_remaining: int
    business_days_remaining: int
