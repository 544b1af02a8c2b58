"""
Fixtures compartilhadas.

As variáveis de ambiente precisam existir antes de importar clinic_crm, porque
as configurações são carregadas no import. O banco é SQLite em memória,
recriado a cada teste.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"

from datetime import date, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session, SQLModel, select  # noqa: E402

from clinic_crm.auth import create_access_token, get_password_hash  # noqa: E402
from clinic_crm.database import engine, seed_farmer_pipeline  # noqa: E402
from clinic_crm.dependencies import query_cache  # noqa: E402
from clinic_crm.main import app  # noqa: E402
from clinic_crm.models import CrmLead, CrmPipeline, CrmStage, User, UserRole  # noqa: E402

TEST_PASSWORD = "senha-segura"
# Hash único para não pagar o custo do bcrypt em cada usuário criado
_PASSWORD_HASH = get_password_hash(TEST_PASSWORD)


@pytest.fixture(autouse=True)
def reset_database():
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    seed_farmer_pipeline()
    query_cache.invalidate()
    yield
    query_cache.invalidate()


@pytest.fixture
def session():
    with Session(engine) as session:
        yield session


@pytest.fixture
def client():
    return TestClient(app)


def make_user(session, email, full_name, role=UserRole.SELLER, is_approved=True, is_active=True):
    user = User(
        email=email,
        full_name=full_name,
        role=role,
        is_approved=is_approved,
        is_active=is_active,
        hashed_password=_PASSWORD_HASH,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def auth_headers(user):
    token = create_access_token(data={"sub": user.id, "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


def stage_id(session, marker):
    """Id do estágio de recorrência cujo nome contém `marker`"""
    pipeline = session.exec(select(CrmPipeline).where(CrmPipeline.pipeline_type == "farmer")).one()
    stages = session.exec(select(CrmStage).where(CrmStage.pipeline_id == pipeline.id)).all()
    return next(stage.id for stage in stages if marker in stage.name)


def make_lead(session, name, days_overdue, **fields):
    today = date.today()
    lead = CrmLead(
        name=name,
        is_recurrence_lead=True,
        recurrence_days_overdue=days_overdue,
        recurrence_due_date=today - timedelta(days=days_overdue),
        last_procedure_date=fields.pop("last_procedure_date", today - timedelta(days=180 + days_overdue)),
        **fields,
    )
    session.add(lead)
    session.commit()
    session.refresh(lead)
    return lead


@pytest.fixture
def admin(session):
    return make_user(session, "admin@clinica.com", "Ana Admin", role=UserRole.ADMIN)


@pytest.fixture
def sellers(session):
    return [
        make_user(session, "bruno@clinica.com", "Bruno Vendas"),
        make_user(session, "carla@clinica.com", "Carla Vendas"),
    ]


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)
