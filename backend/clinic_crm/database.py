import logging
from sqlmodel import SQLModel, create_engine, Session, select
from sqlalchemy.pool import StaticPool
from clinic_crm.config import settings
from clinic_crm.models import CrmPipeline, CrmStage

logger = logging.getLogger(__name__)


def _build_engine(database_url: str):
    if database_url.startswith("sqlite"):
        # SQLite em memória precisa compartilhar a mesma conexão entre threads
        return create_engine(
            database_url,
            echo=settings.sql_echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, echo=settings.sql_echo, pool_pre_ping=True)


engine = _build_engine(settings.database_url)


def get_session():
    """Dependency for getting database session"""
    with Session(engine) as session:
        yield session


FARMER_PIPELINE_NAME = "Farmer"

# Estágios de recorrência do pipeline Farmer (ordem de exibição)
RECURRENCE_STAGES = [
    "Recorrência - Por Vencer",
    "Recorrência - Vencido Recente",
    "Recorrência - Vencido Crítico",
    "Recorrência - Recuperado",
]


def seed_farmer_pipeline():
    """Garante que o pipeline Farmer e seus estágios de recorrência existam"""
    with Session(engine) as session:
        try:
            pipeline = session.exec(
                select(CrmPipeline).where(CrmPipeline.pipeline_type == "farmer")
            ).first()

            if not pipeline:
                pipeline = CrmPipeline(name=FARMER_PIPELINE_NAME, pipeline_type="farmer")
                session.add(pipeline)
                session.commit()
                session.refresh(pipeline)
                logger.info("✅ Pipeline Farmer criado")

            existing = {
                stage.name
                for stage in session.exec(
                    select(CrmStage).where(CrmStage.pipeline_id == pipeline.id)
                ).all()
            }
            created = 0
            for index, stage_name in enumerate(RECURRENCE_STAGES):
                if stage_name not in existing:
                    session.add(CrmStage(pipeline_id=pipeline.id, name=stage_name, order_index=index))
                    created += 1
            if created:
                session.commit()
                logger.info(f"✅ {created} estágio(s) de recorrência criado(s)")
        except Exception as e:
            logger.error(f"❌ Erro ao criar pipeline Farmer: {e}")
            session.rollback()


def init_db():
    """Initialize database tables"""
    SQLModel.metadata.create_all(engine)
    seed_farmer_pipeline()
