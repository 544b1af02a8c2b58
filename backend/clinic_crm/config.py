from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    database_url: str
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 1440  # 24 horas
    sql_echo: bool = False
    log_level: str = "INFO"

    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
        "http://localhost:8080",
    ]

    # Identificação de recorrências
    recurrence_days_ahead: int = 30  # janela de "por vencer" em dias
    recurrence_limit: int = 100  # máximo de oportunidades por execução
    recurrence_year_from: int = 2024
    recurrence_fetch_limit: int = 1000  # máximo de leads carregados no painel

    default_page_size: int = 50

    # WhatsApp
    whatsapp_country_code: str = "55"
    clinic_name: str = "Unique"

    # Metas de procedimentos (fallback quando não há metas cadastradas)
    default_avg_ticket: float = 15000.0
    default_meta1: float = 3_000_000.0
    default_meta2: float = 3_500_000.0
    default_meta3: float = 4_000_000.0

    cache_stale_seconds: int = 60

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignorar campos extras no .env que não estão definidos
    )


settings = Settings()
