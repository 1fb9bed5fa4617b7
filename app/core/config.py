# app/core/config.py
from typing import List, Union
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator


class Settings(BaseSettings):
    # ==== Інфраструктура ====
    database_url: str = "postgresql+asyncpg://app:app@db:5432/maintenance"
    redis_url: str = "redis://redis:6379/0"

    # ==== Auth (токени видає зовнішній identity-сервіс, ми лише перевіряємо) ====
    jwt_secret: str = "changeme"
    jwt_alg: str = "HS256"
    jwt_expires_min: int = 60  # для dev-токенів з bootstrap-скрипта

    # ==== CORS ====
    # CORS_ORIGINS=http://localhost:5173,http://127.0.0.1:5173,...
    cors_origins: Union[str, List[str]] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:8080",
        "http://127.0.0.1:8080",
    ]

    # ==== Доменні події (rq) ====
    events_enabled: bool = True
    notifications_queue: str = "notifications"
    # зовнішній webhook, куди воркер пересилає події (порожньо: лише лог)
    webhook_url: str = ""
    webhook_secret: str = ""

    # ==== Автопідтвердження виконаних заявок ====
    auto_confirm_days: int = 3
    # False: календарні дні, True: лише робочі (пн-пт)
    auto_confirm_business_days: bool = False
    auto_confirm_interval_sec: int = 3600

    # ==== Логування / Оточення ====
    env: str = "dev"          # dev|staging|prod
    log_level: str = "INFO"   # DEBUG|INFO|WARNING|ERROR

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("[") and s.endswith("]"):
                try:
                    import json
                    parsed = json.loads(s)
                    return [str(i).strip() for i in parsed if str(i).strip()]
                except ValueError:
                    pass
            return [i.strip() for i in s.split(",") if i.strip()]
        return v

    @field_validator("auto_confirm_days")
    @classmethod
    def _positive_days(cls, v: int) -> int:
        if v < 1:
            raise ValueError("auto_confirm_days must be >= 1")
        return v


settings = Settings()
