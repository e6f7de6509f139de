# creativedesk/core/config.py
from typing import List, Union, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator


def _split_list(v):
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


class Settings(BaseSettings):
    # ==== Інфраструктура ====
    database_url: str = "postgresql+asyncpg://app:app@db:5432/creativedesk"
    redis_url: str = "redis://redis:6379/0"

    # ==== Безпека / Auth ====
    # логін живе зовні, тут лише перевірка bearer-токена
    jwt_secret: str = "changeme"
    jwt_alg: str = "HS256"
    jwt_expires_min: int = 60

    # ==== CORS ====
    # CORS_ORIGINS=http://localhost:5173,http://127.0.0.1:5173,...
    cors_origins: Union[str, List[str]] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
    ]

    # ==== Workflow ====
    # ролі компанії, яким дозволено переводити заявку в DONE
    done_roles: Union[str, List[str]] = ["OWNER", "PM"]
    # скільки заявок можна рухати одним bulk-запитом
    bulk_max_tickets: int = 50
    # скільки файлів можна прикласти до однієї ревізії
    max_review_assets: int = 10

    # ==== Нотифікації (RQ) ====
    notifications_enabled: bool = True
    notifications_queue: str = "notifications"
    webhook_url: Optional[str] = None
    webhook_secret: Optional[str] = None

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
        return _split_list(v)

    @field_validator("done_roles", mode="before")
    @classmethod
    def _parse_done_roles(cls, v):
        v = _split_list(v)
        return [str(i).upper() for i in v]


settings = Settings()
