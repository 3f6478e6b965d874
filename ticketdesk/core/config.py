# ticketdesk/core/config.py
from typing import List, Union, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator


class Settings(BaseSettings):
    # ==== Інфраструктура ====
    database_url: str = "postgresql+asyncpg://app:app@db:5432/helpdesk"
    db_echo: bool = False
    # створювати таблиці на старті (dev/tests); у проді — alembic
    db_create_all: bool = False

    # ==== Безпека / Auth ====
    jwt_secret: str = "changeme"
    jwt_alg: str = "HS256"
    jwt_expires_min: int = 60  # 1 година

    # заголовок, у якому клієнт передає токен
    token_header: str = "x-auth-token"

    # ==== CORS ====
    # CORS_ORIGINS=http://localhost:3000,http://127.0.0.1:3000,...
    cors_origins: Union[str, List[str]] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    # ==== Політика реєстрації / доступу ====
    # чи приймати поле role з форми реєстрації
    allow_signup_role: bool = True
    # 404 замість 403 для чужих тікетів (не розкриваємо існування)
    hide_forbidden_tickets: bool = False

    # ==== Bootstrap Admin / Demo Users ====
    admin_email: str = "admin@example.com"
    admin_password: str = "ChangeMe123!"
    admin_username: str = "admin"
    create_demo_agent: bool = True
    create_demo_user: bool = True

    # ==== UI build (опційно перевизначити директорію зі SPA) ====
    ui_dist_dir: Optional[str] = None

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


settings = Settings()
