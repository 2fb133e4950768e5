import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

# Load environment variables from .env file
load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return int(raw)


class Settings(BaseModel):
    app_name: str = "souq"
    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]

    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_expires_minutes: int = 60 * 24 * 7

    otp_expires_minutes: int = 10
    otp_max_requests: int = 5
    otp_window_minutes: int = 15
    otp_max_attempts: int = 5

    # console | smtp | brevo
    email_provider: str = "console"
    email_host: Optional[str] = None
    email_port: int = 587
    email_user: Optional[str] = None
    email_pass: Optional[str] = None
    email_from: str = "no-reply@souq.local"
    brevo_api_key: Optional[str] = None
    brevo_sender_email: Optional[str] = None
    brevo_sender_name: Optional[str] = None

    admin_email: Optional[str] = None
    admin_password: Optional[str] = None

    port: int = 8085

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            app_name=os.getenv("APP_NAME", "souq"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            jwt_secret=os.getenv("JWT_SECRET", "change-me"),
            jwt_expires_minutes=_env_int("JWT_EXPIRES_MINUTES", 60 * 24 * 7),
            otp_expires_minutes=_env_int("OTP_EXPIRES_MINUTES", 10),
            otp_max_requests=_env_int("OTP_MAX_REQUESTS", 5),
            otp_window_minutes=_env_int("OTP_WINDOW_MINUTES", 15),
            otp_max_attempts=_env_int("OTP_MAX_ATTEMPTS", 5),
            email_provider=os.getenv("EMAIL_PROVIDER", "console").lower(),
            email_host=os.getenv("EMAIL_HOST"),
            email_port=_env_int("EMAIL_PORT", 587),
            email_user=os.getenv("EMAIL_USER"),
            email_pass=os.getenv("EMAIL_PASS"),
            email_from=os.getenv("EMAIL_FROM", "no-reply@souq.local"),
            brevo_api_key=os.getenv("BREVO_API_KEY"),
            brevo_sender_email=os.getenv("BREVO_SENDER_EMAIL"),
            brevo_sender_name=os.getenv("BREVO_SENDER_NAME"),
            admin_email=os.getenv("ADMIN_EMAIL"),
            admin_password=os.getenv("ADMIN_PASSWORD"),
            port=_env_int("PORT", 8085),
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()
