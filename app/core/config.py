from pydantic_settings import BaseSettings
from typing import List, Union
from pydantic import field_validator
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # API Settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Clutch Auth API"

    # "development" or "production"
    ENVIRONMENT: str = "development"

    # Database Settings
    DATABASE_URL: str = "sqlite:///./clutch.db"

    # Redis Settings (pending verification codes); empty means in-process only
    REDIS_URL: str = ""

    # Verification Settings
    INSTITUTION_EMAIL_DOMAIN: str = "@essex.ac.uk"
    VERIFICATION_CODE_TTL_MINUTES: int = 10
    MAX_VERIFICATION_ATTEMPTS: int = 5
    DISPLAY_NAME_PREFIX: str = "Student"

    # Session Settings
    SESSION_EXPIRE_DAYS: int = 30
    SESSION_COOKIE_NAME: str = "clutch_session"

    # Resend Settings (verification emails)
    RESEND_API_KEY: str = ""
    RESEND_FROM_EMAIL: str = "noreply@clutch-skillshare.app"
    RESEND_FROM_NAME: str = "Clutch"

    # Surface the code to the requester when delivery is unavailable.
    # Never honoured when ENVIRONMENT is production.
    ALLOW_CODE_DISCLOSURE: bool = True

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = False

    # CORS Settings - can be set as JSON string in .env
    BACKEND_CORS_ORIGINS: Union[List[str], str] = ["http://localhost:3000", "http://localhost:8000"]

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Union[List[str], str]) -> List[str]:
        """Parse CORS origins from JSON string or list"""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                # If not valid JSON, split by comma
                return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("INSTITUTION_EMAIL_DOMAIN")
    @classmethod
    def normalize_domain(cls, v: str) -> str:
        """Store the suffix lowercased with a leading @"""
        v = v.strip().lower()
        if not v.startswith("@"):
            v = "@" + v
        return v

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.strip().lower() == "production"

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
