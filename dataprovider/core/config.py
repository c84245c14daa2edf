from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Dict, List

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "rest-data-provider"

    API_URL: str = "http://localhost:3000"
    HTTP_TIMEOUT_SECONDS: float = 15.0
    DEFAULT_HEADERS: str = ""  # "Name: value,Other-Name: value"
    TOTAL_COUNT_HEADER: str = "x-total-count"
    MISSING_TOTAL_POLICY: str = "error"  # error | unknown
    BATCH_MODE: str = "concurrent"  # concurrent | sequential
    BATCH_MAX_CONCURRENCY: int = 0

    AUTH_LOGIN_PATH: str = "auth/login"
    AUTH_TOKEN_FIELD: str = "access_token"

    MEMORY_BACKEND_JWT_SECRET: str = "change_me_memory_backend"
    MEMORY_BACKEND_JWT_TTL_MINUTES: int = 240
    MEMORY_BACKEND_USERS: str = "admin@example.com:admin123"
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    @property
    def default_headers_map(self) -> Dict[str, str]:
        out: Dict[str, str] = {}
        for item in self.DEFAULT_HEADERS.split(","):
            name, sep, value = item.partition(":")
            if not sep or not name.strip():
                continue
            out[name.strip()] = value.strip()
        return out

    @property
    def memory_backend_users_map(self) -> Dict[str, str]:
        out: Dict[str, str] = {}
        for item in self.MEMORY_BACKEND_USERS.split(","):
            email, sep, password = item.strip().partition(":")
            if sep and email:
                out[email.strip().lower()] = password
        return out

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

settings = Settings()
