from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_ENV: str = "local"
    APP_NAME: str = "patch-api"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_STATEMENT_TIMEOUT_MS: int = 0  # 0 disables the server-side timeout

    API_JWT_SECRET: str = "change_me_api"
    ACCOUNT_CLAIM: str = "account"

    CORS_ORIGINS: str = "http://localhost:3000"

    DEFAULT_PAGE_LIMIT: int = 20
    ALLOW_UNLIMITED_LIST: bool = True

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

settings = Settings()
