from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    # Database
    DATABASE_URL: str

    # Security
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Gateway calls slower than this surface as failures
    GATEWAY_TIMEOUT_SECONDS: float = 10.0

    # Onboarding wizards kept in memory between requests
    WIZARD_CACHE_SIZE: int = 1000
    WIZARD_IDLE_SECONDS: float = 1800.0

    # Logging
    LOG_LEVEL: str = "INFO"

    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # Environment
    ENVIRONMENT: str = "development"

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
