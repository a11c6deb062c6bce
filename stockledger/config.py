from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "Stock Ledger"
    DATABASE_URL: str = "sqlite:///./stockledger.db"

    # Seconds SQLite waits on a locked database before giving up
    DB_BUSY_TIMEOUT: float = 5.0

    SECRET_KEY: str = "change-me-in-production"
    ACCESS_TOKEN_EXPIRE_HOURS: int = 72

    # Default admin created on first startup
    DEFAULT_ADMIN_USERNAME: str = "admin"
    DEFAULT_ADMIN_PASSWORD: str = "admin123"
    DEFAULT_ADMIN_EMAIL: str = "admin@stockledger.local"

    # Attempts per movement before a lost stock race is reported
    MOVEMENT_MAX_ATTEMPTS: int = 20
    REASON_MAX_LENGTH: int = 500

    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env"}


settings = Settings()
