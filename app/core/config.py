from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str
    JWT_SECRET: str
    LOG_LEVEL: str = "INFO"
    SLOW_REQUEST_THRESHOLD_MS: int = 1000  # 1 segundo

    # Tiempo máximo esperando el lock de una fila antes de fallar (reintentable)
    LOCK_TIMEOUT_MS: int = 5000

    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    CREATE_TABLES_ON_STARTUP: bool = True

    class Config:
        env_file = ".env"


settings = Settings()
