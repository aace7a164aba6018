from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str | None = None
    DATABASE_HOST: str = "localhost"
    DATABASE_PORT: str = "5432"
    DATABASE_USER: str = "postgres"
    DATABASE_PASSWORD: str = "postgres"
    DATABASE_NAME: str = "bakery_db"
    DATABASE_ECHO: bool = False

    # JWT
    SECRET_KEY: str = "supersecretkey_change_this"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    ADMIN_SECRET: str

    # Business day boundary for reports (WIB)
    TIMEZONE: str = "Asia/Jakarta"

    # Inventory
    BATCH_CHUNK_SIZE: int = 50
    DEFAULT_REORDER_POINT: int = 30
    DEFAULT_UOM: str = "pcs"
    ALLOW_NEGATIVE_STOCK_OVERRIDE: bool = False

    # Orders
    ORDER_NUMBER_RETRIES: int = 3

    # Logging
    LOG_FILE: str = "bakery.log"
    LOG_LEVEL: str = "INFO"
    LOG_ROTATION: str = "500 MB"

    class Config:
        env_file = ".env"

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}"
            f"@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"
        )


settings = Settings()
