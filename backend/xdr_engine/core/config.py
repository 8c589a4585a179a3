from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "xdr-detection-backend"
    ENVIRONMENT: str = "local"
    LOG_LEVEL: str = "INFO"

    # Database (action audit log)
    DATABASE_URL: str | None = None
    POSTGRES_HOST: str = "db"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "xdr_engine"
    POSTGRES_USER: str = "xdr_user"
    POSTGRES_PASSWORD: str = "xdr_password"

    # External APIs
    IPINFO_TOKEN: str | None = None
    ABUSEIPDB_API_KEY: str | None = None
    OTX_API_KEY: str | None = None
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # Alerting / Webhooks
    SLACK_ALERT_WEBHOOK_URL: str | None = None
    GENERIC_ALERT_WEBHOOK_URL: str | None = None

    # Engine tuning
    ML_TRAINING_DELAY_SECONDS: float = 5.0
    PERFORMANCE_HISTORY_LIMIT: int = 1000
    MALICIOUS_JA3_FINGERPRINTS: list[str] = []

    # Explicit DATABASE_URL wins, otherwise build the Postgres URL
    @property
    def SQLALCHEMY_DATABASE_URL(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:"
            f"{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:"
            f"{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )


    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
