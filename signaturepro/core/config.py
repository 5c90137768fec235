## signaturepro/core/config.py

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Settings for the application
    """

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", case_sensitive=False
    )

    environment: str = "development"
    allowed_cors_urls: str = "http://localhost:3000"

    app_name: str = "SignaturePro"
    app_base_url: str = "http://localhost:3000"

    # Full SQLAlchemy URL wins over the individual parts below
    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_user: str = "signaturepro"
    db_password: str = "signaturepro"
    db_database: str = "signaturepro"
    db_port: int = 5432
    db_echo: bool = False

    redis_host: str = "localhost"
    redis_port: str = "6379"
    redis_username: Optional[str] = None
    redis_password: Optional[str] = None

    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 24 * 60
    signature_token_expire_minutes: int = 60

    contract_expire_days: int = 30
    expiry_sweep_minutes: int = 15

    # Mail transport: "ses" or "smtp"
    mail_transport: str = "ses"
    email_from: str = "noreply@example.com"

    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: str = "us-east-1"
    aws_ses_configuration_set: Optional[str] = None

    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True

    log_level: str = "INFO"
    log_json: bool = False
    log_file: Optional[str] = None

    @property
    def db_url(self) -> str:
        """
        Database URL
        """
        if self.database_url:
            return self.database_url
        return f"postgresql+psycopg2://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_database}"

    @property
    def redis_url(self) -> str:
        """
        Redis connection URL
        """
        if self.redis_username and self.redis_password:
            return f"redis://{self.redis_username}:{self.redis_password}@{self.redis_host}:{self.redis_port}"
        elif self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}"
        else:
            return f"redis://{self.redis_host}:{self.redis_port}"

    @property
    def celery_broker(self) -> str:
        """
        Celery broker URL
        """
        return f"{self.redis_url}/1"

    @property
    def celery_backend(self) -> str:
        """
        Celery backend URL
        """
        return f"{self.redis_url}/2"


settings = Settings()
