from typing import Literal

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv(".env")


class Settings(BaseSettings):
    database_host: str | None = Field(
        default=None, validation_alias=AliasChoices("APP_DATABASE_HOST", "HOST")
    )
    database_port: int = 5432
    database_name: str = "librarydb"
    admin_database: str = "postgres"
    credentials_secret_id: str | None = Field(
        default=None, validation_alias=AliasChoices("APP_CREDENTIALS_SECRET_ID", "CREDENTIALS_ARN")
    )
    admin_secret_id: str | None = Field(
        default=None, validation_alias=AliasChoices("APP_ADMIN_SECRET_ID", "RDS_ARN")
    )
    grant_public_schema: bool = True
    secret_backend: Literal["aws", "vault"] = "aws"
    aws_region: str | None = Field(
        default=None, validation_alias=AliasChoices("APP_AWS_REGION", "AWS_REGION")
    )
    secrets_endpoint_url: str | None = None
    vault_addr: str | None = None
    vault_token: str | None = None
    vault_kv_mount: str = "kv"
    strict_security: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value):
        # logging only knows the upper-case level names
        return value.upper() if isinstance(value, str) else value

    def require(self, name: str) -> str:
        value = getattr(self, name)
        if not value:
            raise RuntimeError(f"Missing required setting: {name}")
        return value


def get_settings() -> Settings:
    settings = Settings()
    if settings.strict_security and settings.secret_backend == "vault":
        if settings.vault_token and settings.vault_token.lower() == "root":
            raise RuntimeError("Insecure Vault token detected")
        if settings.vault_addr and settings.vault_addr.startswith("http://"):
            raise RuntimeError("Vault address must use HTTPS")
    return settings
