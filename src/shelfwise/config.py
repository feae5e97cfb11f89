"""Application settings, read from the environment and an optional .env file."""

from urllib.parse import quote

from pydantic_settings import BaseSettings, SettingsConfigDict

# Azure Database for PostgreSQL refuses unencrypted connections
_SSL_HOST_MARKERS = ("azure", "postgres.database")


class Settings(BaseSettings):
    """Environment-driven settings. Field names match env vars case-insensitively."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # PostgreSQL connection
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    postgres_db: str = "shelfwise"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    # Connection pool shared by every request
    db_pool_size: int = 5
    db_max_overflow: int = 10

    # Echo SQL and allow the development JWT secret
    debug: bool = False

    # Name of the organization created for a user who has none
    default_organization_name: str = "{email}'s Organization"

    # Prep log entries returned per item
    prep_log_limit: int = 50

    @property
    def database_url(self) -> str:
        """asyncpg URL with percent-encoded credentials."""
        credentials = f"{quote(self.postgres_user, safe='')}:{quote(self.postgres_password, safe='')}"
        url = f"postgresql+asyncpg://{credentials}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        host = self.postgres_host.lower()
        if any(marker in host for marker in _SSL_HOST_MARKERS):
            url += "?ssl=require"
        return url


settings = Settings()
