from functools import lru_cache
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _ensure_sqlalchemy_postgres_scheme(value: str) -> str:
    if not value.lower().startswith("postgres"):
        return value

    parsed = urlparse(value)
    scheme = parsed.scheme.lower()

    if scheme == "postgres":
        scheme = "postgresql"

    if scheme == "postgresql":
        scheme = "postgresql+psycopg"

    if scheme not in {"postgresql+psycopg", "postgresql+asyncpg"}:
        scheme = "postgresql+psycopg"

    query_params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query_params.setdefault("sslmode", "require")
    new_query = urlencode(query_params, doseq=True)

    return urlunparse(parsed._replace(scheme=scheme, query=new_query))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI debug mode")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    database_url: AnyUrl | str = Field(
        default="sqlite:///../data/indexer.db",
        description="SQLAlchemy compatible database URL",
    )
    supabase_db_url: AnyUrl | str | None = Field(
        default=None,
        description="Pooled Postgres connection string for production runs",
    )
    rpc_url: str = Field(
        default="https://mainnet.base.org",
        description="JSON-RPC endpoint of the chain hosting the market contract",
    )
    rpc_timeout_seconds: float = Field(
        default=30.0,
        description="Per-request timeout for JSON-RPC calls",
        gt=0,
    )
    market_contract_address: str = Field(
        default="0xc703856dc56576800F9bc7DfD6ac15e92Ac2d7D6",
        description="Prediction market contract emitting purchase and claim events",
    )
    token_address: str = Field(
        default="0x55b04F15A1878fa5091D5E35ebceBC06A5EC2F31",
        description="Fallback betting token address when the contract does not report one",
    )
    deployment_block: int = Field(
        default=28_500_000,
        description="Block the market contract was deployed at; first block of every scan",
        ge=0,
    )
    log_range_size: int = Field(
        default=500,
        description="Maximum number of blocks requested per eth_getLogs call",
        ge=1,
    )
    scan_concurrency: int = Field(
        default=2,
        description="Number of sub-range log fetches issued in parallel",
        ge=1,
    )
    retry_attempts: int = Field(
        default=3,
        description="Number of attempts for each remote call before giving up",
        ge=1,
    )
    retry_base_delay_seconds: float = Field(
        default=1.0,
        description="Base delay of the exponential retry schedule",
        ge=0,
    )
    rate_limit_min_delay_seconds: float = Field(
        default=5.0,
        description="Minimum delay before retrying a rate-limited call",
        ge=0,
    )
    leaderboard_ttl_seconds: float = Field(
        default=300.0,
        description="Lifetime of the cached leaderboard snapshot",
        ge=0,
    )
    leaderboard_size: int = Field(
        default=10,
        description="Number of entries returned by the leaderboard",
        ge=1,
    )
    namespace_version: str = Field(
        default="v3",
        description="Version suffix appended to cache namespaces; bump to invalidate caches",
    )
    neynar_api_key: str | None = Field(
        default=None,
        description="API key for the Neynar identity lookup service",
    )
    neynar_base_url: AnyUrl = Field(
        default="https://api.neynar.com",
        description="Base URL for the Neynar API",
    )
    identity_batch_size: int = Field(
        default=25,
        description="Number of addresses sent per identity lookup request",
        ge=1,
    )

    @field_validator("market_contract_address", "token_address")
    @classmethod
    def _validate_address(cls, value: str) -> str:
        candidate = value.strip()
        if len(candidate) != 42 or not candidate.lower().startswith("0x"):
            raise ValueError("contract addresses must be 0x-prefixed 20-byte hex strings")
        try:
            int(candidate[2:], 16)
        except ValueError as exc:
            raise ValueError("contract addresses must be hexadecimal") from exc
        return candidate

    @field_validator("namespace_version")
    @classmethod
    def _validate_namespace_version(cls, value: str) -> str:
        candidate = value.strip().lstrip("_")
        if not candidate:
            raise ValueError("namespace_version must not be empty")
        return candidate

    @field_validator("database_url", "supabase_db_url", mode="before")
    @classmethod
    def _normalize_postgres_urls(cls, value: Any) -> Any:
        if value is None or not isinstance(value, str):
            return value

        if value.startswith("postgresql+psycopg://") or value.startswith(
            "postgresql+asyncpg://"
        ):
            return value

        normalized = value
        if normalized.startswith("postgres://"):
            normalized = "postgresql://" + normalized[len("postgres://") :]

        return normalized

    @property
    def resolved_database_url(self) -> str:
        environment = self.environment.lower()
        if environment == "production":
            if not self.supabase_db_url:
                raise ValueError(
                    "SUPABASE_DB_URL must be set when ENVIRONMENT=production"
                )
            return _ensure_sqlalchemy_postgres_scheme(str(self.supabase_db_url))
        return _ensure_sqlalchemy_postgres_scheme(str(self.database_url))

    def namespace(self, name: str) -> str:
        """Return ``name`` suffixed with the cache schema version."""

        return f"{name}_{self.namespace_version}"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
