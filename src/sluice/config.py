"""Configuration management for SLUICE using Pydantic Settings."""

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_REFERENCE_URL = (
    "https://raw.githubusercontent.com/electric-capital/crypto-ecosystems/"
    "refs/heads/master/data/ecosystems/s/solana.toml"
)


class SluiceConfig(BaseSettings):
    """SLUICE service configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # Network
    rpc_endpoint: str = Field(alias="SLUICE_RPC_ENDPOINT")
    block_explorer_url: str | None = Field(default=None, alias="SLUICE_BLOCK_EXPLORER_URL")

    # Funding wallet
    wallet_private_key: SecretStr | None = Field(default=None, alias="SLUICE_WALLET_PRIVATE_KEY")
    wallet_private_key_file: str | None = Field(
        default=None, alias="SLUICE_WALLET_PRIVATE_KEY_FILE"
    )

    # Distribution policy
    airdrop_amount: float = Field(default=1.0, alias="SLUICE_AIRDROP_AMOUNT", gt=0)
    cooldown_hours: float = Field(default=24.0, alias="SLUICE_COOLDOWN_HOURS", gt=0)
    admin_email: str | None = Field(default=None, alias="SLUICE_ADMIN_EMAIL")

    # Reference set
    reference_url: str = Field(default=DEFAULT_REFERENCE_URL, alias="SLUICE_REFERENCE_URL")
    reference_cache_seconds: int = Field(
        default=3600, alias="SLUICE_REFERENCE_CACHE_SECONDS", gt=0
    )

    # Timeouts for outbound calls
    http_timeout_seconds: float = Field(default=10.0, alias="SLUICE_HTTP_TIMEOUT_SECONDS", gt=0)
    tx_timeout_seconds: int = Field(default=120, alias="SLUICE_TX_TIMEOUT_SECONDS", gt=0)

    # GitHub identity provider
    github_client_id: str | None = Field(default=None, alias="GITHUB_CLIENT_ID")
    github_client_secret: SecretStr | None = Field(default=None, alias="GITHUB_CLIENT_SECRET")
    github_api_token: SecretStr | None = Field(default=None, alias="GITHUB_API_TOKEN")

    # Redis
    redis_url: str | None = Field(default="redis://localhost:6379", alias="REDIS_URL")

    # HTTP API
    api_host: str = Field(default="0.0.0.0", alias="SLUICE_API_HOST")  # noqa: S104
    api_port: int = Field(default=8000, alias="SLUICE_API_PORT", ge=1, le=65535)

    # Observability
    metrics_port: int = Field(default=8080, alias="SLUICE_METRICS_PORT", ge=1, le=65535)
    log_level: str = Field(default="INFO", alias="SLUICE_LOG_LEVEL")
    log_format: str = Field(default="json", alias="SLUICE_LOG_FORMAT")

    @property
    def cooldown_seconds(self) -> int:
        """Cooldown window in whole seconds."""
        return int(self.cooldown_hours * 3600)
