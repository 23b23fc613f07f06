"""Configuration models for balance_tracker.

Loads tracker configuration from a YAML file with Pydantic validation.
OKX credentials come from the environment (or a .env file) and take
precedence over values in the YAML file.
"""

import os
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OkxCredentials(BaseSettings):
    """OKX API credentials.

    Environment variables:
    - OKX_API_KEY
    - OKX_SECRET_KEY
    - OKX_PASSPHRASE
    - OKX_DEMO: Send requests to the demo trading environment (default: false)

    Missing credentials are not a config error: the signed client refuses
    to send requests until they are set.
    """

    api_key: str = ""
    secret_key: str = ""
    passphrase: str = ""
    demo: bool = False

    model_config = SettingsConfigDict(
        env_prefix="OKX_",
        env_file=".env",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment wins over values passed in from the YAML file
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @property
    def is_complete(self) -> bool:
        return bool(self.api_key and self.secret_key and self.passphrase)


class RateLimitSettings(BaseModel):
    """Client-side sliding window for signed requests.

    Off by default; OKX still reports its own limits in response headers.
    """

    enabled: bool = Field(default=False, description="Throttle signed requests before sending")
    max_requests: int = Field(default=10, gt=0, description="Requests allowed per window")
    window_seconds: float = Field(default=2.0, gt=0, description="Window size in seconds")


class ApiConfig(BaseModel):
    """HTTP client settings."""

    base_url: str = Field(default="https://www.okx.com", description="OKX REST base URL")
    timeout: float = Field(default=15.0, gt=0, description="Per-attempt timeout for signed requests")
    public_timeout: float = Field(default=10.0, gt=0, description="Per-attempt timeout for market data")
    max_retries: int = Field(default=3, ge=0, description="Retries after the first signed attempt")
    public_max_retries: int = Field(default=2, ge=0, description="Retries after the first market data attempt")
    backoff_base: float = Field(default=1.0, ge=0, description="Delay before the first retry (seconds)")
    backoff_max: float = Field(default=4.0, ge=0, description="Upper bound on a single retry delay")
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class HistoryConfig(BaseModel):
    """Balance history storage."""

    file_path: str = Field(default="data/balance_history.json", description="JSON history file")
    display_timezone: str = Field(default="Asia/Seoul", description="Timezone for date/time display fields")

    @field_validator("display_timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone '{v}'") from e
        return v

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.display_timezone)


class SyncConfig(BaseModel):
    """History reconstruction parameters."""

    cutoff: datetime = Field(
        default=datetime(2025, 11, 4, 13, 52),
        description="Earliest event considered; naive values are in history.display_timezone",
    )
    initial_deposit: Decimal = Field(default=Decimal("464.97"), ge=0, description="Balance before the first bill")
    bills_limit: int = Field(default=500, gt=0, le=500, description="Bills page size")
    fills_limit: int = Field(default=200, gt=0, le=500, description="Fills page size")

    @field_validator("initial_deposit", mode="before")
    @classmethod
    def parse_initial_deposit(cls, v):
        return Decimal(str(v)) if isinstance(v, (int, float)) else v


class BalanceTrackerConfig(BaseModel):
    """Root configuration for balance_tracker."""

    account: OkxCredentials = Field(default_factory=OkxCredentials)
    api: ApiConfig = Field(default_factory=ApiConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)

    @field_validator("account", mode="before")
    @classmethod
    def build_credentials(cls, v):
        # Construct through __init__ so environment overrides apply
        if v is None:
            return OkxCredentials()
        if isinstance(v, dict):
            return OkxCredentials(**v)
        return v

    @property
    def cutoff(self) -> datetime:
        """Sync cutoff as an aware datetime."""
        cutoff = self.sync.cutoff
        if cutoff.tzinfo is None:
            cutoff = cutoff.replace(tzinfo=self.history.tz)
        return cutoff


def load_config(config_path: Optional[str] = None) -> BalanceTrackerConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, checks:
            1. BALANCE_TRACKER_CONFIG_PATH environment variable
            2. apps/balance_tracker/conf/balance_tracker.yaml
            3. conf/balance_tracker.yaml
            4. balance_tracker.yaml

    Returns:
        Validated BalanceTrackerConfig

    Raises:
        FileNotFoundError: If no config file found
        ValueError: If config validation fails
    """
    if config_path is None:
        config_path = os.environ.get("BALANCE_TRACKER_CONFIG_PATH")

    if config_path is None:
        search_paths = [
            Path(__file__).resolve().parents[2] / "conf" / "balance_tracker.yaml",
            Path("apps/balance_tracker/conf/balance_tracker.yaml"),
            Path("conf/balance_tracker.yaml"),
            Path("balance_tracker.yaml"),
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    if config_path is None:
        raise FileNotFoundError(
            "No config file found. Set BALANCE_TRACKER_CONFIG_PATH or create conf/balance_tracker.yaml"
        )

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    return BalanceTrackerConfig(**data)
