"""
Runtime settings for the IBC relayer.

All settings can be overridden via environment variables prefixed with
IBC_RELAYER_ or a .env file in the working directory.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-based settings."""

    model_config = SettingsConfigDict(
        env_prefix="IBC_RELAYER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Persisted relayer document
    config_dir: Path = Field(
        default=Path.home() / ".ibc-relayer",
        description="Directory holding the relayer config document",
    )
    config_file: str = Field(default="config.yml", description="Config document file name")

    # Relay loop
    poll_time: float = Field(default=5.0, gt=0, description="Seconds between relay ticks")
    max_age_src: int = Field(
        default=86400, description="Max light client age on the source side (seconds)"
    )
    max_age_dest: int = Field(
        default=86400, description="Max light client age on the destination side (seconds)"
    )
    src_retries: int = Field(default=2, ge=1, description="Relay attempts on the source chain")
    dst_retries: int = Field(default=6, ge=1, description="Relay attempts on the destination chain")
    failure_threshold: int = Field(
        default=5, ge=1, description="Consecutive tick failures before escalating"
    )
    max_backoff: float = Field(default=60.0, gt=0, description="Upper bound for tick backoff")

    # Linking
    ibc_setup_gas: int = Field(
        default=2_256_000, description="Gas units budgeted for connection and channel setup"
    )
    link_concurrency: int = Field(default=4, ge=1, description="Paths linked in parallel")

    # Chain client
    request_timeout: float = Field(
        default=60.0, gt=0, description="Timeout for a single chain client call (seconds)"
    )
    chain_client: Optional[str] = Field(
        default=None,
        description="Chain client factory as module:attribute",
    )

    log_level: str = Field(default="INFO", description="Minimum log level")

    @property
    def config_path(self) -> Path:
        return self.config_dir / self.config_file
