"""Configuration management for sshca using pydantic-settings."""

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables are prefixed with SSHCA_ (e.g., SSHCA_SSHD_PROGRAM).
    """

    model_config = SettingsConfigDict(
        env_prefix="SSHCA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # External tools
    keygen_program: str = Field(
        default="ssh-keygen",
        description="Program used to sign certificates",
    )
    sshd_program: str = Field(
        default="sshd",
        description="sshd binary used to dump and test configuration",
    )

    # Host paths
    sshd_config_path: str = Field(
        default="/etc/ssh/sshd_config",
        description="sshd configuration file modified by trust and sign-host",
    )
    trusted_user_ca_keys_path: str = Field(
        default="/etc/ssh/trusted_cas",
        description="File referenced by TrustedUserCAKeys",
    )
    known_hosts_path: str = Field(
        default="/etc/ssh/ssh_known_hosts",
        description="Global known hosts file that receives @cert-authority lines",
    )

    # Host certificate defaults
    extra_principals: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Principals added to every host certificate",
    )

    # Metrics
    metrics_port: int | None = Field(
        default=None,
        description="Port for the Prometheus endpoint of the server (disabled if unset)",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level",
    )
    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Log output format",
    )

    @field_validator("extra_principals", mode="before")
    @classmethod
    def parse_list_from_string(cls, v: str | list[str]) -> list[str]:
        """Parse comma-separated string into list."""
        if isinstance(v, str):
            if not v.strip():
                return []
            return [item.strip() for item in v.split(",")]
        return v

    @field_validator("metrics_port")
    @classmethod
    def validate_metrics_port(cls, v: int | None) -> int | None:
        """Reject ports outside the TCP range."""
        if v is not None and not 0 < v < 65536:
            raise ValueError("metrics_port must be between 1 and 65535")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
