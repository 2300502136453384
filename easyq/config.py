"""
EasyQ Configuration

Manages all runtime settings with environment variable support.
Credentials are validated and never logged.
"""

import secrets
from functools import lru_cache
from typing import Dict, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="EASYQ_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "EasyQ Runtime"
    app_version: str = "0.1.0"
    debug: bool = False

    # Server
    host: str = "127.0.0.1"
    port: int = 8300

    # Security
    secret_key: str = Field(default_factory=lambda: secrets.token_hex(32))
    api_token: str = Field(default_factory=lambda: secrets.token_urlsafe(32))
    token_expire_minutes: int = 60

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Quantum resource
    default_timeout: float = 30.0
    default_max_qubits: int = 32
    default_max_shots: int = 1024
    cloud_endpoints: Dict[str, str] = {}

    # Simulator
    simulator_seed: Optional[int] = None
    simulator_noise_level: float = 0.0
    simulator_eavesdrop_rate: float = 0.0

    # Search
    search_max_iterations: int = 100
    search_target_probability: float = 0.9
    search_sample_size: int = 100

    # Randomness
    allow_classical_fallback: bool = True
    max_rejection_draws: int = 128

    # Key distribution
    qkd_key_length: int = 256
    qkd_error_threshold: float = 0.11
    qkd_over_provisioning: float = 4.0
    qkd_max_raw_bits: int = 1 << 18
    qkd_sample_fraction: float = 0.25
    qkd_min_sample_size: int = 32
    qkd_max_attempts: int = 5
    qkd_security_threshold: float = 2.2
    qkd_reconciliation_passes: int = 4
    qkd_probe_bits: int = 512

    @field_validator("host")
    @classmethod
    def validate_localhost_only(cls, v: str) -> str:
        """Ensure the service only binds to localhost."""
        if v not in ("127.0.0.1", "localhost", "::1"):
            raise ValueError("EasyQ service must bind to localhost only")
        return v

    @field_validator("simulator_noise_level", "simulator_eavesdrop_rate", "qkd_error_threshold")
    @classmethod
    def validate_probability(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("Probability settings must be within [0, 1]")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
