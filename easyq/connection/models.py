"""
Connection configuration document.
"""

from enum import Enum
from typing import Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..config import Settings
from ..exceptions import InvalidArgumentError

SIMULATOR_ENDPOINT = "simulator://local"


class BackendType(str, Enum):
    """Kinds of quantum backend a connection can target."""
    SIMULATOR = "simulator"
    MICROSOFT_QUANTUM_CLOUD = "microsoft_quantum_cloud"
    IBM_QUANTUM_EXPERIENCE = "ibm_quantum_experience"
    GOOGLE_QUANTUM_AI = "google_quantum_ai"
    LOCAL_QUANTUM_DEVICE = "local_quantum_device"
    CUSTOM = "custom"


CLOUD_BACKENDS = (
    BackendType.MICROSOFT_QUANTUM_CLOUD,
    BackendType.IBM_QUANTUM_EXPERIENCE,
    BackendType.GOOGLE_QUANTUM_AI,
)


class ConnectionConfig(BaseModel):
    """Where the quantum resource lives and how to authenticate to it."""

    model_config = ConfigDict(extra="forbid", use_enum_values=False)

    backend_type: BackendType = BackendType.SIMULATOR
    endpoint: str = ""
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    region: str = ""
    username: str = ""
    password: str = Field(default="", repr=False)
    token: str = Field(default="", repr=False)
    provider_settings: Dict[str, str] = Field(default_factory=dict)
    max_qubits: Optional[int] = Field(default=None, gt=0)
    max_shots: Optional[int] = Field(default=None, gt=0)
    timeout: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def validate_backend_requirements(self) -> "ConnectionConfig":
        if self.backend_type in CLOUD_BACKENDS:
            if not self.token and not (self.username and self.password):
                raise ValueError("Cloud backends need a token or username and password")
        elif self.backend_type == BackendType.LOCAL_QUANTUM_DEVICE:
            if not self.endpoint:
                raise ValueError("Local quantum devices need an endpoint")
        elif self.backend_type == BackendType.CUSTOM:
            if not self.provider_settings.get("ProviderName"):
                raise ValueError("Custom backends need provider_settings.ProviderName")
        return self

    @property
    def is_simulator(self) -> bool:
        return self.backend_type == BackendType.SIMULATOR

    def resolve_endpoint(self, settings: Settings) -> str:
        """
        Endpoint the resource is reached at.

        Cloud and custom backends without an explicit endpoint look one up
        in `Settings.cloud_endpoints`, keyed by backend type or provider name.
        """
        if self.is_simulator:
            return self.endpoint or SIMULATOR_ENDPOINT

        endpoint = self.endpoint
        if not endpoint:
            endpoint = settings.cloud_endpoints.get(self.backend_type.value, "")
        if not endpoint and self.backend_type == BackendType.CUSTOM:
            endpoint = settings.cloud_endpoints.get(self.provider_settings["ProviderName"], "")
        if not endpoint:
            raise InvalidArgumentError(
                f"No endpoint configured for backend {self.backend_type.value}"
            )

        if self.port is not None:
            try:
                endpoint = str(httpx.URL(endpoint).copy_with(port=self.port))
            except (httpx.InvalidURL, TypeError) as e:
                raise InvalidArgumentError(f"Invalid endpoint {endpoint!r}") from e
        return endpoint

    def describe(self) -> Dict[str, object]:
        """Config summary safe to log or return. Credentials are masked."""
        return {
            "backend_type": self.backend_type.value,
            "endpoint": self.endpoint or (SIMULATOR_ENDPOINT if self.is_simulator else ""),
            "port": self.port,
            "region": self.region,
            "authenticated": bool(self.token or self.username),
            "provider": self.provider_settings.get("ProviderName"),
        }
