"""
Quantum Resources Package

Capability interface to QPUs and simulators, and the factory that
builds one from a validated connection config.
"""

from typing import TYPE_CHECKING

from ..config import Settings
from ..exceptions import InvalidArgumentError
from ..models import ResourceLimits
from .base import AmplitudeReadout, Oracle, QuantumResource
from .remote import RemoteResource
from .simulator import SimulatorResource

if TYPE_CHECKING:
    from ..connection.models import ConnectionConfig


def _float_setting(provider_settings: dict, key: str, default: float) -> float:
    raw = provider_settings.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise InvalidArgumentError(f"Provider setting {key} must be numeric") from e
    if not 0.0 <= value <= 1.0:
        raise InvalidArgumentError(f"Provider setting {key} must be within [0, 1]")
    return value


def create_resource(config: "ConnectionConfig", settings: Settings) -> QuantumResource:
    """
    Build the resource a connection config describes.

    Simulator backends read `seed`, `noise_level` and `eavesdrop_rate`
    from provider settings. Everything else is reached over HTTP.
    """
    limits = ResourceLimits(
        max_qubits=config.max_qubits or settings.default_max_qubits,
        max_shots=config.max_shots or settings.default_max_shots,
    )

    if config.is_simulator:
        seed = config.provider_settings.get("seed")
        try:
            seed_value = int(seed) if seed not in (None, "") else settings.simulator_seed
        except ValueError as e:
            raise InvalidArgumentError("Provider setting seed must be an integer") from e
        return SimulatorResource(
            limits=limits,
            seed=seed_value,
            noise_level=_float_setting(
                config.provider_settings, "noise_level", settings.simulator_noise_level
            ),
            eavesdrop_rate=_float_setting(
                config.provider_settings, "eavesdrop_rate", settings.simulator_eavesdrop_rate
            ),
        )

    return RemoteResource(
        endpoint=config.resolve_endpoint(settings),
        limits=limits,
        token=config.token,
        username=config.username,
        password=config.password,
        timeout=config.timeout or settings.default_timeout,
    )


__all__ = [
    "AmplitudeReadout",
    "Oracle",
    "QuantumResource",
    "RemoteResource",
    "SimulatorResource",
    "create_resource",
]
