"""
Boundary documents.

pydantic models for the JSON documents accepted by the bridge and the
HTTP service. Omitted fields fall back to the configured defaults.
"""

import json
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from .exceptions import InvalidArgumentError
from .models import (
    ChannelOptions,
    IterationStrategy,
    KeyOptions,
    ProtocolVariant,
    SamplingStrategy,
    SearchOptions,
)

DocumentT = TypeVar("DocumentT", bound=BaseModel)


class _Document(BaseModel):
    model_config = ConfigDict(extra="forbid")


class SearchOptionsDocument(_Document):
    max_iterations: Optional[int] = None
    target_probability: Optional[float] = None
    timeout: Optional[float] = None
    sampling_strategy: Optional[SamplingStrategy] = None
    sample_size: Optional[int] = None
    iteration_strategy: Optional[IterationStrategy] = None
    custom_iteration_factor: Optional[float] = None
    custom_iteration_offset: Optional[int] = None
    allow_classical_fallback: Optional[bool] = None

    def to_options(self) -> SearchOptions:
        return SearchOptions(**self.model_dump(exclude_none=True))


class SearchRequest(_Document):
    items: List[Any]
    predicate: Union[Dict[str, Any], str]
    options: Optional[SearchOptionsDocument] = None


class KeyOptionsDocument(_Document):
    key_length: Optional[int] = None
    error_rate_threshold: Optional[float] = None
    protocol: Optional[ProtocolVariant] = None
    max_attempts: Optional[int] = None
    enable_error_correction: Optional[bool] = None
    security_threshold: Optional[float] = None
    timeout: Optional[float] = None

    def to_options(self) -> KeyOptions:
        return KeyOptions(**self.model_dump(exclude_none=True))


class ChannelOptionsDocument(_Document):
    error_rate_threshold: Optional[float] = None
    protocol: Optional[ProtocolVariant] = None
    qber: Optional[float] = None
    sample_size: Optional[int] = None
    probe_bits: Optional[int] = None
    security_threshold: Optional[float] = None
    timeout: Optional[float] = None

    def to_options(self) -> ChannelOptions:
        return ChannelOptions(**self.model_dump(exclude_none=True))


def load_json(raw: Union[str, bytes, None], what: str, default: Any = None) -> Any:
    """Decode a JSON argument, mapping malformed input to InvalidArgumentError."""
    if raw is None or raw == "" or raw == b"":
        return default
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(f"{what} is not valid JSON: {e}") from e


def parse_document(model: Type[DocumentT], raw: Any, what: str) -> DocumentT:
    """Validate a decoded document against `model`."""
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise InvalidArgumentError(f"{what} must be a JSON object")
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or what}: {err['msg']}"
            for err in e.errors()
        )
        raise InvalidArgumentError(f"Invalid {what}: {errors}") from e
