"""
Remote Quantum Backend Client

REST client for a networked QPU or cloud simulator. Handles the session
handshake, entropy requests, amplitude-amplification rounds and QKD
transmissions.
"""

import base64
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..exceptions import (
    AuthenticationError,
    BackendConnectionError,
    InvalidArgumentError,
    OperationTimeoutError,
    QuantumRuntimeError,
    ResourceUnavailableError,
)
from ..models import ResourceLimits
from .base import AmplitudeReadout, Oracle, QuantumResource

logger = logging.getLogger(__name__)


class RemoteResource(QuantumResource):
    """
    Quantum resource reached over HTTP.

    Authentication uses a bearer token when one is configured, HTTP basic
    auth with username/password otherwise.
    """

    name = "remote"

    def __init__(
        self,
        endpoint: str,
        limits: ResourceLimits,
        token: str = "",
        username: str = "",
        password: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Content-Type": "application/json"}
        auth = None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        elif username:
            auth = httpx.BasicAuth(username, password)

        self.endpoint = endpoint
        self._limits = limits
        self._http_client = httpx.AsyncClient(
            base_url=endpoint,
            timeout=timeout,
            headers=headers,
            auth=auth,
            transport=transport,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self._http_client.request(method, path, **kwargs)
        except httpx.ConnectError as e:
            logger.error("Cannot connect to quantum backend: %s", e)
            raise ResourceUnavailableError(f"Quantum backend not reachable at {self.endpoint}") from e
        except httpx.TimeoutException as e:
            logger.error("Quantum backend request timeout: %s", e)
            raise OperationTimeoutError("Quantum backend request timed out") from e
        except httpx.TransportError as e:
            logger.error("Quantum backend transport failure: %s", e)
            raise BackendConnectionError(f"Transport failure talking to {self.endpoint}") from e

        if response.status_code in (401, 403):
            raise AuthenticationError(f"Quantum backend rejected credentials ({response.status_code})")

        if response.status_code == 503:
            raise ResourceUnavailableError("Quantum backend temporarily unavailable")

        if response.status_code != 200:
            logger.error("Quantum backend call %s %s failed: %s", method, path, response.text)
            raise QuantumRuntimeError(f"Quantum backend call failed: {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise QuantumRuntimeError("Quantum backend returned malformed JSON") from e

    async def open(self) -> ResourceLimits:
        """
        Open a backend session.

        Returns:
            ResourceLimits reported by the backend, clamped to the configured limits

        Raises:
            AuthenticationError: If the credential is rejected
            ResourceUnavailableError: If the backend is not reachable
        """
        data = await self._request("GET", "/api/v1/session")
        limits = ResourceLimits(
            max_qubits=min(int(data.get("max_qubits", self._limits.max_qubits)), self._limits.max_qubits),
            max_shots=min(int(data.get("max_shots", self._limits.max_shots)), self._limits.max_shots),
        )
        self._limits = limits
        logger.info(
            "Quantum backend session opened at %s (qubits=%d, shots=%d)",
            self.endpoint, limits.max_qubits, limits.max_shots,
        )
        return limits

    async def close(self) -> None:
        try:
            await self._http_client.delete("/api/v1/session")
        except httpx.HTTPError as e:
            logger.warning("Failed to close backend session cleanly: %s", e)
        finally:
            await self._http_client.aclose()

    async def entropy(self, size: int) -> bytes:
        """
        Request measured entropy.

        Args:
            size: Number of bytes wanted

        Returns:
            Exactly `size` bytes

        Raises:
            QuantumRuntimeError: If the backend returns a short read
        """
        data = await self._request("POST", "/api/v1/entropy", json={"size": size})
        try:
            material = base64.b64decode(data["data_b64"])
        except (KeyError, TypeError, ValueError) as e:
            raise QuantumRuntimeError("Backend entropy response is malformed") from e
        if len(material) != size:
            raise QuantumRuntimeError(
                f"Backend returned {len(material)} entropy bytes, expected {size}"
            )
        return material

    async def amplify(self, oracle: Oracle, iterations: int) -> AmplitudeReadout:
        if oracle.document is None:
            raise InvalidArgumentError(
                "Remote backends need a serialized predicate document, not a callable"
            )

        data = await self._request(
            "POST",
            "/api/v1/amplify",
            json={
                "items": oracle.items,
                "predicate": oracle.document,
                "iterations": iterations,
                "exclude": sorted(oracle.excluded),
            },
        )
        try:
            return AmplitudeReadout(
                index=int(data["index"]),
                probability=float(data.get("probability", 0.0)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise QuantumRuntimeError("Backend amplitude readout is malformed") from e

    async def transmit(
        self,
        bits: Sequence[int],
        bases: Sequence[int],
        measure_bases: Sequence[int],
    ) -> List[int]:
        data = await self._request(
            "POST",
            "/api/v1/qkd/transmit",
            json={
                "bits": list(bits),
                "bases": list(bases),
                "measure_bases": list(measure_bases),
            },
        )
        try:
            results = [int(b) & 1 for b in data["results"]]
        except (KeyError, TypeError, ValueError) as e:
            raise QuantumRuntimeError("Backend measurement record is malformed") from e
        if len(results) != len(bits):
            raise QuantumRuntimeError("Backend returned an incomplete measurement record")
        return results
