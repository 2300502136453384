import base64
import json

import httpx
import pytest

from easyq.connection import ConnectionConfig
from easyq.exceptions import (
    AuthenticationError,
    BackendConnectionError,
    InvalidArgumentError,
    OperationTimeoutError,
    QuantumRuntimeError,
    ResourceUnavailableError,
)
from easyq.models import ChannelOptions, ResourceLimits, SearchOptions, SecurityVerdict
from easyq.resources import Oracle, RemoteResource, SimulatorResource, create_resource
from easyq.runtime import EasyQRuntime

LIMITS = ResourceLimits(max_qubits=8, max_shots=64)


def remote(handler, **kwargs) -> RemoteResource:
    return RemoteResource(
        "http://qpu.test",
        LIMITS,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestRemoteResource:

    async def test_open_clamps_limits_and_sends_token(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"max_qubits": 4, "max_shots": 4096})

        resource = remote(handler, token="tok")
        limits = await resource.open()

        assert limits == ResourceLimits(max_qubits=4, max_shots=64)
        assert seen["auth"] == "Bearer tok"

    async def test_basic_auth(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={})

        await remote(handler, username="alice", password="pw").open()
        assert seen["auth"].startswith("Basic ")

    async def test_entropy(self):
        def handler(request):
            size = json.loads(request.content)["size"]
            return httpx.Response(200, json={"data_b64": base64.b64encode(b"\x2a" * size).decode()})

        assert await remote(handler).entropy(5) == b"\x2a" * 5

    async def test_entropy_short_read(self):
        def handler(request):
            return httpx.Response(200, json={"data_b64": base64.b64encode(b"\x00").decode()})

        with pytest.raises(QuantumRuntimeError):
            await remote(handler).entropy(4)

    async def test_amplify_sends_document(self):
        seen = {}

        def handler(request):
            seen.update(json.loads(request.content))
            return httpx.Response(200, json={"index": 2, "probability": 0.5})

        oracle = Oracle(["a", "b", "c"], lambda x: x == "c", {"op": "equals", "value": "c"})
        readout = await remote(handler).amplify(oracle, 1)

        assert readout.index == 2
        assert seen == {
            "items": ["a", "b", "c"],
            "predicate": {"op": "equals", "value": "c"},
            "iterations": 1,
            "exclude": [],
        }

    async def test_amplify_needs_document(self):
        def handler(request):
            raise AssertionError("no request expected")

        with pytest.raises(InvalidArgumentError):
            await remote(handler).amplify(Oracle(["a"], lambda x: True), 1)

    async def test_transmit(self):
        def handler(request):
            body = json.loads(request.content)
            return httpx.Response(200, json={"results": [b + 2 for b in body["bits"]]})

        assert await remote(handler).transmit([0, 1, 1], [0, 0, 1], [0, 1, 1]) == [0, 1, 1]

    async def test_transmit_incomplete(self):
        def handler(request):
            return httpx.Response(200, json={"results": [0]})

        with pytest.raises(QuantumRuntimeError):
            await remote(handler).transmit([0, 1], [0, 0], [0, 0])

    @pytest.mark.parametrize(
        "status, error",
        [
            (401, AuthenticationError),
            (403, AuthenticationError),
            (503, ResourceUnavailableError),
            (500, QuantumRuntimeError),
        ],
    )
    async def test_status_mapping(self, status, error):
        def handler(request):
            return httpx.Response(status, text="nope")

        with pytest.raises(error):
            await remote(handler).open()

    async def test_malformed_json(self):
        def handler(request):
            return httpx.Response(200, text="not json")

        with pytest.raises(QuantumRuntimeError):
            await remote(handler).open()

    @pytest.mark.parametrize(
        "exc, error",
        [
            (httpx.ConnectError("refused"), ResourceUnavailableError),
            (httpx.ReadTimeout("slow"), OperationTimeoutError),
            (httpx.ReadError("reset"), BackendConnectionError),
        ],
    )
    async def test_transport_errors(self, exc, error):
        def handler(request):
            raise exc

        with pytest.raises(error):
            await remote(handler).entropy(1)

    async def test_close_tolerates_unreachable_backend(self):
        def handler(request):
            raise httpx.ConnectError("gone")

        await remote(handler).close()


class TestCreateResource:

    def test_simulator(self, settings):
        resource = create_resource(ConnectionConfig(), settings)
        assert isinstance(resource, SimulatorResource)

    def test_local_device_is_remote(self, settings):
        config = ConnectionConfig(backend_type="local_quantum_device", endpoint="http://127.0.0.1:9000")
        resource = create_resource(config, settings)
        assert isinstance(resource, RemoteResource)
        assert resource.endpoint == "http://127.0.0.1:9000"

    @pytest.mark.parametrize(
        "provider_settings",
        [{"noise_level": "loud"}, {"eavesdrop_rate": "1.5"}, {"seed": "abc"}],
    )
    def test_invalid_simulator_settings(self, settings, provider_settings):
        with pytest.raises(InvalidArgumentError):
            create_resource(ConnectionConfig(provider_settings=provider_settings), settings)


class TestSimulator:

    async def test_closed_session_is_unavailable(self):
        resource = SimulatorResource(LIMITS, seed=1)
        with pytest.raises(ResourceUnavailableError):
            await resource.entropy(4)

    async def test_transmit_respects_limits(self):
        resource = SimulatorResource(ResourceLimits(max_qubits=1, max_shots=2), seed=1)
        await resource.open()
        with pytest.raises(QuantumRuntimeError):
            await resource.transmit([0, 1, 0], [0, 0, 0], [0, 0, 0])

    async def test_noiseless_matching_bases_agree(self):
        resource = SimulatorResource(LIMITS, seed=1)
        await resource.open()
        bits = [0, 1] * 100
        bases = [0, 1, 1, 0] * 50
        assert await resource.transmit(bits, bases, bases) == bits

    async def test_eavesdropper_detected(self, settings):
        rt = EasyQRuntime(settings)
        rt.initialize()
        await rt.configure(
            {"backend_type": "simulator", "provider_settings": {"seed": "3", "eavesdrop_rate": "1.0"}}
        )
        report = await rt.verify_channel_security(ChannelOptions(probe_bits=512))
        assert report.verdict == SecurityVerdict.COMPROMISED
        assert report.qber > 0.15
        await rt.shutdown()

    async def test_search_only_reports_matches(self, settings):
        rt = EasyQRuntime(settings)
        rt.initialize()
        await rt.configure({"backend_type": "simulator", "provider_settings": {"seed": "5"}})
        result = await rt.search(
            ["a", "b", "c", "d"], "equals 'c'", SearchOptions(max_iterations=10)
        )
        assert result.indices in ([], [2])
        assert result.confidence >= 0.9
        await rt.shutdown()
