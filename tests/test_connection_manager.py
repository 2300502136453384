import pytest

from easyq.connection import ConnectionConfig, ConnectionManager
from easyq.connection.models import SIMULATOR_ENDPOINT, BackendType
from easyq.exceptions import (
    AuthenticationError,
    InvalidArgumentError,
    NotInitializedError,
    OperationTimeoutError,
    RuntimeNotReadyError,
)
from easyq.models import SessionState
from easyq.resources import SimulatorResource


@pytest.fixture
def manager(settings, factory):
    m = ConnectionManager(settings, factory)
    m.initialize()
    return m


class TestLifecycle:

    async def test_configure_requires_initialize(self, settings, factory):
        manager = ConnectionManager(settings, factory)
        with pytest.raises(NotInitializedError):
            await manager.configure({"backend_type": "simulator"})
        assert factory.created == []

    def test_initialize_twice_fails_and_keeps_state(self, manager):
        with pytest.raises(RuntimeNotReadyError):
            manager.initialize()
        assert manager.initialized
        assert manager.state == SessionState.UNCONFIGURED

    async def test_shutdown_uninitialized_is_noop(self, settings, factory):
        manager = ConnectionManager(settings, factory)
        await manager.shutdown()
        assert not manager.initialized

    async def test_shutdown_releases_connection(self, manager, factory):
        await manager.configure({"backend_type": "simulator"})
        await manager.shutdown()
        assert factory.last.closed
        assert not manager.initialized
        with pytest.raises(NotInitializedError):
            manager.active_connection()

    async def test_initialize_after_shutdown(self, manager):
        await manager.shutdown()
        manager.initialize()
        assert manager.state == SessionState.UNCONFIGURED

    def test_active_connection_before_configure(self, manager):
        with pytest.raises(NotInitializedError):
            manager.active_connection()

    def test_version(self, manager):
        assert manager.version == "0.1.0"


class TestConfigure:

    async def test_configure_simulator(self, manager, factory):
        connection = await manager.configure({"backend_type": "simulator"})
        assert manager.state == SessionState.READY
        assert manager.active_connection() is connection
        assert connection.endpoint == SIMULATOR_ENDPOINT
        assert factory.last.opened

    async def test_reconfigure_leaves_exactly_one_connection(self, manager, factory):
        first = await manager.configure({"backend_type": "simulator"})
        second = await manager.configure({"backend_type": "simulator"})

        assert first.connection_id != second.connection_id
        assert manager.active_connection() is second
        assert factory.created[0].closed
        assert not factory.created[1].closed

    async def test_limits_are_minimum_of_config_and_backend(self, manager):
        connection = await manager.configure(
            {"backend_type": "simulator", "max_qubits": 4, "max_shots": 4096}
        )
        assert connection.limits.max_qubits == 4
        assert connection.limits.max_shots == 64

    async def test_invalid_config_fails_and_tears_down(self, manager, factory):
        await manager.configure({"backend_type": "simulator"})

        with pytest.raises(InvalidArgumentError):
            await manager.configure({"backend_type": "ibm_quantum_experience"})

        assert manager.state == SessionState.FAILED
        assert factory.created[0].closed
        with pytest.raises(NotInitializedError):
            manager.active_connection()

    async def test_unknown_field_rejected(self, manager):
        with pytest.raises(InvalidArgumentError):
            await manager.configure({"backend_type": "simulator", "colour": "blue"})

    async def test_non_object_config_rejected(self, manager):
        with pytest.raises(InvalidArgumentError):
            await manager.configure(["simulator"])

    async def test_cloud_without_endpoint_mapping(self, manager):
        with pytest.raises(InvalidArgumentError):
            await manager.configure(
                {"backend_type": "google_quantum_ai", "token": "t0ken"}
            )
        assert manager.state == SessionState.FAILED

    async def test_authentication_failure(self, manager, factory):
        factory.kwargs["fail_open"] = AuthenticationError("bad token")
        with pytest.raises(AuthenticationError):
            await manager.configure({"backend_type": "simulator"})
        assert manager.state == SessionState.FAILED
        assert factory.last.closed

    async def test_handshake_timeout(self, manager, factory):
        factory.kwargs["handshake_delay"] = 1.0
        with pytest.raises(OperationTimeoutError):
            await manager.configure({"backend_type": "simulator", "timeout": 0.05})
        assert manager.state == SessionState.FAILED

    async def test_recover_after_failure(self, manager, factory):
        factory.kwargs["fail_open"] = AuthenticationError("bad token")
        with pytest.raises(AuthenticationError):
            await manager.configure({"backend_type": "simulator"})

        factory.kwargs.pop("fail_open")
        await manager.configure({"backend_type": "simulator"})
        assert manager.state == SessionState.READY

    async def test_disconnect(self, manager, factory):
        await manager.configure({"backend_type": "simulator"})
        await manager.disconnect()
        assert manager.state == SessionState.UNCONFIGURED
        assert factory.last.closed
        assert manager.initialized

    async def test_use_default_simulator(self, settings):
        manager = ConnectionManager(settings)
        manager.initialize()
        connection = await manager.use_default_simulator()
        assert isinstance(connection.resource, SimulatorResource)
        await manager.shutdown()

    async def test_connection_summary_hides_credentials(self, manager):
        connection = await manager.configure({"backend_type": "simulator", "token": "s3cret"})
        summary = connection.to_dict()
        assert "s3cret" not in str(summary)
        assert summary["state"] == "ready"
        assert summary["usage"] == {"entropy_bytes": 0, "search_rounds": 0, "qkd_sessions": 0}


class TestConnectionConfig:

    def test_cloud_requires_credentials(self):
        with pytest.raises(ValueError):
            ConnectionConfig(backend_type=BackendType.MICROSOFT_QUANTUM_CLOUD)

    def test_cloud_accepts_username_password(self):
        config = ConnectionConfig(
            backend_type=BackendType.IBM_QUANTUM_EXPERIENCE,
            username="alice",
            password="pw",
        )
        assert not config.is_simulator

    def test_local_device_requires_endpoint(self):
        with pytest.raises(ValueError):
            ConnectionConfig(backend_type=BackendType.LOCAL_QUANTUM_DEVICE)

    def test_custom_requires_provider_name(self):
        with pytest.raises(ValueError):
            ConnectionConfig(backend_type=BackendType.CUSTOM, endpoint="http://qpu.local")
        config = ConnectionConfig(
            backend_type=BackendType.CUSTOM,
            endpoint="http://qpu.local",
            provider_settings={"ProviderName": "acme"},
        )
        assert config.describe()["provider"] == "acme"

    def test_resolve_endpoint_from_settings(self, settings):
        settings.cloud_endpoints = {"google_quantum_ai": "https://quantum.example.com"}
        config = ConnectionConfig(backend_type=BackendType.GOOGLE_QUANTUM_AI, token="t")
        assert config.resolve_endpoint(settings) == "https://quantum.example.com"

    def test_resolve_endpoint_applies_port(self, settings):
        config = ConnectionConfig(
            backend_type=BackendType.LOCAL_QUANTUM_DEVICE,
            endpoint="http://127.0.0.1",
            port=9000,
        )
        assert config.resolve_endpoint(settings).startswith("http://127.0.0.1:9000")

    def test_limits_must_be_positive(self):
        with pytest.raises(ValueError):
            ConnectionConfig(max_qubits=0)
