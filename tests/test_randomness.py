import pytest

from easyq.config import Settings
from easyq.exceptions import (
    InvalidArgumentError,
    NotInitializedError,
    OperationTimeoutError,
    QuantumRuntimeError,
    ResourceUnavailableError,
)
from easyq.models import Provenance, ResourceLimits
from easyq.runtime import EasyQRuntime

from conftest import ScriptedFactory


class TestRandomInt:

    async def test_in_range(self, runtime):
        for _ in range(50):
            result = await runtime.random_int(1, 6)
            assert 1 <= result.value <= 6
            assert result.provenance == Provenance.QUANTUM_SOURCED

    async def test_negative_range(self, runtime):
        for _ in range(20):
            result = await runtime.random_int(-1000, -990)
            assert -1000 <= result.value <= -990

    async def test_large_range(self, runtime):
        result = await runtime.random_int(0, 2 ** 100)
        assert 0 <= result.value <= 2 ** 100

    async def test_single_value(self, runtime, factory):
        result = await runtime.random_int(5, 5)
        assert result.value == 5
        assert factory.last.entropy_calls == 0

    async def test_min_greater_than_max(self, runtime, factory):
        with pytest.raises(InvalidArgumentError):
            await runtime.random_int(10, 1)
        assert factory.last.entropy_calls == 0

    async def test_non_integer_bounds(self, runtime):
        with pytest.raises(InvalidArgumentError):
            await runtime.random_int(1.5, 3)
        with pytest.raises(InvalidArgumentError):
            await runtime.random_int(True, 3)

    async def test_records_usage(self, runtime):
        await runtime.random_int(0, 255)
        connection = runtime.manager.active_connection()
        assert connection.usage["entropy_bytes"] >= 1

    async def test_rejection_limit(self, settings, fallback_csprng):
        class AllOnes(ScriptedFactory):
            def __call__(self, config, s):
                resource = super().__call__(config, s)

                async def entropy(size):
                    return b"\xff" * size

                resource.entropy = entropy
                return resource

        settings.max_rejection_draws = 4
        rt = EasyQRuntime(settings, AllOnes(), fallback=fallback_csprng)
        rt.initialize()
        await rt.configure({"backend_type": "simulator"})
        # Span 4 masks to 3 bits; 0b111 is always out of range.
        with pytest.raises(QuantumRuntimeError):
            await rt.random_int(0, 4)
        await rt.shutdown()


class TestRandomBytes:

    @pytest.mark.parametrize("length", [1, 16, 63, 64, 65, 1000])
    async def test_exact_length(self, runtime, length):
        result = await runtime.random_bytes(length)
        assert len(result.value) == length
        assert result.provenance == Provenance.QUANTUM_SOURCED

    async def test_zero_length(self, runtime, factory):
        result = await runtime.random_bytes(0)
        assert result.value == b""
        assert factory.last.entropy_calls == 0

    async def test_negative_length(self, runtime):
        with pytest.raises(InvalidArgumentError):
            await runtime.random_bytes(-1)

    async def test_chunked_to_limits(self, settings, fallback_csprng):
        factory = ScriptedFactory(limits=ResourceLimits(max_qubits=2, max_shots=4))
        rt = EasyQRuntime(settings, factory, fallback=fallback_csprng)
        rt.initialize()
        await rt.configure({"backend_type": "simulator"})

        result = await rt.random_bytes(10)
        assert len(result.value) == 10
        # 8 positions per call is one byte per call.
        assert factory.last.entropy_calls == 10
        await rt.shutdown()

    async def test_short_read_is_runtime_error(self, runtime, factory):
        async def short(size):
            return b"\x00" * (size - 1)

        factory.last.entropy = short
        with pytest.raises(QuantumRuntimeError):
            await runtime.random_bytes(8)

    async def test_not_configured(self, settings, factory):
        rt = EasyQRuntime(settings, factory)
        with pytest.raises(NotInitializedError):
            await rt.random_bytes(4)
        rt.initialize()
        with pytest.raises(NotInitializedError):
            await rt.random_bytes(4)

    async def test_timeout(self, runtime, factory):
        import asyncio

        async def slow(size):
            await asyncio.sleep(1.0)
            return b"\x00" * size

        factory.last.entropy = slow
        with pytest.raises(OperationTimeoutError):
            await runtime.random_bytes(4, timeout=0.05)

    async def test_invalid_timeout(self, runtime):
        with pytest.raises(InvalidArgumentError):
            await runtime.random_bytes(4, timeout=0)


class TestFallback:

    async def test_unavailable_resource_falls_back(self, runtime, factory):
        factory.last.available = False
        result = await runtime.random_bytes(32)
        assert len(result.value) == 32
        assert result.provenance == Provenance.FALLBACK_SOURCED
        assert runtime.manager.active_connection().usage["entropy_bytes"] == 0

    async def test_fallback_int_is_flagged(self, runtime, factory):
        factory.last.available = False
        result = await runtime.random_int(1, 100)
        assert 1 <= result.value <= 100
        assert result.provenance == Provenance.FALLBACK_SOURCED

    async def test_fallback_is_logged_with_its_flag(self, runtime, factory, caplog):
        factory.last.available = False
        with caplog.at_level("WARNING", logger="easyq.policy"):
            await runtime.random_bytes(4)
        assert "fallback_sourced" in caplog.text

    async def test_fallback_disabled(self, factory, fallback_csprng):
        settings = Settings(allow_classical_fallback=False, default_timeout=5.0)
        rt = EasyQRuntime(settings, factory, fallback=fallback_csprng)
        rt.initialize()
        await rt.configure({"backend_type": "simulator"})
        factory.last.available = False

        with pytest.raises(ResourceUnavailableError):
            await rt.random_bytes(8)
        await rt.shutdown()
