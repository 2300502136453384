import pytest

from easyq.exceptions import QuantumRuntimeError
from easyq.randomness import ChaCha20CSPRNG, EntropyPool, get_fallback_csprng


class TestEntropyPool:

    @pytest.fixture
    def pool(self):
        return EntropyPool()

    def test_extract_length(self, pool):
        for size in (1, 31, 32, 33, 256):
            assert len(pool.extract(size)) == size

    def test_extract_ratchets(self, pool):
        assert pool.extract(32) != pool.extract(32)

    def test_extract_rejects_non_positive(self, pool):
        with pytest.raises(ValueError):
            pool.extract(0)

    def test_health_check(self, pool):
        assert pool.health_check()
        assert pool.get_stats()["healthy"]

    def test_reseed_counts(self, pool):
        pool.reseed()
        pool.reseed()
        assert pool.get_stats()["reseed_count"] == 2

    def test_sources(self, pool):
        sources = pool.get_stats()["sources"]
        assert "os_urandom" in sources
        assert "timing_jitter" in sources


class TestChaCha20CSPRNG:

    def test_generate_length(self, fallback_csprng):
        for size in (1, 16, 64, 1000):
            assert len(fallback_csprng.generate(size)) == size

    def test_zero_length(self, fallback_csprng):
        assert fallback_csprng.generate(0) == b""

    def test_negative_length(self, fallback_csprng):
        with pytest.raises(ValueError):
            fallback_csprng.generate(-1)

    def test_consecutive_calls_differ(self, fallback_csprng):
        # Each call runs under its own nonce, so outputs never repeat.
        assert fallback_csprng.generate(32) != fallback_csprng.generate(32)

    def test_reseed_after_threshold(self):
        csprng = ChaCha20CSPRNG(reseed_threshold=64)
        csprng.generate(64)
        csprng.generate(8)
        stats = csprng.get_stats()
        assert stats["pool"]["reseed_count"] == 1
        assert stats["bytes_since_reseed"] == 8

    def test_unhealthy_pool_is_runtime_error(self):
        class BrokenPool(EntropyPool):
            def health_check(self):
                return False

        with pytest.raises(QuantumRuntimeError):
            ChaCha20CSPRNG(BrokenPool())

    def test_shared_instance(self):
        assert get_fallback_csprng() is get_fallback_csprng()
