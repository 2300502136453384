import random

import pytest

from easyq.qkd import amplify_privacy, binary_entropy, pack_bits, reconcile, secure_key_length
from easyq.qkd.reconciliation import VERIFICATION_TAG_BITS, initial_block_size


def noisy_copy(reference, positions):
    noisy = list(reference)
    for p in positions:
        noisy[p] ^= 1
    return noisy


@pytest.fixture
def reference():
    rng = random.Random(11)
    return [rng.randint(0, 1) for _ in range(1000)]


class TestReconcile:

    def test_block_size(self):
        assert initial_block_size(0.02) == 37
        assert initial_block_size(0.0) == 73
        assert initial_block_size(0.5) == 4

    def test_corrects_isolated_errors(self, reference):
        errors = range(10, 1000, 50)
        noisy = noisy_copy(reference, errors)

        result = reconcile(reference, noisy, 0.02, 4, random.Random(1))

        assert result.verified
        assert result.corrected == reference
        assert result.corrected_errors == len(errors)
        assert result.passes == 4

    def test_leakage_accounting(self, reference):
        errors = range(10, 1000, 50)
        result = reconcile(reference, noisy_copy(reference, errors), 0.02, 4, random.Random(1))

        # 28 + 14 + 7 + 4 block parities, at least one bisection parity per error.
        assert result.leaked_bits >= 53 + len(errors) + VERIFICATION_TAG_BITS

    def test_clean_key_leaks_parities_and_tag(self):
        bits = [1, 0] * 50
        result = reconcile(bits, list(bits), 0.0, 2, random.Random(1))

        assert result.verified
        assert result.corrected_errors == 0
        assert result.leaked_bits == 2 + 1 + VERIFICATION_TAG_BITS

    def test_correction_revisits_earlier_passes(self):
        class FixedShuffle:
            def shuffle(self, seq):
                seq[:] = [0, 8, 9, 10, 11, 12, 13, 14,
                          1, 4, 15, 16, 17, 18, 19, 20,
                          5, 2, 3, 6, 7, 21, 22, 23]

        reference = [0, 1] * 12
        # Both first-pass blocks hold two errors and look clean. Fixing 0
        # in the second pass exposes 1, which exposes 4, which exposes 5.
        noisy = noisy_copy(reference, [0, 1, 4, 5])

        result = reconcile(reference, noisy, 0.5, 2, FixedShuffle())

        assert result.corrected == reference
        assert result.corrected_errors == 4
        assert result.passes == 2
        assert result.verified

    def test_checkpoint_runs_before_every_pass(self):
        bits = [1, 0] * 50
        calls = []
        result = reconcile(bits, list(bits), 0.0, 3, random.Random(1), checkpoint=lambda: calls.append(1))

        assert result.verified
        assert len(calls) == 3

    def test_checkpoint_can_abandon_run(self, reference):
        class Abandoned(Exception):
            pass

        calls = []

        def checkpoint():
            calls.append(1)
            if len(calls) == 2:
                raise Abandoned()

        with pytest.raises(Abandoned):
            reconcile(reference, noisy_copy(reference, [5]), 0.02, 4, random.Random(1), checkpoint=checkpoint)

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            reconcile([0, 1], [0], 0.01, 1, random.Random(1))

    def test_shared_seed_gives_same_outcome(self, reference):
        noisy = noisy_copy(reference, [3, 4, 5, 400, 401])
        first = reconcile(reference, noisy, 0.01, 4, random.Random(9))
        second = reconcile(reference, noisy, 0.01, 4, random.Random(9))
        assert first == second


class TestPrivacyAmplification:

    def test_binary_entropy(self):
        assert binary_entropy(0.0) == 0.0
        assert binary_entropy(0.5) == pytest.approx(1.0)
        assert binary_entropy(0.11) == pytest.approx(0.4999, abs=1e-3)

    def test_secure_key_length(self):
        assert secure_key_length(1000, 0.0, 64) == 936
        assert secure_key_length(1000, 0.5, 0) == 0
        assert secure_key_length(100, 0.11, 500) == 0

    def test_pack_bits(self):
        assert pack_bits([1, 0, 0, 0, 0, 0, 0, 1, 1]) == b"\x81\x80"
        assert pack_bits([]) == b""

    def test_output_length_and_mask(self):
        key = amplify_privacy([1, 0, 1, 1] * 64, 12, b"\x00" * 16)
        assert len(key) == 2
        assert key[1] & 0x0F == 0

    def test_salt_changes_key(self):
        bits = [1, 0, 1, 1] * 64
        assert amplify_privacy(bits, 128, b"\x01" * 16) != amplify_privacy(bits, 128, b"\x02" * 16)
        assert amplify_privacy(bits, 128, b"\x01" * 16) == amplify_privacy(bits, 128, b"\x01" * 16)

    @pytest.mark.parametrize("output_bits", [0, -1, 255 * 32 * 8 + 1])
    def test_invalid_length(self, output_bits):
        with pytest.raises(ValueError):
            amplify_privacy([1, 0], output_bits, b"")

    def test_empty_input(self):
        with pytest.raises(ValueError):
            amplify_privacy([], 128, b"")
