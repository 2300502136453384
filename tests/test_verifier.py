import pytest

from easyq.exceptions import InvalidArgumentError
from easyq.models import ProtocolVariant, SecurityVerdict
from easyq.qkd import ChannelSecurityVerifier
from easyq.qkd.verifier import calculate_security_margin, chsh_estimate, verdict_confidence


@pytest.fixture
def verifier(settings):
    return ChannelSecurityVerifier(settings=settings)


class TestVerdicts:

    def test_secure(self, verifier):
        report = verifier.verify(0.02, 500, 0.11)
        assert report.verdict == SecurityVerdict.SECURE
        assert report.is_secure
        assert report.confidence > 0.99

    def test_compromised(self, verifier):
        report = verifier.verify(0.20, 500, 0.11)
        assert report.verdict == SecurityVerdict.COMPROMISED

    def test_small_sample_is_inconclusive(self, verifier):
        report = verifier.verify(0.02, 10, 0.11)
        assert report.verdict == SecurityVerdict.INCONCLUSIVE

    def test_high_qber_on_small_sample_is_compromised(self, verifier):
        report = verifier.verify(0.30, 10, 0.11)
        assert report.verdict == SecurityVerdict.COMPROMISED

    def test_empty_sample(self, verifier):
        report = verifier.verify(0.0, 0, 0.11)
        assert report.verdict == SecurityVerdict.INCONCLUSIVE
        assert report.confidence == 0.0

    def test_qber_at_threshold_is_secure(self, verifier):
        assert verifier.verify(0.11, 500, 0.11).verdict == SecurityVerdict.SECURE

    def test_deterministic(self, verifier):
        first = verifier.verify(0.05, 200, 0.11)
        second = verifier.verify(0.05, 200, 0.11)
        assert first == second

    def test_custom_min_sample(self, settings):
        verifier = ChannelSecurityVerifier(min_sample_size=5, settings=settings)
        assert verifier.verify(0.02, 10, 0.11).verdict == SecurityVerdict.SECURE

    @pytest.mark.parametrize(
        "args",
        [
            (-0.1, 100, 0.11),
            (1.1, 100, 0.11),
            (0.02, -1, 0.11),
            (0.02, 100, 2.0),
            (0.02, 10.5, 0.11),
        ],
    )
    def test_invalid_statistics(self, verifier, args):
        with pytest.raises(InvalidArgumentError):
            verifier.verify(*args)


class TestE91:

    def test_chsh_estimate(self):
        assert chsh_estimate(0.0) == pytest.approx(2 * 2 ** 0.5)
        assert chsh_estimate(0.5) == pytest.approx(0.0)

    def test_security_margin(self):
        assert calculate_security_margin(2.5) == pytest.approx(60.36, abs=0.01)
        assert calculate_security_margin(1.9) == 0.0
        assert calculate_security_margin(3.0) == 100.0

    def test_e91_secure(self, verifier):
        report = verifier.verify(0.02, 500, 0.11, ProtocolVariant.E91, 2.2)
        assert report.verdict == SecurityVerdict.SECURE
        assert report.security_parameter == pytest.approx(2.715, abs=0.001)
        assert 0 < report.security_margin < 100

    def test_e91_below_security_threshold(self, verifier):
        report = verifier.verify(0.10, 500, 0.11, ProtocolVariant.E91, 2.5)
        assert report.verdict == SecurityVerdict.COMPROMISED

    def test_bb84_has_no_chsh(self, verifier):
        report = verifier.verify(0.02, 500, 0.11)
        assert report.security_parameter is None
        assert report.security_margin is None


class TestConfidence:

    def test_grows_with_sample_size(self):
        assert verdict_confidence(0.05, 100, 0.11) < verdict_confidence(0.05, 1000, 0.11)

    def test_grows_with_distance_from_threshold(self):
        assert verdict_confidence(0.09, 500, 0.11) < verdict_confidence(0.01, 500, 0.11)

    def test_bounded(self):
        assert 0.5 <= verdict_confidence(0.11, 500, 0.11) <= 1.0
