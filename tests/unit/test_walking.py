import pytest

from gaitauth.authentication.walking import WalkingDetector
from gaitauth.gait_config import CadenceConfig

SEC = 1_000_000_000


@pytest.fixture
def detector():
    return WalkingDetector(CadenceConfig(min_steps=5, confirm_window_sec=7.0, timeout_sec=20.0))


def test_five_steps_within_window_confirm_walking(detector):
    decisions = [detector.update(t * SEC) for t in range(5)]

    assert decisions == [None, None, None, None, True]
    assert detector.walking is True
    assert detector.step_count == 0
    assert detector.window_start is None


def test_sixth_step_starts_a_fresh_window(detector):
    for t in range(5):
        detector.update(t * SEC)

    assert detector.update(4 * SEC + 500_000_000) is None
    assert detector.step_count == 1
    assert detector.window_start == 4 * SEC + 500_000_000


def test_gap_longer_than_timeout_reports_not_walking(detector):
    assert detector.update(0) is None
    assert detector.update(25 * SEC) is False
    assert detector.walking is False
    assert detector.step_count == 0


def test_slow_cadence_stays_undecided_until_timeout(detector):
    # 5 steps spread over 8s: too slow to confirm, not yet timed out.
    for t in (0, 2, 4, 6):
        assert detector.update(t * SEC) is None
    assert detector.update(8 * SEC) is None
    assert detector.step_count == 5

    assert detector.update(21 * SEC) is False


def test_confirm_rule_takes_precedence_over_timeout():
    detector = WalkingDetector(CadenceConfig(min_steps=2, confirm_window_sec=7.0, timeout_sec=7.0))
    detector.update(0)
    # elapsed == 6.9s: confirm satisfied, timeout not; walking wins.
    assert detector.update(6_900_000_000) is True


def test_not_walking_is_reported_again_after_each_timeout(detector):
    detector.update(0)
    assert detector.update(25 * SEC) is False
    detector.update(30 * SEC)
    assert detector.update(60 * SEC) is False


def test_boundary_at_exact_confirm_window_is_not_walking(detector):
    for t in (0, 1, 2, 3):
        detector.update(t * SEC)
    assert detector.update(7 * SEC) is None


def test_reset_clears_state(detector):
    for t in range(5):
        detector.update(t * SEC)
    detector.update(10 * SEC)
    detector.reset()

    assert detector.walking is False
    assert detector.step_count == 0
