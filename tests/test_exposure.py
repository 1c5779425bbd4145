import pytest

from interface_finder.exposure import (
    ExposureState,
    ExposureVerdict,
    adjusted_exposure_ms,
    evaluate_exposure,
)


def _state() -> ExposureState:
    return ExposureState(exposure_ms=3.5, min_brightness=80.0, max_brightness=200.0)


@pytest.mark.parametrize(
    ("maxima", "verdict"),
    [
        ([50.0], ExposureVerdict.TOO_DIM),
        ([250.0], ExposureVerdict.TOO_BRIGHT),
        ([150.0], ExposureVerdict.OK),
        ([10.0, 20.0, 150.0, 30.0], ExposureVerdict.OK),
        ([10.0, 79.9], ExposureVerdict.TOO_DIM),
        ([100.0, 200.1], ExposureVerdict.TOO_BRIGHT),
    ],
)
def test_evaluate_exposure_uses_global_maximum(maxima, verdict) -> None:
    assert evaluate_exposure(maxima, _state()) is verdict


def test_evaluate_exposure_bounds_are_inclusive() -> None:
    assert evaluate_exposure([80.0], _state()) is ExposureVerdict.OK
    assert evaluate_exposure([200.0], _state()) is ExposureVerdict.OK


def test_evaluate_exposure_does_not_touch_state() -> None:
    state = _state()
    evaluate_exposure([5.0], state)
    evaluate_exposure([255.0], state)
    assert state.exposure_ms == 3.5


def test_evaluate_exposure_rejects_empty_batch() -> None:
    with pytest.raises(ValueError, match="at least one"):
        evaluate_exposure([], _state())


def test_adjusted_exposure_factors() -> None:
    assert adjusted_exposure_ms(ExposureVerdict.TOO_DIM, 2.0) == pytest.approx(3.0)
    assert adjusted_exposure_ms(ExposureVerdict.TOO_BRIGHT, 2.0) == pytest.approx(1.0)
    assert adjusted_exposure_ms(ExposureVerdict.OK, 2.0) == pytest.approx(2.0)


def test_exposure_state_validation() -> None:
    with pytest.raises(ValueError, match="exposure_ms"):
        ExposureState(exposure_ms=0.0)
    with pytest.raises(ValueError, match="min_brightness"):
        ExposureState(exposure_ms=1.0, min_brightness=210.0, max_brightness=200.0)
