import numpy as np
import pytest

from interface_finder.plan import build_scan_plan


@pytest.mark.parametrize(
    ("range_nm", "step_nm", "expected_len"),
    [(2000.0, 50.0, 41), (400.0, 10.0, 41), (100.0, 100.0, 2), (30.0, 7.5, 5)],
)
def test_plan_is_symmetric_uniform_and_sized(range_nm: float, step_nm: float, expected_len: int) -> None:
    plan = build_scan_plan(range_nm, step_nm)

    assert len(plan) == expected_len
    assert plan.offsets_nm[0] == pytest.approx(-range_nm / 2)
    assert plan.offsets_nm[-1] == pytest.approx(range_nm / 2)
    steps = np.diff(plan.offsets_nm)
    assert np.all(steps > 0)
    assert steps == pytest.approx(np.full(expected_len - 1, step_nm))


def test_plan_contains_zero_for_even_number_of_steps() -> None:
    plan = build_scan_plan(2000.0, 50.0)
    assert plan.offsets_nm[20] == pytest.approx(0.0)


def test_absolute_positions_are_offset_by_start() -> None:
    plan = build_scan_plan(400.0, 100.0)

    positions = plan.absolute_positions(12_000.0)

    assert positions.tolist() == pytest.approx([11_800.0, 11_900.0, 12_000.0, 12_100.0, 12_200.0])


def test_plan_offsets_are_read_only() -> None:
    plan = build_scan_plan(100.0, 50.0)
    with pytest.raises(ValueError):
        plan.offsets_nm[0] = 5.0


@pytest.mark.parametrize(("range_nm", "step_nm"), [(0.0, 10.0), (-100.0, 10.0), (100.0, 0.0), (100.0, -5.0)])
def test_plan_rejects_non_positive_inputs(range_nm: float, step_nm: float) -> None:
    with pytest.raises(ValueError, match="must be > 0"):
        build_scan_plan(range_nm, step_nm)


def test_plan_rejects_range_not_multiple_of_step() -> None:
    with pytest.raises(ValueError, match="integer multiple"):
        build_scan_plan(1000.0, 300.0)


def test_plan_rejects_step_larger_than_range() -> None:
    with pytest.raises(ValueError, match="integer multiple"):
        build_scan_plan(100.0, 400.0)
