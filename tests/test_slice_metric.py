import numpy as np
import pytest

from interface_finder.slice_metric import (
    above_threshold_sum,
    batch_threshold,
    crop_edges,
    max_brightness,
    prepare_slice,
    select_channel,
    to_intensity_array,
)


class _ArrayLike:
    def __init__(self, data):
        self._data = data

    def tolist(self):
        return self._data


def test_to_intensity_array_accepts_array_like_frames() -> None:
    arr = to_intensity_array(_ArrayLike([[0, 1], [2, 3]]))
    assert arr.dtype == float
    assert arr.tolist() == [[0.0, 1.0], [2.0, 3.0]]


def test_to_intensity_array_rejects_empty_frame() -> None:
    with pytest.raises(ValueError):
        to_intensity_array([])


def test_to_intensity_array_rejects_ragged_rows() -> None:
    with pytest.raises(ValueError, match="equal length"):
        to_intensity_array([[1.0], [1.0, 2.0]])


def test_to_intensity_array_rejects_scalars() -> None:
    with pytest.raises(TypeError):
        to_intensity_array(3.0)


def test_select_channel_picks_colour_plane() -> None:
    frame = np.zeros((4, 4, 3))
    frame[:, :, 2] = 9.0

    plane = select_channel(frame, 2)

    assert plane.shape == (4, 4)
    assert np.all(plane == 9.0)


def test_select_channel_passes_mono_frames_through() -> None:
    frame = [[1, 2], [3, 4]]
    assert select_channel(frame, 2).tolist() == [[1.0, 2.0], [3.0, 4.0]]


def test_select_channel_rejects_missing_channel() -> None:
    with pytest.raises(ValueError, match="out of range"):
        select_channel(np.zeros((4, 4, 3)), 3)
    with pytest.raises(ValueError, match="channel index"):
        select_channel(np.zeros((4, 4, 3)), None)


def test_crop_edges_removes_margin_from_every_border() -> None:
    image = np.arange(100, dtype=float).reshape(10, 10)

    cropped = crop_edges(image, 2)

    assert cropped.shape == (6, 6)
    assert cropped[0, 0] == image[2, 2]
    assert cropped[-1, -1] == image[7, 7]


def test_crop_edges_zero_margin_is_identity() -> None:
    image = np.ones((3, 3))
    assert crop_edges(image, 0) is image


def test_crop_edges_rejects_margin_consuming_image() -> None:
    with pytest.raises(ValueError, match="leaves nothing"):
        crop_edges(np.ones((10, 10)), 5)


def test_prepare_slice_excludes_hot_border_pixels() -> None:
    frame = np.zeros((20, 20, 3))
    frame[0, :, 2] = 255.0
    frame[10, 10, 2] = 90.0

    image = prepare_slice(frame, channel=2, margin_px=5)

    assert max_brightness(image) == 90.0


def test_above_threshold_sum_is_strict() -> None:
    image = np.array([[10.0, 60.0], [61.0, 100.0]])
    assert above_threshold_sum(image, 60.0) == pytest.approx(161.0)
    assert above_threshold_sum(image, 100.0) == 0.0


def test_batch_threshold_scales_global_maximum() -> None:
    assert batch_threshold([10.0, 150.0, 90.0], 0.6) == pytest.approx(90.0)
    with pytest.raises(ValueError):
        batch_threshold([], 0.6)
