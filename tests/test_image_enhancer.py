import cv2
import numpy as np
import pytest

from ktp_bot.services.image_enhancer import DecodeError, enhance


def _solid(bgr, shape=(12, 20)):
    frame = np.zeros((*shape, 3), dtype=np.uint8)
    frame[:] = bgr
    return frame


def test_output_is_twice_the_size():
    enhanced = enhance(_solid((0, 0, 0), shape=(10, 30)))
    assert enhanced.shape == (20, 60, 3)
    assert enhanced.dtype == np.uint8


def test_luminance_and_contrast_stretch():
    # B=50 G=100 R=200 -> lum 124.2 -> 124.2 * 1.5 - 64 = 122.3
    enhanced = enhance(_solid((50, 100, 200)))
    assert np.all(np.abs(enhanced.astype(int) - 122) <= 1)


def test_values_are_clamped():
    assert np.all(enhance(_solid((255, 255, 255))) == 255)
    assert np.all(enhance(_solid((0, 0, 0))) == 0)


def test_channels_are_identical():
    rng = np.random.default_rng(7)
    frame = rng.integers(0, 256, size=(16, 16, 3), dtype=np.uint8)
    enhanced = enhance(frame)
    assert np.array_equal(enhanced[..., 0], enhanced[..., 1])
    assert np.array_equal(enhanced[..., 1], enhanced[..., 2])


def test_enhance_is_deterministic_and_read_only():
    rng = np.random.default_rng(3)
    frame = rng.integers(0, 256, size=(9, 13, 3), dtype=np.uint8)
    first = enhance(frame)
    assert np.array_equal(first, enhance(frame))
    assert not first.flags.writeable


def test_source_frame_untouched():
    frame = _solid((10, 20, 30))
    before = frame.copy()
    enhance(frame)
    assert np.array_equal(frame, before)


def test_encoded_bytes_are_decoded():
    ok, encoded = cv2.imencode(".png", _solid((50, 100, 200), shape=(8, 8)))
    assert ok
    assert enhance(encoded.tobytes()).shape == (16, 16, 3)


def test_grayscale_frame_accepted():
    assert enhance(np.full((5, 5), 128, dtype=np.uint8)).shape == (10, 10, 3)


@pytest.mark.parametrize(
    "frame",
    [
        None,
        b"",
        b"definitely not an image",
        np.zeros((0, 0, 3), dtype=np.uint8),
        np.zeros((4, 4, 2), dtype=np.uint8),
        "frame.jpg",
    ],
)
def test_undecodable_frames_raise(frame):
    with pytest.raises(DecodeError):
        enhance(frame)
