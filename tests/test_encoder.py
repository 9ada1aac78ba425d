import numpy as np
import pytest

from realtime_detector.errors import EncodingError
from realtime_detector.inference.yolo import encode_frame, letterbox


def _solid_frame(h, w, bgr):
    frame = np.zeros((h, w, 3), dtype=np.uint8)
    frame[:, :] = bgr
    return frame


@pytest.mark.parametrize("shape", [(480, 640, 3), (640, 640, 3), (50, 300, 4), (1, 1, 3), (720, 1280)])
def test_tensor_shape_and_range(shape):
    rng = np.random.default_rng(0)
    frame = rng.integers(0, 256, size=shape, dtype=np.uint8)

    tensor, _ = encode_frame(frame, size=64)

    assert tensor.shape == (1, 3, 64, 64)
    assert tensor.size == 3 * 64 * 64
    assert tensor.dtype == np.float32
    assert tensor.flags["C_CONTIGUOUS"]
    assert tensor.min() >= 0.0
    assert tensor.max() <= 1.0


def test_planes_are_red_green_blue_from_bgr_frame():
    frame = _solid_frame(10, 20, (255, 0, 51))  # B=255, G=0, R=51

    tensor, _ = encode_frame(frame, size=8, channel_order="bgr")

    assert np.allclose(tensor[0, 0], 51 / 255.0)
    assert np.allclose(tensor[0, 1], 0.0)
    assert np.allclose(tensor[0, 2], 1.0)


def test_rgba_frame_drops_alpha():
    frame = np.zeros((4, 4, 4), dtype=np.uint8)
    frame[:, :] = (255, 128, 0, 7)

    tensor, _ = encode_frame(frame, size=4, channel_order="rgba")

    assert np.allclose(tensor[0, 0], 1.0)
    assert np.allclose(tensor[0, 1], 128 / 255.0)
    assert np.allclose(tensor[0, 2], 0.0)


def test_grayscale_frame_is_replicated():
    frame = np.full((6, 6), 255, dtype=np.uint8)

    tensor, _ = encode_frame(frame, size=6)

    assert np.allclose(tensor, 1.0)


def test_tensor_is_read_only():
    tensor, _ = encode_frame(_solid_frame(8, 8, (1, 2, 3)), size=8)

    with pytest.raises(ValueError):
        tensor[0, 0, 0, 0] = 0.5


def test_stretch_meta_scales_each_axis():
    _, meta = encode_frame(_solid_frame(480, 640, (0, 0, 0)), size=640, resize_mode="stretch")

    assert meta.scale_x == pytest.approx(1.0)
    assert meta.scale_y == pytest.approx(640 / 480)
    assert meta.pad_x == 0.0
    assert meta.pad_y == 0.0
    assert meta.orig_shape == (480, 640)


def test_letterbox_pads_with_gray_and_keeps_aspect():
    frame = _solid_frame(50, 100, (255, 255, 255))

    canvas, meta = letterbox(frame, 100)

    assert canvas.shape == (100, 100, 3)
    assert meta.scale_x == meta.scale_y == pytest.approx(1.0)
    assert meta.pad_x == 0.0
    assert meta.pad_y == 25.0
    assert (canvas[0, 0] == 114).all()
    assert (canvas[50, 50] == 255).all()


def test_letterbox_mode_through_encoder():
    frame = _solid_frame(50, 100, (255, 255, 255))

    tensor, meta = encode_frame(frame, size=100, resize_mode="letterbox")

    assert tensor.shape == (1, 3, 100, 100)
    assert tensor[0, 0, 0, 0] == pytest.approx(114 / 255.0)
    assert tensor[0, 0, 50, 50] == pytest.approx(1.0)
    assert meta.pad_y == 25.0


@pytest.mark.parametrize("shape", [(0, 640, 3), (480, 0, 3), (0, 0, 3)])
def test_zero_sized_frame_raises(shape):
    with pytest.raises(EncodingError):
        encode_frame(np.zeros(shape, dtype=np.uint8), size=64)


def test_missing_frame_raises():
    with pytest.raises(EncodingError):
        encode_frame(None, size=64)


def test_unknown_resize_mode_raises():
    with pytest.raises(EncodingError):
        encode_frame(_solid_frame(4, 4, (0, 0, 0)), size=4, resize_mode="crop")


def test_unsupported_channel_count_raises():
    with pytest.raises(EncodingError):
        encode_frame(np.zeros((4, 4, 2), dtype=np.uint8), size=4)
