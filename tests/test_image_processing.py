import numpy as np
import pytest

cv2 = pytest.importorskip("cv2")

from image_processing import (
    IMAGENET_MEAN,
    IMAGENET_STD,
    central_crop,
    detect_layout,
    ilsvrc_preprocess,
    normalize,
    read_image_bgr,
    spatial_size,
    topk_indices,
)


def test_central_crop_keeps_middle() -> None:
    img = np.arange(100, dtype=np.uint8).reshape(10, 10)
    cropped = central_crop(img, 0.5)
    assert cropped.shape == (5, 5)
    assert cropped[0, 0] == img[2, 2]
    assert central_crop(img, 1.0) is img
    with pytest.raises(ValueError):
        central_crop(img, 0.0)


def test_normalize_modes() -> None:
    white = np.full((1, 1, 3), 255, dtype=np.uint8)
    expected = [(1.0 - m) / s for m, s in zip(IMAGENET_MEAN, IMAGENET_STD)]
    assert normalize(white, "imagenet")[0, 0].tolist() == pytest.approx(expected, rel=1e-5)
    assert normalize(white, "inception")[0, 0].tolist() == pytest.approx([1.0, 1.0, 1.0])
    assert normalize(white, "none")[0, 0].tolist() == pytest.approx([1.0, 1.0, 1.0])
    with pytest.raises(ValueError):
        normalize(white, "zscore")


def test_ilsvrc_preprocess_nchw_float() -> None:
    img = np.zeros((40, 60, 3), dtype=np.uint8)
    img[:, :] = (0, 0, 255)  # red in BGR
    out = ilsvrc_preprocess(img, 16, 16, normalization="none")
    assert out.shape == (1, 3, 16, 16)
    assert out.dtype == np.float32
    assert out[0, 0].mean() == pytest.approx(1.0)  # R first after BGR->RGB
    assert out[0, 2].mean() == pytest.approx(0.0)


def test_ilsvrc_preprocess_nhwc_quantized() -> None:
    img = np.full((20, 20, 3), 200, dtype=np.uint8)
    out_u8 = ilsvrc_preprocess(img, 8, 8, input_dtype=np.uint8, layout="NHWC")
    assert out_u8.shape == (1, 8, 8, 3)
    assert out_u8.dtype == np.uint8 and int(out_u8.max()) == 200
    out_i8 = ilsvrc_preprocess(img, 8, 8, input_dtype=np.int8, layout="NHWC")
    assert out_i8.dtype == np.int8 and int(out_i8.max()) == 72


def test_detect_layout_and_spatial_size() -> None:
    assert detect_layout([1, 3, 224, 224]) == "NCHW"
    assert detect_layout([1, 299, 299, 3]) == "NHWC"
    assert detect_layout(["N", "C", "H", "W"]) == "NCHW"
    assert spatial_size([1, 299, 299, 3], "NHWC") == (299, 299)
    assert spatial_size([1, 3, "h", "w"], "NCHW") == (224, 224)


def test_read_image_bgr_unreadable(tmp_path) -> None:
    bogus = tmp_path / "broken.jpg"
    bogus.write_bytes(b"not a jpeg")
    with pytest.raises(RuntimeError, match="Failed to read image"):
        read_image_bgr(str(bogus))


def test_topk_indices_order() -> None:
    assert topk_indices([0.1, 0.7, 0.2], 2) == [1, 2]
    assert topk_indices(np.array([[3.0, 1.0, 2.0]]), 3) == [0, 2, 1]
