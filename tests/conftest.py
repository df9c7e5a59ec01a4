import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# BGR colours; a channel-mean classifier maps them to red=0, green=1, blue=2
COLOURS = {
    "red": (0, 0, 255),
    "green": (0, 255, 0),
    "blue": (255, 60, 0),  # some green keeps the rank order unambiguous
}

# (image colour, ground truth label); the last entry is deliberately mislabelled
DATASET = [
    ("red", "red"),
    ("green", "green"),
    ("blue", "blue"),
    ("red", "red"),
    ("green", "green"),
    ("blue", "red"),
]


def _write_lines(path: Path, lines) -> Path:
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def labels_file(tmp_path: Path) -> Path:
    return _write_lines(tmp_path / "model_labels.txt", ["red", "green", "blue"])


@pytest.fixture
def colour_dataset(tmp_path: Path):
    """Directory of solid-colour JPEGs plus the matching ground truth labels file."""
    cv2 = pytest.importorskip("cv2")
    images_dir = tmp_path / "images"
    images_dir.mkdir()
    for idx, (colour, _) in enumerate(DATASET, start=1):
        img = np.zeros((32, 40, 3), dtype=np.uint8)
        img[:, :] = COLOURS[colour]
        cv2.imwrite(str(images_dir / f"ILSVRC2012_val_{idx:08d}.jpg"), img, [cv2.IMWRITE_JPEG_QUALITY, 100])
    gt = _write_lines(tmp_path / "ground_truth.txt", [label for _, label in DATASET])
    return images_dir, gt


@pytest.fixture
def channel_mean_model(tmp_path: Path) -> Path:
    """ONNX model scoring each RGB channel by its mean: [1,3,16,16] -> [1,3]."""
    onnx = pytest.importorskip("onnx")
    from onnx import TensorProto, helper

    inp = helper.make_tensor_value_info("input", TensorProto.FLOAT, [1, 3, 16, 16])
    out = helper.make_tensor_value_info("scores", TensorProto.FLOAT, [1, 3])
    nodes = [
        helper.make_node("GlobalAveragePool", ["input"], ["pooled"]),
        helper.make_node("Flatten", ["pooled"], ["scores"], axis=1),
    ]
    graph = helper.make_graph(nodes, "channel_mean", [inp], [out])
    model = helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)])
    model.ir_version = 8
    onnx.checker.check_model(model)
    path = tmp_path / "channel_mean.onnx"
    onnx.save(model, str(path))
    return path


@pytest.fixture
def fixed_size_reshape_model(tmp_path: Path) -> Path:
    """Model with symbolic spatial dims that only runs on 16x16 inputs: [1,3,h,w] -> [1,3]."""
    onnx = pytest.importorskip("onnx")
    from onnx import TensorProto, helper

    inp = helper.make_tensor_value_info("input", TensorProto.FLOAT, [1, 3, "h", "w"])
    out = helper.make_tensor_value_info("scores", TensorProto.FLOAT, [1, 3])
    shape = helper.make_tensor("shape", TensorProto.INT64, [3], [1, 3, 256])
    nodes = [
        helper.make_node("Reshape", ["input", "shape"], ["flat"]),
        helper.make_node("ReduceMean", ["flat"], ["scores"], axes=[2], keepdims=0),
    ]
    graph = helper.make_graph(nodes, "fixed_size_reshape", [inp], [out], initializer=[shape])
    model = helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)])
    model.ir_version = 8
    onnx.checker.check_model(model)
    path = tmp_path / "fixed_size_reshape.onnx"
    onnx.save(model, str(path))
    return path
