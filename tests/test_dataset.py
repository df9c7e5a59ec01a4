from pathlib import Path

import pytest

from ilsvrc.dataset import (
    ImageLabel,
    build_image_labels,
    get_splits,
    list_ground_truth_images,
    load_blacklist,
    read_lines,
    shard_image_counts,
)


def test_read_lines_strips_blank_lines(tmp_path: Path) -> None:
    path = tmp_path / "labels.txt"
    path.write_text("tench\n\n  goldfish  \n", encoding="utf-8")
    assert read_lines(str(path)) == ["tench", "goldfish"]


def test_read_lines_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        read_lines(str(tmp_path / "nope.txt"))


def test_load_blacklist(tmp_path: Path) -> None:
    path = tmp_path / "blacklist.txt"
    path.write_text("36\n50\n\n", encoding="utf-8")
    assert load_blacklist(str(path)) == {36, 50}
    assert load_blacklist("") == set()


def test_load_blacklist_rejects_garbage(tmp_path: Path) -> None:
    path = tmp_path / "blacklist.txt"
    path.write_text("12\nabc\n", encoding="utf-8")
    with pytest.raises(ValueError, match="abc"):
        load_blacklist(str(path))


def test_list_ground_truth_images_sorted_and_filtered(tmp_path: Path) -> None:
    for name in ["b.JPEG", "a.jpg", "c.jpeg", "notes.txt", "d.png"]:
        (tmp_path / name).write_bytes(b"")
    found = [Path(p).name for p in list_ground_truth_images(str(tmp_path))]
    assert found == ["a.jpg", "b.JPEG", "c.jpeg"]


def test_list_ground_truth_images_missing_dir(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        list_ground_truth_images(str(tmp_path / "missing"))


def test_build_image_labels_applies_blacklist_then_limit() -> None:
    images = [f"img{i}.jpg" for i in range(1, 6)]
    labels = ["a", "b", "c", "d", "e"]
    pairs = build_image_labels(images, labels, blacklist={2, 4}, number_of_images=2)
    assert pairs == [ImageLabel("img1.jpg", "a"), ImageLabel("img3.jpg", "c")]


def test_build_image_labels_limit_larger_than_dataset() -> None:
    pairs = build_image_labels(["x.jpg", "y.jpg"], ["a", "b"], number_of_images=10)
    assert len(pairs) == 2


def test_build_image_labels_ignores_out_of_range_blacklist(capsys) -> None:
    pairs = build_image_labels(["x.jpg", "y.jpg"], ["a", "b"], blacklist={0, 3})
    assert len(pairs) == 2
    assert "[WARN]" in capsys.readouterr().out


def test_build_image_labels_routes_warning_through_log_fn(capsys) -> None:
    messages = []
    pairs = build_image_labels(["x.jpg", "y.jpg"], ["a", "b"], blacklist={0, 3}, log_fn=messages.append)
    assert len(pairs) == 2
    assert len(messages) == 1
    assert messages[0].startswith("[WARN]")
    assert capsys.readouterr().out == ""


def test_build_image_labels_count_mismatch() -> None:
    with pytest.raises(ValueError, match="does not match"):
        build_image_labels(["x.jpg"], ["a", "b"])


def test_get_splits_uses_ceil_batches() -> None:
    shards = get_splits(list(range(10)), 4)
    assert [len(s) for s in shards] == [3, 3, 3, 1]
    assert sum(shards, []) == list(range(10))


def test_get_splits_fewer_items_than_splits() -> None:
    shards = get_splits([1, 2], 8)
    assert shards == [[1], [2]]
    assert shard_image_counts(shards) == {0: 1, 1: 1}


def test_get_splits_rejects_non_positive() -> None:
    with pytest.raises(ValueError):
        get_splits([1], 0)
    assert get_splits([], 3) == []
