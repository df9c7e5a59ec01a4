"""
Dataset inputs for ILSVRC evaluation: label files, blacklist, image listing and sharding.
"""
from __future__ import annotations
import os
import glob
import math
from typing import Dict, List, NamedTuple, Optional, Sequence, Set

IMAGE_PATTERNS = ("*.jpg", "*.jpeg", "*.JPEG")


class ImageLabel(NamedTuple):
    image: str
    label: str


def read_lines(path: str) -> List[str]:
    if not os.path.isfile(path):
        raise FileNotFoundError(f"File not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        return [line.strip() for line in f if line.strip()]


def load_blacklist(path: Optional[str]) -> Set[int]:
    """Return the set of 1-based image indices to skip. Empty path means no blacklist."""
    if not path:
        return set()
    indices: Set[int] = set()
    for line in read_lines(path):
        try:
            indices.add(int(line))
        except ValueError:
            raise ValueError(f"Invalid blacklist entry '{line}' in {path}") from None
    return indices


def list_ground_truth_images(images_dir: str) -> List[str]:
    if not os.path.isdir(images_dir):
        raise FileNotFoundError(f"Ground truth images directory not found: {images_dir}")
    found = set()
    for pattern in IMAGE_PATTERNS:
        found.update(glob.glob(os.path.join(images_dir, pattern)))
    return sorted(found)


def build_image_labels(
    images: Sequence[str],
    labels: Sequence[str],
    blacklist: Optional[Set[int]] = None,
    number_of_images: int = 0,
    log_fn=print,
) -> List[ImageLabel]:
    """
    Pair sorted images with their ground-truth labels, drop blacklisted entries
    (1-based indices) and keep the first `number_of_images` if positive.
    """
    if len(images) != len(labels):
        raise ValueError(
            f"Number of images ({len(images)}) does not match number of ground truth labels ({len(labels)})"
        )
    blacklist = blacklist or set()
    out_of_range = sorted(i for i in blacklist if i < 1 or i > len(images))
    if out_of_range:
        log_fn(f"[WARN] Ignoring {len(out_of_range)} blacklist indices outside 1..{len(images)}")

    pairs = [
        ImageLabel(image, label)
        for idx, (image, label) in enumerate(zip(images, labels), start=1)
        if idx not in blacklist
    ]
    if number_of_images > 0:
        pairs = pairs[:number_of_images]
    return pairs


def get_splits(items: Sequence, num_splits: int) -> List[list]:
    """
    Split items into contiguous chunks of ceil(len / num_splits).
    Fewer than num_splits chunks are returned when items run out.
    """
    if num_splits < 1:
        raise ValueError(f"num_splits must be positive, got {num_splits}")
    if not items:
        return []
    batch_size = math.ceil(len(items) / num_splits)
    return [list(items[i:i + batch_size]) for i in range(0, len(items), batch_size)]


def shard_image_counts(shards: Sequence[Sequence]) -> Dict[int, int]:
    return {shard_id: len(shard) for shard_id, shard in enumerate(shards)}
