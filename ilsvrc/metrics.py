"""Top-K accuracy accounting for classification outputs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from image_processing import topk_indices


@dataclass
class TopkAccuracyEvalMetrics:
    """Cumulative top-K accuracies; ``topk_accuracies[i]`` is the top-(i+1) accuracy."""

    topk_accuracies: List[float] = field(default_factory=list)

    def top(self, k: int) -> float:
        return self.topk_accuracies[k - 1]


@dataclass
class StageMetrics:
    """Running metrics of one classification stage (one shard)."""

    num_runs: int = 0
    topk: TopkAccuracyEvalMetrics = field(default_factory=TopkAccuracyEvalMetrics)
    avg_preprocess_ms: float = 0.0
    avg_inference_ms: float = 0.0


class TopkAccuracyEvalStage:
    """Accumulate top-K hit counts for a fixed label set."""

    def __init__(self, all_labels: Sequence[str], k: int) -> None:
        if k < 1:
            raise ValueError("k must be positive for top-k computation.")
        if not all_labels:
            raise ValueError("Model output labels must not be empty.")
        if k > len(all_labels):
            raise ValueError(f"k ({k}) exceeds the number of model output labels ({len(all_labels)}).")
        self.k = k
        self.all_labels = list(all_labels)
        self._label_to_index: Dict[str, int] = {}
        for idx, label in enumerate(self.all_labels):
            self._label_to_index.setdefault(label, idx)
        self._counts = [0] * k
        self._ground_truth_index: Optional[int] = None
        self.num_runs = 0

    def set_ground_truth(self, label: str) -> None:
        if label not in self._label_to_index:
            raise ValueError(f"Ground truth label '{label}' not found in model output labels.")
        self._ground_truth_index = self._label_to_index[label]

    def update(self, scores) -> List[int]:
        """Score one output vector against the current ground truth; returns the top-k indices."""

        if self._ground_truth_index is None:
            raise RuntimeError("Ground truth label must be set before update().")
        top = topk_indices(scores, self.k)
        if len(top) < self.k:
            raise ValueError(f"Model produced {len(top)} scores, fewer than k={self.k}.")
        if self._ground_truth_index in top:
            rank = top.index(self._ground_truth_index)
            for i in range(rank, self.k):
                self._counts[i] += 1
        self.num_runs += 1
        return top

    def latest_metrics(self) -> TopkAccuracyEvalMetrics:
        if self.num_runs == 0:
            return TopkAccuracyEvalMetrics([0.0] * self.k)
        return TopkAccuracyEvalMetrics([count / self.num_runs for count in self._counts])


def aggregate_shard_metrics(
    shard_metrics: Mapping[int, Tuple[int, TopkAccuracyEvalMetrics]],
) -> TopkAccuracyEvalMetrics:
    """Image-count weighted average of per-shard accuracies."""

    total = sum(count for count, _ in shard_metrics.values())
    if total <= 0:
        return TopkAccuracyEvalMetrics()
    k = max(len(metrics.topk_accuracies) for _, metrics in shard_metrics.values())
    sums = [0.0] * k
    for count, metrics in shard_metrics.values():
        for i, value in enumerate(metrics.topk_accuracies):
            sums[i] += value * count
    return TopkAccuracyEvalMetrics([value / total for value in sums])


__all__ = [
    "StageMetrics",
    "TopkAccuracyEvalMetrics",
    "TopkAccuracyEvalStage",
    "aggregate_shard_metrics",
]
