"""
Stock evaluation observers: fan-out, CSV results writer and progress printer.
"""
from __future__ import annotations
import csv
import os
import threading
from typing import Dict, Iterable, List, Optional

from utils import log
from ilsvrc.evaluator import Observer
from ilsvrc.metrics import TopkAccuracyEvalMetrics, aggregate_shard_metrics


class CompositeObserver(Observer):
    """Forwards every event to each child observer in order."""

    def __init__(self, observers: Iterable[Observer]):
        self.observers: List[Observer] = list(observers)

    def on_evaluation_start(self, shard_id_image_count_map):
        for observer in self.observers:
            observer.on_evaluation_start(shard_id_image_count_map)

    def on_single_image_evaluation_complete(self, shard_id, metrics, image):
        for observer in self.observers:
            observer.on_single_image_evaluation_complete(shard_id, metrics, image)


class ResultsWriter(Observer):
    """
    Keeps the latest metrics of each shard and writes the aggregated accuracies
    as CSV: a header 'Top 1,...,Top K' followed by one row of values.
    """

    def __init__(self, num_ranks: int, output_file_path: Optional[str] = None):
        self.num_ranks = num_ranks
        self.output_file_path = output_file_path
        self._lock = threading.Lock()
        self._shard_metrics: Dict[int, TopkAccuracyEvalMetrics] = {}
        self._shard_counts: Dict[int, int] = {}

    def on_evaluation_start(self, shard_id_image_count_map):
        with self._lock:
            self._shard_metrics.clear()
            self._shard_counts = {}

    def on_single_image_evaluation_complete(self, shard_id, metrics, image):
        with self._lock:
            self._shard_metrics[shard_id] = metrics
            self._shard_counts[shard_id] = self._shard_counts.get(shard_id, 0) + 1

    def aggregated_metrics(self) -> TopkAccuracyEvalMetrics:
        with self._lock:
            per_shard = {
                shard_id: (self._shard_counts[shard_id], metrics)
                for shard_id, metrics in self._shard_metrics.items()
            }
        return aggregate_shard_metrics(per_shard)

    @property
    def num_evaluated(self) -> int:
        with self._lock:
            return sum(self._shard_counts.values())

    def output_eval_metrics(self) -> TopkAccuracyEvalMetrics:
        """Aggregate the shard metrics and write them to the CSV output (if configured)."""
        aggregated = self.aggregated_metrics()
        if self.output_file_path:
            parent = os.path.dirname(self.output_file_path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(self.output_file_path, "w", newline="", encoding="utf-8") as f:
                writer = csv.writer(f)
                writer.writerow([f"Top {i}" for i in range(1, self.num_ranks + 1)])
                writer.writerow([f"{value:.6f}" for value in aggregated.topk_accuracies])
        return aggregated


class ProgressPrinter(Observer):
    """Prints one progress line per image with the shard's running top-1/top-K accuracy."""

    def __init__(self, log_path: Optional[str] = None, every: int = 1):
        self.log_path = log_path
        self.every = max(1, int(every))
        self._lock = threading.Lock()
        self._total = 0
        self._done = 0

    def on_evaluation_start(self, shard_id_image_count_map):
        with self._lock:
            self._total = sum(shard_id_image_count_map.values())
            self._done = 0
        shards = ", ".join(f"{sid}:{count}" for sid, count in sorted(shard_id_image_count_map.items()))
        log(f"[INFO] Evaluation started: {self._total} images, shards {{{shards}}}", self.log_path)

    def on_single_image_evaluation_complete(self, shard_id, metrics, image):
        with self._lock:
            self._done += 1
            done, total = self._done, self._total
        if done % self.every and done != total:
            return
        accs = metrics.topk_accuracies
        top1 = accs[0] * 100 if accs else 0.0
        topk = accs[-1] * 100 if accs else 0.0
        log(
            f"[PROGRESS] {done}/{total} {os.path.basename(image)} -> shard {shard_id} | "
            f"running top-1: {top1:.2f}% | running top-{len(accs)}: {topk:.2f}%",
            self.log_path,
        )
