"""
Timing and performance logging utilities for the ILSVRC accuracy evaluation tool.
Separated from utils.py to keep timing concerns modular.
"""
import os
import json
from datetime import datetime
import time
import threading
from contextlib import ContextDecorator

RESULT_TIME_FILE = "result_eval_time.json"  # JSON Lines

_timing_lock = threading.Lock()


def should_record_time() -> bool:
    """Return True if RECORD_TIME=1 in environment."""
    try:
        return int(os.environ.get("RECORD_TIME", "0")) == 1
    except ValueError:
        return False


def get_run_id() -> str:
    """Return current RUN_ID from environment (may be empty)."""
    return os.environ.get("RUN_ID", "")


def append_timing_record(record: dict, path: str = None):
    """
    Append a single timing record as a JSON line to RESULT_TIME_FILE.
    JSON Lines; appends from shard threads are serialized by a module lock.
    Safe: will not raise.
    """
    try:
        rec = dict(record)
        rec.setdefault("timestamp", datetime.now().strftime("%Y-%m-%d %H:%M:%S"))
        rid = get_run_id()
        if rid:
            rec.setdefault("run_id", rid)
        line = json.dumps(rec, ensure_ascii=False) + "\n"
        with _timing_lock:
            with open(path or RESULT_TIME_FILE, "a", encoding="utf-8") as f:
                f.write(line)
    except (OSError, TypeError, ValueError) as e:
        print(f"[Timing LOGGING ERROR] {e}")


class PerfTimer(ContextDecorator):
    """
    Simple context manager/decorator to measure elapsed time in ms.
    Usage:
        with PerfTimer() as t:
            ...
        elapsed_ms = t.ms
    """
    def __enter__(self):
        self._start = time.perf_counter()
        self.ms = 0.0
        return self

    def __exit__(self, exc_type, exc, tb):
        self.ms = (time.perf_counter() - self._start) * 1000.0
        return False

    def reset(self):
        self._start = time.perf_counter()
        self.ms = 0.0


def log_model_load(model: str, delegate: str, providers, shard_id: int,
                   model_load_time_ms: float):
    """Convenience logger for model load events, respects RECORD_TIME."""
    if not should_record_time():
        return
    append_timing_record({
        "kind": "model_load",
        "model": model,
        "delegate": delegate or "cpu",
        "providers": list(providers),
        "shard_id": shard_id,
        "model_load_time_ms": model_load_time_ms,
    })


def log_inference(model: str, shard_id: int, image: str,
                  preprocess_time_ms: float, inference_time_ms: float,
                  postprocess_time_ms: float):
    """Convenience logger for per-image inference timing, respects RECORD_TIME."""
    if not should_record_time():
        return
    append_timing_record({
        "kind": "inference",
        "model": model,
        "shard_id": shard_id,
        "image": image,
        "preprocess_time_ms": preprocess_time_ms,
        "inference_time_ms": inference_time_ms,
        "postprocess_time_ms": postprocess_time_ms,
    })
