"""
Utility functions for the ILSVRC accuracy evaluation tool.
"""
import os
import time
import argparse
import threading

import psutil

# Constants
RESULTS_DIR = "./results"
RUN_TS = time.strftime("%Y%m%d_%H%M%S")

_log_lock = threading.Lock()


class FlagParser(argparse.ArgumentParser):
    """ArgumentParser that raises ValueError on bad flag values instead of exiting."""

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("add_help", False)
        kwargs.setdefault("allow_abbrev", False)
        super().__init__(*args, **kwargs)

    def error(self, message):
        raise ValueError(message)


# -------------------------------------------------------------
# Log file helpers
# -------------------------------------------------------------

def _ensure_log_dir(path: str) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def default_log_path(log_dir: str = RESULTS_DIR, name: str = "imagenet_accuracy_eval") -> str:
    return os.path.join(log_dir, f"{name}_{RUN_TS}.log")


def write_log_line(log_path, text: str) -> None:
    if not log_path:
        return
    with _log_lock:
        _ensure_log_dir(log_path)
        with open(log_path, "a", encoding="utf-8") as f:
            f.write(text + "\n")


def log(message: str, log_path=None) -> None:
    """Print a message and mirror it to the log file if one is configured."""
    print(message, flush=True)
    write_log_line(log_path, message)


def prepend_log_header(log_path, header_lines) -> None:
    """
    Rewrite the log so the given lines appear at the very top of the file.
    Not critical: failures are reported and ignored.
    """
    if not log_path or not os.path.exists(log_path):
        return
    try:
        with _log_lock:
            with open(log_path, "r", encoding="utf-8") as f:
                original = f.read()
            with open(log_path, "w", encoding="utf-8") as f:
                for line in header_lines:
                    f.write(line + "\n")
                f.write(original)
    except OSError as e:
        print(f"[WARN] Failed to re-write log header with final accuracy: {e}")

# -------------------------------------------------------------
# System utilities
# -------------------------------------------------------------

def get_process_metrics(interval=0):
    """
    Get resource usage of the current process.

    Args:
        interval: Time interval for CPU percent calculation

    Returns:
        Dictionary containing process metrics
    """
    proc = psutil.Process(os.getpid())
    mem = proc.memory_info()
    return {
        "CPU_Usage_percent": proc.cpu_percent(interval=interval),
        "RSS_MB": round(mem.rss / (1024 * 1024), 2),
        "Num_Threads": proc.num_threads(),
        "Logical_CPUs": psutil.cpu_count(logical=True),
    }
