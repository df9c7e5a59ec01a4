#!/usr/bin/env python3
"""
Evaluate an image classification model (ONNX) on the ILSVRC validation set.

- Images under --ground_truth_images_path are sorted by name and paired with the
  labels in --ground_truth_labels (one per line, same order).
- Blacklisted images (--blacklist_file_path, 1-based indices) are skipped.
- The dataset is split into --num_threads shards evaluated in parallel; progress is
  printed continuously and mirrored to results/imagenet_accuracy_eval_<ts>.log.
- Final top-1 .. top-K accuracies are printed, written as CSV to --output_file_path
  and optionally as JSON to --metrics_json.

Usage:
    python imagenet_accuracy_eval.py --model_file=mobilenet_v2.onnx \
        --ground_truth_images_path=ILSVRC2012_val --ground_truth_labels=val_labels.txt \
        --model_output_labels=labels.txt --output_file_path=accuracy.csv --num_threads=4

    python imagenet_accuracy_eval.py --config configs/eval.yaml --delegate=gpu

Requirements: onnxruntime, onnx, opencv-python-headless, numpy, PyYAML, psutil
"""
from __future__ import annotations
import os
import sys
import json
import time
import argparse
from typing import Any, Dict, List, Optional

import yaml

from utils import RESULTS_DIR, RUN_TS, FlagParser, default_log_path, get_process_metrics, log, prepend_log_header
from ilsvrc.delegates import DelegateProviders
from ilsvrc.evaluator import ImagenetModelEvaluator
from ilsvrc.observers import CompositeObserver, ProgressPrinter, ResultsWriter


def load_config(path: str) -> Dict[str, Any]:
    """Load a YAML configuration file whose keys mirror the command-line flag names."""
    with open(path, "r", encoding="utf-8") as f:
        payload = yaml.safe_load(f) or {}
    if not isinstance(payload, dict):
        raise ValueError(f"Configuration at {path} must be a mapping.")
    return payload


def config_to_argv(config: Dict[str, Any]) -> List[str]:
    """Turn {'num_threads': 4, 'allow_fp16': True} into ['--num_threads=4', '--allow_fp16']."""
    argv: List[str] = []
    for key, value in config.items():
        flag = f"--{key}"
        if isinstance(value, bool):
            if value:
                argv.append(flag)
        elif value is not None:
            argv.append(f"{flag}={value}")
    return argv


def _extract_config_path(argv: List[str]) -> Optional[str]:
    pre = FlagParser()
    pre.add_argument("--config", default="")
    args, _ = pre.parse_known_args(argv)
    return args.config or None


def _build_tool_parser() -> argparse.ArgumentParser:
    parser = FlagParser(
        description="Evaluate an ONNX classification model on ILSVRC (top-K accuracy).",
    )
    parser.add_argument("--config", default="", help="YAML file whose keys mirror the flag names")
    parser.add_argument("--output_file_path", default="", help="CSV file for the final top-K accuracies")
    parser.add_argument("--num_threads", type=int, default=4, help="Number of shards evaluated in parallel")
    parser.add_argument("--metrics_json", default="", help="Optional JSON summary output path")
    parser.add_argument("--log_dir", default=RESULTS_DIR, help="Directory for the run log")
    parser.add_argument("--progress_every", type=int, default=1, help="Print progress every N images")
    return parser


def _print_usage() -> None:
    _build_tool_parser().print_help()
    print(
        "\nEvaluator flags: --model_file --ground_truth_images_path --ground_truth_labels "
        "--model_output_labels [--blacklist_file_path] [--delegate] [--num_images] [--num_ranks] "
        "[--num_interpreter_threads] [--allow_fp16] [--central_crop_fraction] [--input_normalization]\n"
        "Delegate flags: [--use_nnapi] [--use_gpu] [--use_hexagon] [--use_xnnpack] [--delegate_allow_fp16]"
    )


def run(argv: List[str]) -> Dict[str, Any]:
    """Run a full evaluation from command-line arguments; returns the summary record."""
    config_path = _extract_config_path(argv)
    if config_path:
        argv = config_to_argv(load_config(config_path)) + list(argv)

    args, remaining = _build_tool_parser().parse_known_args(argv)
    log_path = default_log_path(args.log_dir)
    log(f"[START] ILSVRC accuracy evaluation @ {RUN_TS}", log_path)

    log("[STEP 1] Parsing evaluator and delegate flags...", log_path)
    evaluator, remaining = ImagenetModelEvaluator.create(remaining, args.num_threads, log_path=log_path)
    delegate_providers, remaining = DelegateProviders.from_cmdline_args(remaining)
    if remaining:
        raise ValueError(f"Unrecognized arguments: {' '.join(remaining)}")

    params = evaluator.params
    results_writer = ResultsWriter(params.num_ranks, args.output_file_path or None)
    evaluator.add_observer(CompositeObserver([
        results_writer,
        ProgressPrinter(log_path, every=args.progress_every),
    ]))

    log(f"[STEP 2] Evaluating {params.model_file_path} (delegate={params.delegate or 'cpu'}, "
        f"threads={args.num_threads}, top-{params.num_ranks})...", log_path)
    t0 = time.time()
    evaluator.evaluate_model(delegate_providers if delegate_providers.ranked_delegates() else None)
    elapsed = time.time() - t0

    log("[STEP 3] Computing accuracy...", log_path)
    aggregated = results_writer.output_eval_metrics()
    accuracies = aggregated.topk_accuracies

    summary_lines = [
        "",
        "===== Evaluation Result =====",
        f"Images evaluated: {results_writer.num_evaluated}",
        f"Elapsed: {elapsed:.2f}s",
    ]
    summary_lines += [f"Top-{i} accuracy: {value * 100:.2f}%" for i, value in enumerate(accuracies, start=1)]
    for line in summary_lines:
        log(line, log_path)
    if args.output_file_path:
        log(f"[INFO] Wrote accuracies to {args.output_file_path}", log_path)

    header = [f"[FINAL] Top-1 accuracy: {accuracies[0] * 100:.2f}%"] if accuracies else []
    if len(accuracies) > 1:
        header.append(f"[FINAL] Top-{len(accuracies)} accuracy: {accuracies[-1] * 100:.2f}%")
    prepend_log_header(log_path, header)

    record = {
        "timestamp": RUN_TS,
        "model": params.model_file_path,
        "delegate": params.delegate or "cpu",
        "images": results_writer.num_evaluated,
        "num_threads": args.num_threads,
        "elapsed_sec": elapsed,
        "topk_accuracies": accuracies,
        "process": get_process_metrics(),
    }
    if args.metrics_json:
        parent = os.path.dirname(args.metrics_json)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(args.metrics_json, "w", encoding="utf-8") as f:
            json.dump(record, f, indent=2)
        log(f"[INFO] Wrote metrics to {args.metrics_json}", log_path)
    return record


def main(argv: Optional[List[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    if "-h" in argv or "--help" in argv:
        _print_usage()
        return 0
    try:
        run(argv)
    except (FileNotFoundError, ValueError, RuntimeError, OSError, yaml.YAMLError) as e:
        print(f"[ERROR] {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
