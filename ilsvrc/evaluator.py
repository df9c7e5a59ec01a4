"""
Evaluates a classification model's accuracy on the ILSVRC validation set.

Generates the top-1 .. top-K accuracy where K is controlled by `num_ranks`.

Usage:
    params = Params(...)
    evaluator = ImagenetModelEvaluator(params, num_threads=4)
    evaluator.add_observer(SomeObserver())
    evaluator.evaluate_model()

The dataset is split into at most `num_threads` contiguous shards; each shard is
evaluated on its own thread with its own model session. Observers are notified
once at start and after every image, possibly from several threads at once.
"""
from __future__ import annotations
import abc
import argparse
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from image_processing import DEFAULT_CENTRAL_CROP_FRACTION, NORMALIZATIONS
from utils import FlagParser, log
from ilsvrc.dataset import (
    ImageLabel,
    build_image_labels,
    get_splits,
    list_ground_truth_images,
    load_blacklist,
    read_lines,
    shard_image_counts,
)
from ilsvrc.delegates import DELEGATE_PROVIDERS, DelegateProviders, resolve_providers
from ilsvrc.metrics import TopkAccuracyEvalMetrics
from ilsvrc.stage import ImageClassificationStage, StageConfig


@dataclass
class Params:
    # Path to ground truth images.
    ground_truth_images_path: str = ""
    # Path to labels file for ground truth images, one label per line in sorted image order.
    ground_truth_labels_path: str = ""
    # Word labels of the model outputs. Their ordering may differ from the dataset's.
    model_output_labels_path: str = ""
    model_file_path: str = ""
    # Sorted 1-based image indices to skip (ILSVRC2014 devkit blacklist).
    blacklist_file_path: str = ""
    # '', 'cpu', 'nnapi', 'gpu', 'hexagon', 'xnnpack'
    delegate: str = ""
    # 0 means all images.
    number_of_images: int = 0
    num_ranks: int = 10
    num_interpreter_threads: int = 1
    allow_fp16: bool = False
    central_crop_fraction: float = DEFAULT_CENTRAL_CROP_FRACTION
    input_normalization: str = "imagenet"


class Observer(abc.ABC):
    """An evaluation observer. Implementations must be thread safe."""

    @abc.abstractmethod
    def on_evaluation_start(self, shard_id_image_count_map: Dict[int, int]) -> None:
        """Called once before any image is evaluated."""

    @abc.abstractmethod
    def on_single_image_evaluation_complete(
        self, shard_id: int, metrics: TopkAccuracyEvalMetrics, image: str
    ) -> None:
        """Called after `image` was evaluated; `metrics` are the shard's running accuracies."""


StageFactory = Callable[[StageConfig], ImageClassificationStage]


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = FlagParser()
    parser.add_argument("--model_file", default="", help="Path to the ONNX model file")
    parser.add_argument("--ground_truth_images_path", default="", help="Directory of ground truth images")
    parser.add_argument("--ground_truth_labels", default="", help="Ground truth labels file, one label per line")
    parser.add_argument("--model_output_labels", default="", help="Model output labels file, one label per line")
    parser.add_argument("--blacklist_file_path", default="", help="File of 1-based image indices to skip")
    parser.add_argument("--delegate", default="", choices=sorted(DELEGATE_PROVIDERS),
                        help="Delegate used for inference: nnapi, gpu, hexagon, xnnpack (default: CPU)")
    parser.add_argument("--num_images", type=int, default=0, help="If >0, evaluate only the first N images")
    parser.add_argument("--num_ranks", type=int, default=10, help="Number of ranks for top-K accuracy")
    parser.add_argument("--num_interpreter_threads", type=int, default=1, help="Intra-op threads per session")
    parser.add_argument("--allow_fp16", action="store_true", help="Allow fp16 precision where the delegate supports it")
    parser.add_argument("--central_crop_fraction", type=float, default=DEFAULT_CENTRAL_CROP_FRACTION,
                        help="Fraction of the image kept by the central crop before resizing")
    parser.add_argument("--input_normalization", choices=list(NORMALIZATIONS), default="imagenet",
                        help="Normalization applied to float model inputs")
    return parser


class ImagenetModelEvaluator:
    """Drives dataset iteration, sharding and observer notification around the classification stage."""

    def __init__(self, params: Params, num_threads: int, log_path: Optional[str] = None,
                 stage_factory: Optional[StageFactory] = None):
        self._params = params
        self._num_threads = num_threads
        self._observers: List[Observer] = []
        self._log_path = log_path
        self._stage_factory = stage_factory or ImageClassificationStage

    @classmethod
    def create(cls, argv: Sequence[str], num_threads: int,
               log_path: Optional[str] = None) -> Tuple["ImagenetModelEvaluator", List[str]]:
        """
        Build an evaluator from command-line arguments.
        Matching arguments are consumed; the rest of argv is returned.
        """
        parser = _build_arg_parser()
        args, remaining = parser.parse_known_args(list(argv))

        missing = [
            flag for flag, value in (
                ("--model_file", args.model_file),
                ("--ground_truth_images_path", args.ground_truth_images_path),
                ("--ground_truth_labels", args.ground_truth_labels),
                ("--model_output_labels", args.model_output_labels),
            ) if not value
        ]
        if missing:
            raise ValueError(f"Missing required flags: {', '.join(missing)}")

        params = Params(
            ground_truth_images_path=args.ground_truth_images_path,
            ground_truth_labels_path=args.ground_truth_labels,
            model_output_labels_path=args.model_output_labels,
            model_file_path=args.model_file,
            blacklist_file_path=args.blacklist_file_path,
            delegate=args.delegate,
            number_of_images=args.num_images,
            num_ranks=args.num_ranks,
            num_interpreter_threads=args.num_interpreter_threads,
            allow_fp16=args.allow_fp16,
            central_crop_fraction=args.central_crop_fraction,
            input_normalization=args.input_normalization,
        )
        return cls(params, num_threads, log_path=log_path), remaining

    @property
    def params(self) -> Params:
        return self._params

    @property
    def num_threads(self) -> int:
        return self._num_threads

    def add_observer(self, observer: Observer) -> None:
        self._observers.append(observer)

    # ----------------------------- Internal API ---------------------------- #

    def _load_image_labels(self, model_labels: List[str]) -> List[ImageLabel]:
        p = self._params
        ground_truth_labels = read_lines(p.ground_truth_labels_path)
        images = list_ground_truth_images(p.ground_truth_images_path)
        blacklist = load_blacklist(p.blacklist_file_path)
        image_labels = build_image_labels(
            images, ground_truth_labels, blacklist, p.number_of_images,
            log_fn=lambda m: log(m, self._log_path),
        )
        if not image_labels:
            raise ValueError(f"No images to evaluate in {p.ground_truth_images_path}")

        known = set(model_labels)
        for item in image_labels:
            if item.label not in known:
                raise ValueError(f"Ground truth label '{item.label}' not found in model output labels")
        return image_labels

    def _validate(self) -> None:
        p = self._params
        if self._num_threads < 1:
            raise ValueError(f"num_threads must be positive, got {self._num_threads}")
        if p.num_ranks < 1:
            raise ValueError(f"num_ranks must be positive, got {p.num_ranks}")
        if p.number_of_images < 0:
            raise ValueError(f"number_of_images must be >= 0, got {p.number_of_images}")
        if p.input_normalization not in NORMALIZATIONS:
            raise ValueError(f"Unknown input normalization '{p.input_normalization}'")

    def _evaluate_shard(self, shard_id: int, shard: List[ImageLabel], stage_config: StageConfig) -> None:
        stage = self._stage_factory(stage_config)
        for item in shard:
            stage.set_inputs(item.image, item.label)
            stage.run()
            metrics = stage.latest_metrics().topk
            for observer in self._observers:
                observer.on_single_image_evaluation_complete(shard_id, metrics, item.image)

    # ------------------------------ Public API ------------------------------ #

    def evaluate_model(self, delegate_providers: Optional[DelegateProviders] = None) -> None:
        """Evaluate the model over the dataset; raises the first shard failure after all shards finish."""
        self._validate()
        p = self._params

        model_labels = read_lines(p.model_output_labels_path)
        if p.num_ranks > len(model_labels):
            raise ValueError(
                f"num_ranks ({p.num_ranks}) exceeds the number of model output labels ({len(model_labels)})"
            )
        image_labels = self._load_image_labels(model_labels)

        providers = resolve_providers(
            p.delegate, p.allow_fp16, num_threads=p.num_interpreter_threads,
            log_fn=lambda m: log(m, self._log_path),
        )
        if delegate_providers is not None:
            providers = delegate_providers.merge_providers(
                providers, num_threads=p.num_interpreter_threads,
                log_fn=lambda m: log(m, self._log_path),
            )

        shards = get_splits(image_labels, self._num_threads)
        counts = shard_image_counts(shards)
        log(f"[INFO] Evaluating {len(image_labels)} images in {len(shards)} shard(s) with providers {providers}",
            self._log_path)
        for observer in self._observers:
            observer.on_evaluation_start(dict(counts))

        errors: Dict[int, BaseException] = {}
        errors_lock = threading.Lock()

        def worker(shard_id: int, shard: List[ImageLabel]) -> None:
            config = StageConfig(
                model_file_path=p.model_file_path,
                all_labels=model_labels,
                num_ranks=p.num_ranks,
                providers=providers,
                num_interpreter_threads=p.num_interpreter_threads,
                central_crop_fraction=p.central_crop_fraction,
                input_normalization=p.input_normalization,
                delegate=p.delegate,
                shard_id=shard_id,
                log_path=self._log_path,
            )
            try:
                self._evaluate_shard(shard_id, shard, config)
            except Exception as e:
                log(f"[ERROR] Shard {shard_id} failed: {e}", self._log_path)
                with errors_lock:
                    errors[shard_id] = e

        threads = [
            threading.Thread(target=worker, args=(shard_id, shard), name=f"ilsvrc-shard-{shard_id}")
            for shard_id, shard in enumerate(shards)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        if errors:
            first = min(errors)
            raise errors[first]
