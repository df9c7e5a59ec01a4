"""
Image classification stage: preprocess one ILSVRC image, run the ONNX model and
score the output against the ground-truth label.
"""
from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
import onnx
import onnxruntime as ort

from image_processing import (
    DEFAULT_CENTRAL_CROP_FRACTION,
    detect_layout,
    ilsvrc_preprocess,
    read_image_bgr,
    spatial_size,
)
from timing_utils import PerfTimer, log_inference, log_model_load
from utils import log
from ilsvrc.delegates import CPU_PROVIDER, ProviderSpec, split_providers
from ilsvrc.metrics import StageMetrics, TopkAccuracyEvalStage

_ORT_TYPE_TO_DTYPE = {
    "tensor(float)": np.float32,
    "tensor(float16)": np.float16,
    "tensor(double)": np.float64,
    "tensor(uint8)": np.uint8,
    "tensor(int8)": np.int8,
}


@dataclass
class StageConfig:
    model_file_path: str
    all_labels: List[str]
    num_ranks: int = 10
    providers: Sequence[ProviderSpec] = field(default_factory=lambda: [CPU_PROVIDER])
    num_interpreter_threads: int = 1
    central_crop_fraction: float = DEFAULT_CENTRAL_CROP_FRACTION
    input_normalization: str = "imagenet"
    delegate: str = ""
    shard_id: int = 0
    log_path: Optional[str] = None


class ImageClassificationStage:
    """One model session plus its running top-K accuracy; not shared across threads."""

    def __init__(self, config: StageConfig):
        self.config = config
        self.topk_stage = TopkAccuracyEvalStage(config.all_labels, config.num_ranks)
        self._image_path: Optional[str] = None
        self._ground_truth_label: Optional[str] = None
        self._preprocess_ms_total = 0.0
        self._inference_ms_total = 0.0
        self.last_topk: List[int] = []
        self.session = self._load_session()

    # ----------------------------- Internal API ---------------------------- #

    def _load_session(self):
        model_path = self.config.model_file_path
        if not os.path.exists(model_path):
            raise FileNotFoundError(f"Model not found: {model_path}")
        try:
            onnx.checker.check_model(model_path)
        except onnx.checker.ValidationError as e:
            raise ValueError(f"Invalid ONNX model {model_path}: {e}") from e

        sess_opts = ort.SessionOptions()
        sess_opts.intra_op_num_threads = max(1, int(self.config.num_interpreter_threads))
        names, options = split_providers(self.config.providers)
        with PerfTimer() as t:
            try:
                session = ort.InferenceSession(
                    model_path, sess_options=sess_opts, providers=names, provider_options=options
                )
            except Exception as e:
                # onnxruntime errors do not derive from RuntimeError
                raise RuntimeError(f"Failed to create inference session for {model_path}: {e}") from e
        log_model_load(model_path, self.config.delegate, names, self.config.shard_id, t.ms)

        # Determine input/output names and expected layout dynamically
        inputs = session.get_inputs()
        outputs = session.get_outputs()
        if not inputs or not outputs:
            raise ValueError(f"Model {model_path} must have at least one input and one output")
        self.input_name = inputs[0].name
        self.output_name = outputs[0].name
        self.input_shape = inputs[0].shape
        self.layout = detect_layout(self.input_shape)
        self.input_width, self.input_height = spatial_size(self.input_shape, self.layout)
        input_type = inputs[0].type
        if input_type not in _ORT_TYPE_TO_DTYPE:
            raise ValueError(f"Unsupported model input type {input_type}")
        self.input_dtype = _ORT_TYPE_TO_DTYPE[input_type]
        log(
            f"[INFO] Shard {self.config.shard_id} model IO - input_name={self.input_name}, "
            f"output_name={self.output_name}, input_shape={self.input_shape}, layout={self.layout}, "
            f"dtype={np.dtype(self.input_dtype).name}, providers={session.get_providers()}",
            self.config.log_path,
        )
        return session

    # ------------------------------ Public API ------------------------------ #

    def set_inputs(self, image_path: str, ground_truth_label: str) -> None:
        self.topk_stage.set_ground_truth(ground_truth_label)
        self._image_path = image_path
        self._ground_truth_label = ground_truth_label

    def run(self) -> List[int]:
        """Evaluate the current image; returns the top-K class indices."""
        if self._image_path is None:
            raise RuntimeError("set_inputs() must be called before run()")

        with PerfTimer() as t_pre:
            img_bgr = read_image_bgr(self._image_path)
            feed = ilsvrc_preprocess(
                img_bgr,
                self.input_width,
                self.input_height,
                central_crop_fraction=self.config.central_crop_fraction,
                normalization=self.config.input_normalization,
                input_dtype=self.input_dtype,
                layout=self.layout,
            )
        with PerfTimer() as t_inf:
            try:
                outputs = self.session.run([self.output_name], {self.input_name: feed})
            except Exception as e:
                raise RuntimeError(f"Inference failed for {self._image_path}: {e}") from e
        with PerfTimer() as t_post:
            scores = np.asarray(outputs[0])
            # logits may be (1,N) or (N,)
            if scores.ndim == 2 and scores.shape[0] == 1:
                scores = scores[0]
            scores = scores.reshape(-1)
            if scores.size != len(self.config.all_labels):
                raise ValueError(
                    f"Model output has {scores.size} classes but {len(self.config.all_labels)} "
                    f"model output labels were provided"
                )
            self.last_topk = self.topk_stage.update(scores)

        self._preprocess_ms_total += t_pre.ms
        self._inference_ms_total += t_inf.ms
        log_inference(self.config.model_file_path, self.config.shard_id,
                      os.path.basename(self._image_path), t_pre.ms, t_inf.ms, t_post.ms)
        return self.last_topk

    def latest_metrics(self) -> StageMetrics:
        runs = self.topk_stage.num_runs
        return StageMetrics(
            num_runs=runs,
            topk=self.topk_stage.latest_metrics(),
            avg_preprocess_ms=self._preprocess_ms_total / runs if runs else 0.0,
            avg_inference_ms=self._inference_ms_total / runs if runs else 0.0,
        )
