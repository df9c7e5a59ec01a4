"""
Delegate selection: maps delegate names onto onnxruntime execution providers.
"""
from __future__ import annotations
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import onnxruntime as ort

from utils import FlagParser

CPU_PROVIDER = "CPUExecutionProvider"

# delegate name -> ordered provider names (without the CPU fallback)
DELEGATE_PROVIDERS: Dict[str, List[str]] = {
    "": [],
    "cpu": [],
    "nnapi": ["NnapiExecutionProvider"],
    "gpu": ["CUDAExecutionProvider"],
    "hexagon": ["QNNExecutionProvider"],
    "xnnpack": ["XnnpackExecutionProvider"],
}

ProviderSpec = Union[str, Tuple[str, dict]]


def _provider_options(name: str, allow_fp16: bool, num_threads: int) -> dict:
    if name == "QNNExecutionProvider":
        return {"backend_path": "libQnnHtp.so"}
    if name == "XnnpackExecutionProvider":
        return {"intra_op_num_threads": str(max(1, num_threads))}
    if name == "TensorrtExecutionProvider" and allow_fp16:
        return {"trt_fp16_enable": True}
    return {}


def resolve_providers(
    delegate: str,
    allow_fp16: bool = False,
    available: Optional[Iterable[str]] = None,
    num_threads: int = 1,
    log_fn=print,
) -> List[ProviderSpec]:
    """
    Return the ordered provider list for a delegate, always ending with the CPU provider.
    Providers missing from `available` are skipped with a warning.
    """
    key = (delegate or "").strip().lower()
    if key not in DELEGATE_PROVIDERS:
        valid = ", ".join(sorted(k for k in DELEGATE_PROVIDERS if k))
        raise ValueError(f"Unsupported delegate '{delegate}'. Valid values: {valid}")

    names = list(DELEGATE_PROVIDERS[key])
    if key == "gpu" and allow_fp16:
        names.insert(0, "TensorrtExecutionProvider")

    available_set = set(available if available is not None else ort.get_available_providers())
    providers: List[ProviderSpec] = []
    for name in names:
        if name not in available_set:
            log_fn(f"[WARN] {name} is not available in this onnxruntime build; falling back to {CPU_PROVIDER}")
            continue
        options = _provider_options(name, allow_fp16, num_threads)
        providers.append((name, options) if options else name)
    providers.append(CPU_PROVIDER)
    return providers


def split_providers(providers: Sequence[ProviderSpec]) -> Tuple[List[str], List[dict]]:
    """Split provider specs into the (names, options) pair accepted by InferenceSession."""
    names, options = [], []
    for spec in providers:
        if isinstance(spec, tuple):
            names.append(spec[0])
            options.append(dict(spec[1]))
        else:
            names.append(spec)
            options.append({})
    return names, options


class DelegateProviders:
    """
    Extra delegates requested on the command line (--use_nnapi, --use_gpu, ...).
    They rank ahead of the delegate named in the evaluator params.
    """

    FLAGS = ("nnapi", "gpu", "hexagon", "xnnpack")

    def __init__(self):
        self.enabled: List[str] = []
        self.allow_fp16 = False

    @classmethod
    def from_cmdline_args(cls, argv: Sequence[str]):
        """Parse known delegate flags; returns (providers, remaining argv)."""
        parser = FlagParser()
        for name in cls.FLAGS:
            parser.add_argument(f"--use_{name}", action="store_true")
        parser.add_argument("--delegate_allow_fp16", action="store_true")
        args, remaining = parser.parse_known_args(list(argv))
        inst = cls()
        inst.enabled = [name for name in cls.FLAGS if getattr(args, f"use_{name}")]
        inst.allow_fp16 = args.delegate_allow_fp16
        return inst, remaining

    def ranked_delegates(self) -> List[str]:
        return list(self.enabled)

    def merge_providers(self, base: Sequence[ProviderSpec], available=None, num_threads: int = 1,
                        log_fn=print) -> List[ProviderSpec]:
        """Prepend providers for the enabled delegates to `base`, dropping duplicates."""
        merged: List[ProviderSpec] = []
        seen = set()
        for delegate in self.enabled:
            for spec in resolve_providers(delegate, self.allow_fp16, available, num_threads, log_fn):
                name = spec[0] if isinstance(spec, tuple) else spec
                if name == CPU_PROVIDER or name in seen:
                    continue
                seen.add(name)
                merged.append(spec)
        for spec in base:
            name = spec[0] if isinstance(spec, tuple) else spec
            if name in seen:
                continue
            seen.add(name)
            merged.append(spec)
        return merged
