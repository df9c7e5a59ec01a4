# ILSVRC Accuracy Evaluation Package
# This package contains modules for evaluating classification models on ILSVRC.

from .evaluator import ImagenetModelEvaluator, Observer, Params
from .metrics import TopkAccuracyEvalMetrics, TopkAccuracyEvalStage
from .delegates import DelegateProviders, resolve_providers
from .observers import CompositeObserver, ProgressPrinter, ResultsWriter

__all__ = [
    'ImagenetModelEvaluator',
    'Observer',
    'Params',
    'TopkAccuracyEvalMetrics',
    'TopkAccuracyEvalStage',
    'DelegateProviders',
    'resolve_providers',
    'CompositeObserver',
    'ProgressPrinter',
    'ResultsWriter',
]
