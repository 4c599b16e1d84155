"""Training/inference data pipeline: pick cut points, split windows, batch them."""

from .loader import InferenceBatchLoader, TrainingBatchLoader
from .sampler import ExpectedNumInstanceSampler, InstanceSampler, TestSplitSampler, ValidationSplitSampler
from .splitter import InstanceSplitter

__all__ = [
    "ExpectedNumInstanceSampler",
    "InferenceBatchLoader",
    "InstanceSampler",
    "InstanceSplitter",
    "TestSplitSampler",
    "TrainingBatchLoader",
    "ValidationSplitSampler",
]
