"""Reclaim data models."""

from reclaim.models.outcome import PipelineRun, StepOutcome, StepState
from reclaim.models.snapshot import DirectoryUsage, DiskSnapshot, LargeFile, MountUsage
from reclaim.models.step import CleanupStep, RiskTier, StepKind

__all__ = [
    "CleanupStep",
    "DirectoryUsage",
    "DiskSnapshot",
    "LargeFile",
    "MountUsage",
    "PipelineRun",
    "RiskTier",
    "StepKind",
    "StepOutcome",
    "StepState",
]
