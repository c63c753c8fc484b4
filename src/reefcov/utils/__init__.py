"""Shared utilities for reefcov pipelines."""

from .base import BasePipeline, ValidationResult
from .geo import Point
from .io import get_data_path

__all__ = [
    "get_data_path",
    "Point",
    "BasePipeline",
    "ValidationResult",
]
