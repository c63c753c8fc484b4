"""Base classes and protocols for pipelines."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ValidationResult:
    """Result of data validation.

    Attributes:
        valid: Whether the data passed all validation checks
        total_rows: Total number of rows/records in the dataset
        missing_pct: Percentage of missing values (0-100)
        issues: List of validation issues found
        stats: Dictionary of summary statistics
    """

    valid: bool
    total_rows: int
    missing_pct: float
    issues: list[str] = field(default_factory=list)
    stats: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        status = "VALID" if self.valid else "INVALID"
        return (
            f"ValidationResult({status}, "
            f"rows={self.total_rows}, "
            f"missing={self.missing_pct:.1f}%)"
        )


class BasePipeline(ABC):
    """Abstract base class for extraction pipelines.

    Subclasses produce a table and know how to check it.
    """

    @abstractmethod
    def validate(self, data: Any) -> ValidationResult:
        """Validate data for quality and completeness.

        Args:
            data: Data to validate (usually a DataFrame)

        Returns:
            ValidationResult with quality metrics and issues
        """
        pass
