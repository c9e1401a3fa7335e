"""
Chartprep - Errors
"""


class ChartprepError(ValueError):
    """Base exception for all chartprep contract violations."""


class PlanValidationError(ChartprepError):
    """Raised when an analysis plan is missing a field its chart type requires."""


class UnsupportedAggregationError(PlanValidationError):
    """Raised when a plan names an aggregation other than sum, count or avg."""

    def __init__(self, aggregation: str):
        self.aggregation = aggregation
        super().__init__(f"Unsupported aggregation type: {aggregation}")


class ScatterAxisError(PlanValidationError):
    """Raised when a scatter plan cannot resolve two distinct axes."""


class TransformError(ChartprepError):
    """Raised when an externally authored transform body is rejected or fails."""
