"""
Custom exception hierarchy for the SMI system.
Separates fatal configuration/logic errors from recoverable per-cell failures.
"""
from typing import Optional, Any, Dict
from dataclasses import dataclass


@dataclass
class ErrorContext:
    """Context information for errors"""
    cell: Optional[int] = None
    step: Optional[int] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class SmiError(Exception):
    """Base exception for all SMI errors"""

    def __init__(self, message: str, context: Optional[ErrorContext] = None):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()

    def __str__(self) -> str:
        context_str = ""
        if self.context.cell is not None:
            context_str += f" [Cell: {self.context.cell}]"
        if self.context.step is not None:
            context_str += f" [Step: {self.context.step}]"
        if self.context.component:
            context_str += f" [Component: {self.context.component}]"

        return f"{self.__class__.__name__}: {self.message}{context_str}"


# Configuration errors (fatal)
class ConfigurationError(SmiError):
    """Inconsistent grids, invalid periods or thresholds"""
    pass


# Estimation errors (recovered per cell)
class EstimationFailure(SmiError):
    """Base class for per-cell estimation failures"""
    pass


class DegenerateSampleError(EstimationFailure):
    """Sample too small or without variance"""
    pass


class ConvergenceError(EstimationFailure):
    """Bandwidth search failed to converge"""
    pass


class InversionRangeError(EstimationFailure):
    """Requested quantile outside the representable CDF range"""
    pass


# Clustering errors (fatal)
class ClusteringInconsistency(SmiError):
    """Event registry violates its own invariants"""
    pass


def handle_exception(exc: Exception, context: Optional[ErrorContext] = None) -> SmiError:
    """
    Wrap generic exceptions in SmiError hierarchy.
    Useful for categorizing numpy/scipy/pydantic exceptions at module boundaries.
    """
    if isinstance(exc, SmiError):
        return exc

    error_map = {
        ValueError: ConfigurationError,
        KeyError: ConfigurationError,
        OSError: ConfigurationError,
        FloatingPointError: EstimationFailure,
        ArithmeticError: EstimationFailure,
    }

    for exc_type, smi_exc_type in error_map.items():
        if isinstance(exc, exc_type):
            return smi_exc_type(str(exc), context)

    return SmiError(str(exc), context)
