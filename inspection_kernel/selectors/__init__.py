"""Read-only selectors."""

from inspection_kernel.selectors.base import BaseSelector
from inspection_kernel.selectors.inspection_selector import (
    InspectionFilter,
    InspectionSelector,
)

__all__ = [
    "BaseSelector",
    "InspectionFilter",
    "InspectionSelector",
]
