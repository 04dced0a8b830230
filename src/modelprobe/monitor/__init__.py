from .comparator import (
    PerformanceComparator,
    calculate_comparison,
    generate_recommendation,
)
from .performance import PerformanceMonitor

__all__ = [
    "PerformanceComparator",
    "PerformanceMonitor",
    "calculate_comparison",
    "generate_recommendation",
]
