from .buffer import Buffer, PoseHistoryBuffer
from .performance import PerformanceMonitor

__all__ = [
    'Buffer',
    'PoseHistoryBuffer',
    'PerformanceMonitor',
]
