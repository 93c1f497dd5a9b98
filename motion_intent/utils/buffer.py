from collections import deque
from typing import Deque, Generic, List, Optional, TypeVar

from motion_intent.config import HistoryConfig
from motion_intent.core.data_types import PoseFrame

T = TypeVar("T")


class Buffer(Generic[T]):
    """
    A FIFO buffer that stores the last `max_size` elements.
    When full, adding an element evicts the oldest one.
    """

    def __init__(self, max_size: int) -> None:
        assert max_size > 0

        self.max_size = max_size
        self.buffer: Deque[T] = deque(maxlen=max_size)

    def add(self, value: T) -> None:
        """
        Add a value to the buffer.
        """
        self.buffer.append(value)

    def clear(self) -> None:
        """
        Clear the buffer.
        """
        self.buffer = deque(maxlen=self.max_size)

    def first(self) -> Optional[T]:
        """
        Return the oldest element in the buffer.
        """
        if len(self.buffer) == 0:
            return None
        return self.buffer[0]

    def last(self) -> Optional[T]:
        """
        Return the newest element in the buffer.
        """
        if len(self.buffer) == 0:
            return None
        return self.buffer[-1]

    def window(self, k: int) -> List[T]:
        """
        Return the newest `k` elements, oldest first (fewer if the buffer holds less).
        """
        if k <= 0:
            return []
        size = len(self.buffer)
        start = max(0, size - k)
        return [self.buffer[i] for i in range(start, size)]

    def __len__(self) -> int:
        return len(self.buffer)

    def __str__(self) -> str:
        return str(self.buffer)

    def __repr__(self) -> str:
        return str(self)


class PoseHistoryBuffer(Buffer[PoseFrame]):
    """
    Ring buffer of the most recent pose frames (default capacity ~2s at 30fps).
    Mutated only by the frame-processing call of the orchestrator.
    """

    def __init__(self, capacity: Optional[int] = None) -> None:
        super().__init__(capacity if capacity is not None else HistoryConfig.CAPACITY)

    @property
    def capacity(self) -> int:
        return self.max_size

    def push(self, frame: PoseFrame) -> None:
        """
        Append a frame, evicting the oldest one beyond capacity.
        """
        self.add(frame)
