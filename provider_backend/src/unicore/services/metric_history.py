from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

DEFAULT_WINDOW = 20


# PUBLIC_INTERFACE
def append_sample(history: Sequence[float], sample: float, window: int = DEFAULT_WINDOW) -> List[float]:
    """
    Append sample to a bounded history and return the new list (oldest first).

    When the result exceeds `window`, exactly one element is dropped from the front, so the
    length after each call is min(previous + 1, window).
    """
    if window < 1:
        raise ValueError("window must be at least 1")
    updated = list(history)
    updated.append(float(sample))
    if len(updated) > window:
        updated.pop(0)
    return updated


@dataclass(frozen=True)
class MetricHistory:
    """The three utilization channels of a virtual machine, updated in lockstep."""

    cpu: List[float]
    gpu: List[float]
    ram: List[float]

    def record(self, cpu: float, gpu: float, ram: float, window: int = DEFAULT_WINDOW) -> "MetricHistory":
        return MetricHistory(
            cpu=append_sample(self.cpu, cpu, window),
            gpu=append_sample(self.gpu, gpu, window),
            ram=append_sample(self.ram, ram, window),
        )
