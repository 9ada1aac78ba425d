from dataclasses import dataclass, asdict
from typing import Tuple

import numpy as np


@dataclass(frozen=True)
class Detection:
    class_label: str
    class_index: int
    confidence: float
    x: float
    y: float
    width: float
    height: float

    @property
    def area(self) -> float:
        return self.width * self.height

    def to_xyxy(self) -> Tuple[float, float, float, float]:
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class OutputTensor:
    """Raw model output as returned by an inference engine."""

    name: str
    dims: Tuple[int, ...]
    data: np.ndarray

    @classmethod
    def from_array(cls, array, name: str = "output0") -> "OutputTensor":
        array = np.asarray(array)
        return cls(name=name, dims=tuple(int(d) for d in array.shape), data=array)


class InferenceEngine:
    """Opaque model: one input tensor in, one output tensor out."""

    def load(self) -> None:
        raise NotImplementedError

    def run(self, tensor: np.ndarray) -> OutputTensor:
        raise NotImplementedError

    def close(self) -> None:
        pass
