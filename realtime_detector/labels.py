from pathlib import Path
from typing import Iterable, Optional, Sequence, Tuple

UNKNOWN_LABEL = "unknown"

COCO_LABELS: Tuple[str, ...] = (
    "person", "bicycle", "car", "motorcycle", "airplane", "bus", "train", "truck", "boat",
    "traffic light", "fire hydrant", "stop sign", "parking meter", "bench", "bird", "cat",
    "dog", "horse", "sheep", "cow", "elephant", "bear", "zebra", "giraffe", "backpack",
    "umbrella", "handbag", "tie", "suitcase", "frisbee", "skis", "snowboard", "sports ball",
    "kite", "baseball bat", "baseball glove", "skateboard", "surfboard", "tennis racket",
    "bottle", "wine glass", "cup", "fork", "knife", "spoon", "bowl", "banana", "apple",
    "sandwich", "orange", "broccoli", "carrot", "hot dog", "pizza", "donut", "cake", "chair",
    "couch", "potted plant", "bed", "dining table", "toilet", "tv", "laptop", "mouse",
    "remote", "keyboard", "cell phone", "microwave", "oven", "toaster", "sink",
    "refrigerator", "book", "clock", "vase", "scissors", "teddy bear", "hair drier",
    "toothbrush",
)


class ClassLabelTable:
    """Read-only class index to label mapping."""

    def __init__(self, labels: Iterable[str]) -> None:
        self._labels: Tuple[str, ...] = tuple(str(label) for label in labels)

    def __len__(self) -> int:
        return len(self._labels)

    def __iter__(self):
        return iter(self._labels)

    def __eq__(self, other) -> bool:
        if isinstance(other, ClassLabelTable):
            return self._labels == other._labels
        return NotImplemented

    def __repr__(self) -> str:
        return f"ClassLabelTable({len(self._labels)} labels)"

    @property
    def labels(self) -> Tuple[str, ...]:
        return self._labels

    def label_for(self, class_index: int) -> str:
        if 0 <= class_index < len(self._labels):
            return self._labels[class_index]
        return UNKNOWN_LABEL

    @classmethod
    def coco(cls) -> "ClassLabelTable":
        return cls(COCO_LABELS)

    @classmethod
    def from_file(cls, path: str) -> "ClassLabelTable":
        label_path = Path(path)
        if not label_path.exists():
            raise FileNotFoundError(f"Labels file not found: {path}")
        lines = label_path.read_text(encoding="utf-8").splitlines()
        return cls(line.strip() for line in lines if line.strip())


def load_labels(labels: Optional[Sequence[str]] = None, labels_path: Optional[str] = None) -> ClassLabelTable:
    if labels:
        return ClassLabelTable(labels)
    if labels_path:
        return ClassLabelTable.from_file(labels_path)
    return ClassLabelTable.coco()
