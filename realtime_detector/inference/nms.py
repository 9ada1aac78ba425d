from typing import List, Sequence

import numpy as np

from .base import Detection

NMS_MODES = ("first_match", "greedy")


def iou(a: Detection, b: Detection) -> float:
    """Intersection-over-union of two corner-anchored boxes."""
    inter_x = max(a.x, b.x)
    inter_y = max(a.y, b.y)
    inter_w = min(a.x + a.width, b.x + b.width) - inter_x
    inter_h = min(a.y + a.height, b.y + b.height) - inter_y
    if inter_w <= 0 or inter_h <= 0:
        return 0.0

    inter = inter_w * inter_h
    union = a.area + b.area - inter
    if union <= 0:
        return 0.0
    return inter / union


def pairwise_iou(detections: Sequence[Detection]) -> np.ndarray:
    """Dense IOU matrix, same rules as :func:`iou`."""
    if not detections:
        return np.zeros((0, 0), dtype=np.float64)

    boxes = np.array([d.to_xyxy() for d in detections], dtype=np.float64)
    x1, y1, x2, y2 = boxes[:, 0], boxes[:, 1], boxes[:, 2], boxes[:, 3]
    areas = (x2 - x1) * (y2 - y1)

    inter_w = np.minimum(x2[:, None], x2[None, :]) - np.maximum(x1[:, None], x1[None, :])
    inter_h = np.minimum(y2[:, None], y2[None, :]) - np.maximum(y1[:, None], y1[None, :])
    inter = np.where((inter_w > 0) & (inter_h > 0), inter_w * inter_h, 0.0)
    union = areas[:, None] + areas[None, :] - inter
    out = np.zeros_like(inter)
    np.divide(inter, union, out=out, where=union > 0)
    return out


def suppress(
    detections: Sequence[Detection],
    iou_threshold: float = 0.5,
    mode: str = "first_match",
    class_agnostic: bool = True,
) -> List[Detection]:
    """Drop overlapping duplicates, highest confidence first.

    ``first_match`` keeps a box only when no higher-ranked box in the whole
    sorted list overlaps it by more than ``iou_threshold``, whether or not
    that higher-ranked box survived itself. ``greedy`` is textbook NMS: a box
    is compared against the boxes already kept. Ties in confidence keep
    input order.
    """
    if mode not in NMS_MODES:
        raise ValueError(f"Unsupported NMS mode: {mode}")
    if not detections:
        return []

    order = np.argsort([-d.confidence for d in detections], kind="stable")
    ranked = [detections[i] for i in order]
    if len(ranked) == 1:
        return ranked

    overlaps = pairwise_iou(ranked) > iou_threshold
    if not class_agnostic:
        class_ids = np.array([d.class_index for d in ranked])
        overlaps &= class_ids[:, None] == class_ids[None, :]

    if mode == "first_match":
        suppressed = np.tril(overlaps, k=-1).any(axis=1)
        return [det for det, drop in zip(ranked, suppressed) if not drop]

    kept: List[int] = []
    for idx in range(len(ranked)):
        if kept and overlaps[idx, kept].any():
            continue
        kept.append(idx)
    return [ranked[idx] for idx in kept]
