from typing import List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from .base import Detection, OutputTensor
from ..errors import DecodingError, EncodingError
from ..labels import ClassLabelTable

PAD_COLOR = (114, 114, 114)


class EncodeMeta:
    """How a frame was mapped into the square model canvas."""
    def __init__(
        self,
        scale_x: float,
        scale_y: float,
        pad_x: float,
        pad_y: float,
        orig_shape: Tuple[int, int],
    ):
        self.scale_x = scale_x
        self.scale_y = scale_y
        self.pad_x = pad_x
        self.pad_y = pad_y
        self.orig_shape = orig_shape


def _to_rgb(frame, channel_order: str) -> np.ndarray:
    if frame is None:
        raise EncodingError("No frame available")

    image = np.asarray(frame)
    if image.dtype != np.uint8:
        raise EncodingError(f"Unsupported frame dtype {image.dtype}; expected uint8")
    if image.ndim == 2:
        image = image[:, :, None]
    if image.ndim != 3 or image.shape[2] not in (1, 3, 4):
        raise EncodingError(f"Unsupported frame shape {image.shape}")
    if image.shape[0] == 0 or image.shape[1] == 0:
        raise EncodingError(f"Frame has zero size: {image.shape[1]}x{image.shape[0]}")

    if image.shape[2] == 1:
        return np.repeat(image, 3, axis=2)

    order = channel_order.lower()
    if order in ("bgr", "bgra"):
        image = image[:, :, 2::-1]
    elif order in ("rgb", "rgba"):
        image = image[:, :, :3]
    else:
        raise EncodingError(f"Unsupported channel order: {channel_order}")
    return np.ascontiguousarray(image)


def resize_stretch(image: np.ndarray, size: int) -> Tuple[np.ndarray, EncodeMeta]:
    """Resize to size x size without padding (aspect ratio may change)."""
    orig_h, orig_w = image.shape[:2]
    scale_x = size / orig_w
    scale_y = size / orig_h
    if (orig_h, orig_w) != (size, size):
        interp = cv2.INTER_AREA if scale_x < 1.0 or scale_y < 1.0 else cv2.INTER_LINEAR
        image = cv2.resize(image, (size, size), interpolation=interp)
    meta = EncodeMeta(scale_x=scale_x, scale_y=scale_y, pad_x=0.0, pad_y=0.0, orig_shape=(orig_h, orig_w))
    return image, meta


def letterbox(image: np.ndarray, size: int, color: Tuple[int, int, int] = PAD_COLOR) -> Tuple[np.ndarray, EncodeMeta]:
    """Resize preserving aspect ratio and pad to size x size, centered."""
    orig_h, orig_w = image.shape[:2]
    ratio = min(size / orig_h, size / orig_w)
    new_w = max(1, int(round(orig_w * ratio)))
    new_h = max(1, int(round(orig_h * ratio)))
    dw = (size - new_w) / 2
    dh = (size - new_h) / 2

    if (orig_w, orig_h) != (new_w, new_h):
        interp = cv2.INTER_AREA if ratio < 1.0 else cv2.INTER_LINEAR
        image = cv2.resize(image, (new_w, new_h), interpolation=interp)

    top, bottom = int(round(dh - 0.1)), int(round(dh + 0.1))
    left, right = int(round(dw - 0.1)), int(round(dw + 0.1))
    image = cv2.copyMakeBorder(image, top, bottom, left, right, cv2.BORDER_CONSTANT, value=color)

    meta = EncodeMeta(scale_x=ratio, scale_y=ratio, pad_x=float(left), pad_y=float(top), orig_shape=(orig_h, orig_w))
    return image, meta


def encode_frame(
    frame,
    size: int = 640,
    resize_mode: str = "stretch",
    channel_order: str = "bgr",
) -> Tuple[np.ndarray, EncodeMeta]:
    """Convert a captured frame into a read-only [1, 3, size, size] float32 tensor.

    Planes are laid out R, G, B with values scaled to [0, 1]. ``resize_mode``
    is either ``stretch`` (whole frame squeezed into the canvas) or
    ``letterbox`` (aspect ratio kept, gray padding).
    """
    if size <= 0:
        raise EncodingError(f"Tensor size must be positive; got {size}")

    image = _to_rgb(frame, channel_order)
    mode = resize_mode.lower()
    if mode == "stretch":
        canvas, meta = resize_stretch(image, size)
    elif mode == "letterbox":
        canvas, meta = letterbox(image, size)
    else:
        raise EncodingError(f"Unsupported resize mode: {resize_mode}")

    tensor = canvas.astype(np.float32) / np.float32(255.0)
    tensor = np.ascontiguousarray(np.transpose(tensor, (2, 0, 1))[None, ...])
    tensor.setflags(write=False)
    return tensor, meta


def _as_prediction_rows(output: Union[OutputTensor, np.ndarray], output_layout: str) -> np.ndarray:
    if isinstance(output, OutputTensor):
        dims = tuple(output.dims)
        data = np.asarray(output.data)
    else:
        data = np.asarray(output)
        dims = tuple(data.shape)

    if not np.issubdtype(data.dtype, np.number):
        raise DecodingError(f"Output tensor has non-numeric dtype {data.dtype}")
    if len(dims) != 3:
        raise DecodingError(f"Expected output dims [1, N, 4+1+C]; got {list(dims)}")
    if any(d < 0 for d in dims):
        raise DecodingError(f"Output dims must be non-negative; got {list(dims)}")
    if dims[0] != 1:
        raise DecodingError(f"Expected batch size 1; got {dims[0]}")
    if data.size != int(np.prod(dims)):
        raise DecodingError(f"Output holds {data.size} values but dims {list(dims)} declare {int(np.prod(dims))}")

    preds = data.reshape(dims)[0]
    if output_layout == "channel_first":
        preds = preds.T
    elif output_layout != "rows":
        raise DecodingError(f"Unsupported output layout: {output_layout}")

    if preds.shape[1] < 5:
        raise DecodingError(f"Output rows need at least 5 values (box + objectness); got {preds.shape[1]}")
    return preds


def rescale_to_frame(boxes: np.ndarray, meta: EncodeMeta) -> np.ndarray:
    # Reverse canvas scaling and padding to map xyxy boxes back to the source frame.
    boxes[:, [0, 2]] -= meta.pad_x
    boxes[:, [1, 3]] -= meta.pad_y
    boxes[:, [0, 2]] /= meta.scale_x
    boxes[:, [1, 3]] /= meta.scale_y

    h, w = meta.orig_shape
    boxes[:, 0] = np.clip(boxes[:, 0], 0, w)
    boxes[:, 2] = np.clip(boxes[:, 2], 0, w)
    boxes[:, 1] = np.clip(boxes[:, 1], 0, h)
    boxes[:, 3] = np.clip(boxes[:, 3], 0, h)
    return boxes


def decode_output(
    output: Union[OutputTensor, np.ndarray],
    labels: Union[ClassLabelTable, Sequence[str]],
    confidence_threshold: float = 0.5,
    input_size: int = 640,
    confidence_mode: str = "objectness",
    box_units: str = "normalized",
    output_layout: str = "rows",
    meta: Optional[EncodeMeta] = None,
    map_to_frame: bool = False,
) -> List[Detection]:
    """Turn raw ``[1, N, 4+1+C]`` model output into candidate detections.

    Rows are ``(cx, cy, w, h, objectness, class scores...)``. A row is kept
    when its confidence is strictly above ``confidence_threshold``; results
    keep row order and are not yet suppressed.
    """
    if not isinstance(labels, ClassLabelTable):
        labels = ClassLabelTable(labels)

    preds = _as_prediction_rows(output, output_layout)
    if preds.shape[0] == 0:
        return []

    preds = preds.astype(np.float64, copy=False)
    objectness = preds[:, 4]
    class_scores = preds[:, 5:]
    row_index = np.arange(len(preds))
    if class_scores.shape[1] > 0:
        class_ids = np.argmax(class_scores, axis=1)
        class_conf = class_scores[row_index, class_ids]
    else:
        class_ids = np.full(len(preds), -1, dtype=int)
        class_conf = np.ones(len(preds), dtype=preds.dtype)

    if confidence_mode == "objectness":
        scores = objectness
    elif confidence_mode == "objectness_x_class":
        scores = objectness * class_conf
    else:
        raise ValueError(f"Unsupported confidence mode: {confidence_mode}")

    mask = scores > confidence_threshold
    if not mask.any():
        return []

    if box_units == "normalized":
        unit = float(input_size)
    elif box_units == "pixels":
        unit = 1.0
    else:
        raise ValueError(f"Unsupported box units: {box_units}")

    boxes = preds[mask, :4]
    scores = scores[mask]
    class_ids = class_ids[mask]

    boxes_xyxy = np.empty_like(boxes)
    boxes_xyxy[:, 0] = (boxes[:, 0] - boxes[:, 2] / 2) * unit
    boxes_xyxy[:, 1] = (boxes[:, 1] - boxes[:, 3] / 2) * unit
    boxes_xyxy[:, 2] = boxes_xyxy[:, 0] + np.maximum(boxes[:, 2] * unit, 0.0)
    boxes_xyxy[:, 3] = boxes_xyxy[:, 1] + np.maximum(boxes[:, 3] * unit, 0.0)

    if map_to_frame and meta is not None:
        boxes_xyxy = rescale_to_frame(boxes_xyxy, meta)

    detections: List[Detection] = []
    for idx in range(len(boxes_xyxy)):
        x1, y1, x2, y2 = (float(v) for v in boxes_xyxy[idx])
        class_index = int(class_ids[idx])
        detections.append(
            Detection(
                class_label=labels.label_for(class_index),
                class_index=class_index,
                confidence=float(scores[idx]),
                x=x1,
                y=y1,
                width=x2 - x1,
                height=y2 - y1,
            )
        )
    return detections
