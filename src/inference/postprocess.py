"""
Decode raw backend outputs into normalized detections.

Each decoder takes the backend's RawOutput, the model descriptor and the
caller's confidence threshold, and returns detections in backend order.
Boxes are always normalized to [0, 1] and clipped.
"""

from __future__ import annotations

from typing import Callable, Dict, List

import cv2
import numpy as np

from domain.errors import InferenceFailure
from models.detection import BoundingBox, Detection

from .backend import RawOutput
from .registry import ModelDescriptor

YOLO_NMS_IOU = 0.45


def _keep(score: float, descriptor: ModelDescriptor, threshold: float) -> bool:
    return score > descriptor.score_threshold and score >= threshold


def postprocess_ssd(raw: RawOutput, descriptor: ModelDescriptor, threshold: float) -> List[Detection]:
    """
    SSD-style output: N slots of ``[image_id, label_idx, conf, x1, y1, x2, y2]``
    with normalized corners.
    """
    out = raw.first()
    if out.size == 0:
        return []
    if out.size % 7 != 0:
        raise InferenceFailure(f"Unexpected SSD output shape {tuple(out.shape)}")

    detections: List[Detection] = []
    for slot in out.reshape(-1, 7):
        conf = float(slot[2])
        if not _keep(conf, descriptor, threshold):
            continue
        idx = int(slot[1])
        bbox = BoundingBox(float(slot[3]), float(slot[4]), float(slot[5]), float(slot[6])).clipped()
        detections.append(Detection(bbox=bbox, label=descriptor.label_for(idx), score=conf, class_id=idx))
    return detections


def postprocess_yolo(raw: RawOutput, descriptor: ModelDescriptor, threshold: float) -> List[Detection]:
    """
    YOLO-style output: rows of ``[cx, cy, w, h, obj, cls_0 .. cls_n]`` in
    input-pixel space. Score is obj * best class score; overlapping boxes are
    suppressed with OpenCV NMS.
    """
    out = raw.first()
    if out.size == 0:
        return []
    if out.ndim == 3:
        out = out[0]
    if out.ndim != 2 or out.shape[1] < 6:
        raise InferenceFailure(f"Unexpected YOLO output shape {tuple(out.shape)}")

    class_scores = out[:, 5:]
    class_ids = np.argmax(class_scores, axis=1)
    scores = out[:, 4] * class_scores[np.arange(len(out)), class_ids]

    rows = [i for i, s in enumerate(scores) if _keep(float(s), descriptor, threshold)]
    if not rows:
        return []

    boxes = [
        [float(out[i, 0] - out[i, 2] / 2), float(out[i, 1] - out[i, 3] / 2), float(out[i, 2]), float(out[i, 3])]
        for i in rows
    ]
    kept = cv2.dnn.NMSBoxes(boxes, [float(scores[i]) for i in rows], float(threshold), YOLO_NMS_IOU)
    kept = sorted(int(k) for k in np.asarray(kept).flatten())

    width, height = descriptor.input_size
    detections: List[Detection] = []
    for k in kept:
        i = rows[k]
        cx, cy, w, h = (float(v) for v in out[i, :4])
        bbox = BoundingBox.from_cxcywh(cx / width, cy / height, w / width, h / height).clipped()
        idx = int(class_ids[i])
        detections.append(Detection(bbox=bbox, label=descriptor.label_for(idx), score=float(scores[i]), class_id=idx))
    return detections


def postprocess_tf_od(raw: RawOutput, descriptor: ModelDescriptor, threshold: float) -> List[Detection]:
    """
    TensorFlow Object Detection API outputs: ``detection_boxes`` as
    normalized [ymin, xmin, ymax, xmax], plus ``detection_scores`` and
    ``detection_classes``.
    """
    boxes = raw.get("detection_boxes")
    scores = raw.get("detection_scores")
    classes = raw.get("detection_classes")
    if boxes is None or scores is None or classes is None:
        raise InferenceFailure(f"Missing TF-OD outputs, got {sorted(raw.outputs)}")

    boxes = np.asarray(boxes).reshape(-1, 4)
    scores = np.asarray(scores).reshape(-1)
    classes = np.asarray(classes).reshape(-1)

    count = len(scores)
    num = raw.get("num_detections")
    if num is not None:
        count = min(count, int(np.asarray(num).reshape(-1)[0]))

    detections: List[Detection] = []
    for i in range(count):
        score = float(scores[i])
        if not _keep(score, descriptor, threshold):
            continue
        ymin, xmin, ymax, xmax = (float(v) for v in boxes[i])
        idx = int(classes[i])
        bbox = BoundingBox(x1=xmin, y1=ymin, x2=xmax, y2=ymax).clipped()
        detections.append(Detection(bbox=bbox, label=descriptor.label_for(idx), score=score, class_id=idx))
    return detections


Postprocessor = Callable[[RawOutput, ModelDescriptor, float], List[Detection]]

POSTPROCESSORS: Dict[str, Postprocessor] = {
    "ssd": postprocess_ssd,
    "yolo": postprocess_yolo,
    "tf-od": postprocess_tf_od,
}


def postprocess(output_format: str, raw: RawOutput, descriptor: ModelDescriptor, threshold: float) -> List[Detection]:
    try:
        decoder = POSTPROCESSORS[output_format]
    except KeyError:
        raise InferenceFailure(f"No postprocessor for output format '{output_format}'")
    return decoder(raw, descriptor, threshold)
