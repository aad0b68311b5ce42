"""
Tests for decoding raw backend outputs into normalized detections.
"""

import numpy as np
import pytest

from domain.errors import InferenceFailure
from inference.backend import RawOutput
from inference.postprocess import postprocess, postprocess_ssd, postprocess_tf_od, postprocess_yolo
from inference.registry import ModelRegistry


@pytest.fixture
def ssd():
    return ModelRegistry().require("mobilenet-ssd")


@pytest.fixture
def yolo():
    return ModelRegistry().require("yolov5s")


@pytest.fixture
def tf_od():
    return ModelRegistry().require("coco-ssd")


def ssd_output(rows):
    return RawOutput(outputs={"out": np.asarray(rows, dtype=np.float32).reshape(1, 1, -1, 7)})


class TestSsd:
    def test_threshold_filters_and_keeps_order(self, ssd):
        raw = ssd_output([
            [0, 1, 0.9, 0.1, 0.1, 0.5, 0.5],
            [0, 3, 0.2, 0.2, 0.2, 0.4, 0.4],
            [0, 17, 0.6, 0.5, 0.5, 0.9, 0.9],
        ])

        dets = postprocess_ssd(raw, ssd, threshold=0.3)

        assert [d.label for d in dets] == ["person", "dog"]
        assert all(d.score >= 0.3 for d in dets)

    def test_model_score_threshold_is_strict(self, ssd):
        raw = ssd_output([[0, 1, 0.25, 0.1, 0.1, 0.5, 0.5]])

        assert postprocess_ssd(raw, ssd, threshold=0.0) == []

    def test_caller_threshold_is_inclusive(self, ssd):
        raw = ssd_output([[0, 1, 0.5, 0.1, 0.1, 0.5, 0.5]])

        assert len(postprocess_ssd(raw, ssd, threshold=0.5)) == 1

    def test_out_of_range_label_falls_back(self, ssd):
        raw = ssd_output([[0, 500, 0.9, 0.1, 0.1, 0.5, 0.5]])

        assert postprocess_ssd(raw, ssd, threshold=0.3)[0].label == "class_500"

    def test_boxes_are_clipped(self, ssd):
        raw = ssd_output([[0, 1, 0.9, -0.2, 0.1, 1.3, 0.5]])

        bbox = postprocess_ssd(raw, ssd, threshold=0.3)[0].bbox

        assert bbox.x1 == 0.0
        assert bbox.x2 == 1.0

    def test_bad_shape_raises(self, ssd):
        raw = RawOutput(outputs={"out": np.zeros((1, 5), dtype=np.float32)})

        with pytest.raises(InferenceFailure):
            postprocess_ssd(raw, ssd, threshold=0.3)


class TestYolo:
    def yolo_row(self, cx, cy, w, h, obj, cls_idx, cls_score, num_classes=80):
        row = np.zeros(5 + num_classes, dtype=np.float32)
        row[:5] = [cx, cy, w, h, obj]
        row[5 + cls_idx] = cls_score
        return row

    def test_normalizes_and_suppresses_overlaps(self, yolo):
        rows = np.stack([
            self.yolo_row(320, 320, 64, 64, 0.9, 0, 0.9),
            self.yolo_row(322, 322, 64, 64, 0.8, 0, 0.9),
            self.yolo_row(100, 100, 40, 40, 0.9, 2, 0.8),
        ])
        raw = RawOutput(outputs={"output0": rows[np.newaxis]})

        dets = postprocess_yolo(raw, yolo, threshold=0.3)

        assert [d.label for d in dets] == ["person", "car"]
        person = dets[0]
        assert person.score == pytest.approx(0.81, abs=1e-4)
        assert person.bbox.x1 == pytest.approx((320 - 32) / 640)
        assert person.bbox.y2 == pytest.approx((320 + 32) / 640)

    def test_low_scores_dropped(self, yolo):
        rows = np.stack([self.yolo_row(320, 320, 64, 64, 0.5, 0, 0.5)])

        assert postprocess_yolo(RawOutput(outputs={"o": rows}), yolo, threshold=0.3) == []


class TestTfOd:
    def test_yx_boxes_are_reordered(self, tf_od):
        raw = RawOutput(outputs={
            "detection_boxes": np.array([[[0.1, 0.2, 0.5, 0.6], [0.0, 0.0, 1.0, 1.0]]], dtype=np.float32),
            "detection_scores": np.array([[0.8, 0.1]], dtype=np.float32),
            "detection_classes": np.array([[1.0, 3.0]], dtype=np.float32),
            "num_detections": np.array([2.0], dtype=np.float32),
        })

        dets = postprocess_tf_od(raw, tf_od, threshold=0.3)

        assert len(dets) == 1
        assert dets[0].label == "person"
        assert dets[0].bbox.as_list() == pytest.approx([0.2, 0.1, 0.6, 0.5])

    def test_missing_outputs_raise(self, tf_od):
        with pytest.raises(InferenceFailure):
            postprocess_tf_od(RawOutput(outputs={"x": np.zeros(3)}), tf_od, threshold=0.3)


def test_unknown_format_raises(ssd):
    with pytest.raises(InferenceFailure):
        postprocess("segmentation", ssd_output([]), ssd, 0.3)
