"""Unit tests for thresholding, labelling and box scaling."""

from __future__ import annotations

import math

import pytest
from loguru import logger

from harvest_lens.pipeline.postprocess import process, scale_box
from harvest_lens.pipeline.types import PixelBox, RawDetection, SurfaceSize


CLASSES = ("apple", "banana")
SURFACE = SurfaceSize(640, 640)


class TestThreshold:
    """Tests for the strict score threshold."""

    def test_score_equal_to_threshold_is_excluded(self) -> None:
        batch = [RawDetection(box=(0.1, 0.1, 0.2, 0.2), score=0.5, class_index=0)]
        assert process(batch, 0.5, CLASSES, SURFACE) == []

    def test_score_just_above_threshold_is_included(self) -> None:
        score = math.nextafter(0.5, 1.0)
        batch = [RawDetection(box=(0.1, 0.1, 0.2, 0.2), score=score, class_index=0)]

        detections = process(batch, 0.5, CLASSES, SURFACE)

        assert len(detections) == 1
        assert detections[0].score == score

    def test_low_scores_dropped(self) -> None:
        batch = [
            RawDetection(box=(0.0, 0.0, 0.1, 0.1), score=0.1, class_index=0),
            RawDetection(box=(0.0, 0.0, 0.1, 0.1), score=0.0, class_index=1),
        ]
        assert process(batch, 0.5, CLASSES, SURFACE) == []


class TestClassIndexSafety:
    """Out-of-range class indices never become detections."""

    @pytest.mark.parametrize("class_index", [2, 17, -1])
    def test_unknown_index_dropped(self, class_index: int) -> None:
        batch = [
            RawDetection(box=(0.1, 0.1, 0.2, 0.2), score=0.9, class_index=class_index)
        ]
        assert process(batch, 0.5, CLASSES, SURFACE) == []

    def test_valid_neighbours_survive(self) -> None:
        batch = [
            RawDetection(box=(0.1, 0.1, 0.2, 0.2), score=0.9, class_index=5),
            RawDetection(box=(0.1, 0.1, 0.2, 0.2), score=0.9, class_index=1),
        ]
        detections = process(batch, 0.5, CLASSES, SURFACE)
        assert [d.class_name for d in detections] == ["banana"]


class TestScaling:
    """Tests for normalised to pixel coordinate conversion."""

    def test_scale_box_axes(self) -> None:
        box = scale_box((0.25, 0.1, 0.75, 0.6), SurfaceSize(width=200, height=100))

        assert box.x == pytest.approx(20.0)
        assert box.y == pytest.approx(25.0)
        assert box.width == pytest.approx(100.0)
        assert box.height == pytest.approx(50.0)

    def test_non_square_surface(self) -> None:
        y0, x0, y1, x1 = 0.2, 0.3, 0.4, 0.9
        width, height = 1280, 720
        box = scale_box((y0, x0, y1, x1), SurfaceSize(width, height))

        assert (box.x, box.y) == pytest.approx((x0 * width, y0 * height))
        assert (box.width, box.height) == pytest.approx(
            ((x1 - x0) * width, (y1 - y0) * height)
        )


class TestOrderingAndScenario:
    """Batch order and the reference single-tick scenario."""

    def test_order_follows_batch(self) -> None:
        batch = [
            RawDetection(box=(0.0, 0.0, 0.1, 0.1), score=0.6, class_index=1),
            RawDetection(box=(0.0, 0.0, 0.1, 0.1), score=0.99, class_index=0),
            RawDetection(box=(0.0, 0.0, 0.1, 0.1), score=0.7, class_index=1),
        ]
        detections = process(batch, 0.5, CLASSES, SURFACE)
        assert [d.score for d in detections] == pytest.approx([0.6, 0.99, 0.7])

    def test_reference_scenario(self) -> None:
        batch = [
            RawDetection(box=(0.1, 0.1, 0.3, 0.3), score=0.92, class_index=0),
            RawDetection(box=(0.5, 0.5, 0.7, 0.7), score=0.4, class_index=1),
        ]

        detections = process(batch, 0.5, CLASSES, SURFACE)

        assert len(detections) == 1
        detection = detections[0]
        assert detection.class_name == "apple"
        assert detection.score == pytest.approx(0.92)
        assert isinstance(detection.pixel_box, PixelBox)
        assert detection.pixel_box.x == pytest.approx(64.0)
        assert detection.pixel_box.y == pytest.approx(64.0)
        assert detection.pixel_box.width == pytest.approx(128.0)
        assert detection.pixel_box.height == pytest.approx(128.0)

    def test_debug_boxes_logged(self) -> None:
        batch = [RawDetection(box=(0.1, 0.1, 0.3, 0.3), score=0.92, class_index=0)]
        messages = []
        sink_id = logger.add(messages.append, level="DEBUG", format="{message}")
        try:
            process(batch, 0.5, CLASSES, SURFACE)
            assert not any("Decoded boxes" in m for m in messages)

            process(batch, 0.5, CLASSES, SURFACE, debug_boxes=True)
        finally:
            logger.remove(sink_id)

        assert any("Decoded boxes" in m and "apple" in m for m in messages)
