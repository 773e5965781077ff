"""Tests for the face analysis provider and its model components."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING
from unittest.mock import MagicMock, patch

import numpy as np
import pytest
from conftest import make_frame

from faceoverlay.config import Settings
from faceoverlay.core.geometry import Point, Region
from faceoverlay.ml.expression import EXPRESSION_LABELS, ExpressionClassifier, softmax
from faceoverlay.ml.face_detector import RawDetection, parse_yunet_output
from faceoverlay.ml.inference import InferencePool
from faceoverlay.ml.preprocessing import ALIGNED_SIZE, REFERENCE_LANDMARKS, align_face, to_expression_tensor
from faceoverlay.ml.provider import FaceAnalysisProvider

if TYPE_CHECKING:
    from collections.abc import Iterator

# Reference landmarks shifted into a 320x240 frame.
LANDMARKS = REFERENCE_LANDMARKS + np.array([100.0, 50.0], dtype=np.float32)


def _fake_session(output: list[float]) -> MagicMock:
    session = MagicMock()
    session.get_inputs.return_value = [MagicMock(name="input")]
    session.get_inputs.return_value[0].name = "data"
    session.run.return_value = [np.array([output], dtype=np.float32)]
    return session


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------


class TestParseYunetOutput:
    def test_none_means_no_faces(self) -> None:
        assert parse_yunet_output(None) == []

    def test_splits_row(self) -> None:
        row = np.arange(15, dtype=np.float32)
        row[14] = 0.87
        (detection,) = parse_yunet_output(row[np.newaxis])
        assert detection.bbox.tolist() == [0, 1, 2, 3]
        assert detection.landmarks.shape == (5, 2)
        assert detection.landmarks[0].tolist() == [4, 5]
        assert detection.score == pytest.approx(0.87)


class TestPreprocessing:
    def test_align_face_shape(self) -> None:
        image = np.zeros((240, 320, 3), dtype=np.uint8)
        crop = align_face(image, LANDMARKS)
        assert crop.shape == (ALIGNED_SIZE, ALIGNED_SIZE, 3)

    def test_align_identity_landmarks_keeps_content(self) -> None:
        image = np.random.default_rng(0).integers(0, 255, (112, 112, 3), dtype=np.uint8)
        crop = align_face(image, REFERENCE_LANDMARKS.copy())
        assert np.abs(crop.astype(int) - image.astype(int)).mean() < 2

    def test_tensor_layout_and_range(self) -> None:
        face = np.full((112, 112, 3), 255, dtype=np.uint8)
        tensor = to_expression_tensor(face)
        assert tensor.shape == (1, 3, 112, 112)
        assert tensor.dtype == np.float32
        assert np.allclose(tensor, 1.0)


class TestExpressionClassifier:
    def test_logits_become_probabilities(self) -> None:
        session = _fake_session([0.0, 0.0, 0.0, 5.0, 1.0, 0.0, -1.0])
        classifier = ExpressionClassifier(session)

        scores = classifier.classify(np.zeros((240, 320, 3), dtype=np.uint8), LANDMARKS)

        assert set(scores) == set(EXPRESSION_LABELS)
        assert sum(scores.values()) == pytest.approx(1.0, abs=1e-5)
        assert max(scores, key=scores.__getitem__) == "happy"
        feed = session.run.call_args.args[1]
        assert feed["data"].shape == (1, 3, 112, 112)

    def test_probabilities_pass_through(self) -> None:
        probs = [0.05, 0.05, 0.05, 0.6, 0.15, 0.05, 0.05]
        classifier = ExpressionClassifier(_fake_session(probs))
        scores = classifier.classify(np.zeros((240, 320, 3), dtype=np.uint8), LANDMARKS)
        assert scores["happy"] == pytest.approx(0.6)

    def test_softmax_is_stable(self) -> None:
        out = softmax(np.array([1000.0, 1000.0], dtype=np.float32))
        assert out.tolist() == pytest.approx([0.5, 0.5])


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(models_dir=str(tmp_path))


@pytest.fixture()
def pool() -> Iterator[InferencePool]:
    inference_pool = InferencePool(max_concurrent=2)
    yield inference_pool
    inference_pool.shutdown()


@pytest.fixture()
def model_manager() -> MagicMock:
    manager = MagicMock()
    manager.ensure_downloaded.return_value = Path("/models/face_detection_yunet_2023mar.onnx")
    manager.get_session.return_value = _fake_session([0.0, 0.0, 0.0, 4.0, 0.0, 0.0, 0.0])
    return manager


class TestFaceAnalysisProvider:
    async def test_not_ready_before_load(
        self, settings: Settings, model_manager: MagicMock, pool: InferencePool
    ) -> None:
        provider = FaceAnalysisProvider(settings, model_manager, pool)
        assert not provider.ready
        with pytest.raises(RuntimeError, match="not loaded"):
            await provider.detect(make_frame())

    @patch("faceoverlay.ml.provider.YuNetFaceDetector")
    async def test_load_uses_configured_models(
        self, detector_cls: MagicMock, settings: Settings, model_manager: MagicMock, pool: InferencePool
    ) -> None:
        provider = FaceAnalysisProvider(settings, model_manager, pool)

        assert await provider.load() is True

        assert provider.ready
        model_manager.ensure_downloaded.assert_called_once_with("yunet_2023mar")
        model_manager.get_session.assert_called_once_with("fer_mobilefacenet")
        detector_cls.assert_called_once_with(
            Path("/models/face_detection_yunet_2023mar.onnx"), score_threshold=0.5
        )

    async def test_load_failure_leaves_not_ready(
        self, settings: Settings, model_manager: MagicMock, pool: InferencePool
    ) -> None:
        model_manager.ensure_downloaded.side_effect = OSError("offline")
        provider = FaceAnalysisProvider(settings, model_manager, pool)

        assert await provider.load() is False
        assert not provider.ready

    @patch("faceoverlay.ml.provider.YuNetFaceDetector")
    async def test_detect_builds_full_detections(
        self, detector_cls: MagicMock, settings: Settings, model_manager: MagicMock, pool: InferencePool
    ) -> None:
        detector_cls.return_value.detect.return_value = [
            RawDetection(
                bbox=np.array([90, 40, 130, 140], dtype=np.float32),
                score=0.95,
                landmarks=LANDMARKS,
            )
        ]
        provider = FaceAnalysisProvider(settings, model_manager, pool)
        await provider.load()

        (detection,) = await provider.detect(make_frame(320, 240))

        assert detection.region == Region(90, 40, 130, 140)
        assert detection.score == pytest.approx(0.95)
        assert detection.landmarks is not None
        assert len(detection.landmarks) == 5
        assert detection.landmarks[0] == Point(float(LANDMARKS[0][0]), float(LANDMARKS[0][1]))
        assert detection.expressions is not None
        assert max(detection.expressions, key=detection.expressions.__getitem__) == "happy"

    @patch("faceoverlay.ml.provider.ExpressionClassifier")
    @patch("faceoverlay.ml.provider.YuNetFaceDetector")
    async def test_unalignable_face_has_no_expressions(
        self,
        detector_cls: MagicMock,
        classifier_cls: MagicMock,
        settings: Settings,
        model_manager: MagicMock,
        pool: InferencePool,
    ) -> None:
        detector_cls.return_value.detect.return_value = [
            RawDetection(bbox=np.array([0, 0, 10, 10], dtype=np.float32), score=0.6, landmarks=LANDMARKS)
        ]
        classifier_cls.return_value.classify.side_effect = ValueError("degenerate")
        provider = FaceAnalysisProvider(settings, model_manager, pool)
        await provider.load()

        (detection,) = await provider.detect(make_frame(320, 240))

        assert detection.expressions is None
        assert detection.landmarks is not None

    @patch("faceoverlay.ml.provider.YuNetFaceDetector")
    async def test_no_faces(
        self, detector_cls: MagicMock, settings: Settings, model_manager: MagicMock, pool: InferencePool
    ) -> None:
        detector_cls.return_value.detect.return_value = []
        provider = FaceAnalysisProvider(settings, model_manager, pool)
        await provider.load()

        assert await provider.detect(make_frame()) == []
