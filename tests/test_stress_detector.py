"""
Tests for baseline calibration, deviation scoring and smoothing.
"""

import asyncio

import pytest

from interview_analyzer import stress_detector as stress_detector_module
from interview_analyzer.models import DetectionStats, ExpressionVector, StressDetectionResult
from interview_analyzer.stress_detector import StressDetector


def calibrated(classifier, frame_source, config, baseline: ExpressionVector) -> StressDetector:
    """Detector whose baseline equals the given vector."""
    classifier.expressions = baseline
    detector = StressDetector(classifier, config)

    async def run():
        assert await detector.initialize(frame_source)
        assert await detector.start_calibration()

    asyncio.run(run())
    return detector


def run_detection(detector, classifier, waiter, vectors, expected_count):
    """Feed vectors through the live detection loop, in order."""
    classifier.script = list(vectors)
    classifier.expressions = None

    async def run():
        assert detector.start_detection()
        reached = await waiter(lambda: detector.get_detection_stats().total_detections >= expected_count)
        detector.stop_detection()
        return reached

    assert asyncio.run(run())


class TestScoring:
    """Deviation scoring against the baseline."""

    def test_zero_deviation(self, classifier, frame_source, stress_config):
        baseline = ExpressionVector(neutral=0.6, sad=0.1, angry=0.1, fearful=0.1, surprised=0.1)
        detector = calibrated(classifier, frame_source, stress_config, baseline)

        result = detector.analyze_expressions(baseline)

        assert result.confidence == 0
        assert result.stress is False
        assert result.features == ()

    def test_threshold_boundary_is_exclusive(self, classifier, frame_source, stress_config):
        detector = calibrated(classifier, frame_source, stress_config, ExpressionVector())

        at_threshold = detector.analyze_expressions(ExpressionVector(angry=0.25))
        above_threshold = detector.analyze_expressions(ExpressionVector(angry=0.26))

        assert at_threshold.confidence == 0
        assert at_threshold.features == ()
        assert above_threshold.confidence == pytest.approx(0.26)
        assert 'jaw clenching' in above_threshold.features

    def test_single_label_stress(self, classifier, frame_source, stress_config):
        detector = calibrated(classifier, frame_source, stress_config, ExpressionVector(angry=0.02))

        stressed = detector.analyze_expressions(ExpressionVector(angry=0.70))
        calm = detector.analyze_expressions(ExpressionVector(angry=0.50))

        assert stressed.confidence == pytest.approx(0.68)
        assert stressed.stress is True
        assert stressed.features == ('eyebrow tension', 'jaw clenching')
        assert calm.confidence == pytest.approx(0.48)
        assert calm.stress is False

    def test_weighted_average_dilutes(self, classifier, frame_source, stress_config):
        detector = calibrated(classifier, frame_source, stress_config, ExpressionVector())

        result = detector.analyze_expressions(ExpressionVector(angry=0.30, fearful=0.30))

        assert result.confidence == pytest.approx(0.30)
        assert result.stress is False
        assert len(result.features) == 4

    def test_weights_apply_to_score(self, classifier, frame_source, stress_config):
        detector = calibrated(classifier, frame_source, stress_config, ExpressionVector())

        # (0.9 * 1.0 + 0.5 * 0.3) / (1.0 + 0.3)
        result = detector.analyze_expressions(ExpressionVector(angry=0.9, surprised=0.5))

        assert result.confidence == pytest.approx(round(1.05 / 1.3, 2))
        assert result.stress is True

    def test_decreases_never_contribute(self, classifier, frame_source, stress_config):
        detector = calibrated(classifier, frame_source, stress_config, ExpressionVector(sad=0.9))

        result = detector.analyze_expressions(ExpressionVector(sad=0.0))

        assert result.confidence == 0
        assert result.raw_data['deviations']['sad'] == pytest.approx(-0.9)

    def test_features_are_deduplicated(self, classifier, frame_source, stress_config, monkeypatch):
        monkeypatch.setitem(stress_detector_module.FEATURE_TAGS, 'fearful',
                            ('eye widening', 'eyebrow tension'))
        detector = calibrated(classifier, frame_source, stress_config, ExpressionVector())

        result = detector.analyze_expressions(ExpressionVector(angry=0.8, fearful=0.8))

        assert len(result.features) == len(set(result.features))
        assert set(result.features) == {'eyebrow tension', 'jaw clenching', 'eye widening'}

    def test_raw_data_records_every_weighted_label(self, classifier, frame_source, stress_config):
        detector = calibrated(classifier, frame_source, stress_config, ExpressionVector())

        result = detector.analyze_expressions(ExpressionVector(angry=0.1))

        assert set(result.raw_data['deviations']) == {'angry', 'fearful', 'sad', 'disgusted', 'surprised'}
        assert result.raw_data['current']['angry'] == pytest.approx(0.1)
        assert 'rawData' not in result.to_dict()
        assert 'rawData' in result.to_dict(include_raw=True)

    def test_no_baseline_gives_zero_result(self, classifier, stress_config):
        detector = StressDetector(classifier, stress_config)

        assert detector.analyze_expressions(ExpressionVector(angry=1.0)) == StressDetectionResult()


class TestSmoothing:
    """Majority-vote smoothing over the detection history."""

    def test_majority_of_window(self, classifier, frame_source, stress_config, waiter):
        detector = calibrated(classifier, frame_source, stress_config, ExpressionVector())
        vectors = [ExpressionVector(angry=value) for value in (0.9, 0.8, 0.3, 0.7, 0.4)]

        run_detection(detector, classifier, waiter, vectors, expected_count=5)
        smoothed = detector.get_current_stress_level()

        assert smoothed.stress is True
        assert smoothed.confidence == pytest.approx(0.62)
        assert set(smoothed.features) == {'eyebrow tension', 'jaw clenching'}

    def test_window_smaller_than_majority(self, classifier, frame_source, stress_config, waiter):
        detector = calibrated(classifier, frame_source, stress_config, ExpressionVector())
        vectors = [ExpressionVector(angry=0.9), ExpressionVector(angry=0.9)]

        run_detection(detector, classifier, waiter, vectors, expected_count=2)

        # Two stressed results are not a majority of a five-result window
        assert detector.get_current_stress_level().stress is False

    def test_only_last_window_counts(self, classifier, frame_source, stress_config, waiter):
        detector = calibrated(classifier, frame_source, stress_config, ExpressionVector())
        stressed = [ExpressionVector(angry=0.9)] * 5
        calm = [ExpressionVector()] * 5

        run_detection(detector, classifier, waiter, stressed + calm, expected_count=10)
        smoothed = detector.get_current_stress_level()

        assert smoothed.stress is False
        assert smoothed.confidence == 0
        assert smoothed.features == ()

    def test_history_is_bounded(self, classifier, frame_source, stress_config, waiter):
        detector = calibrated(classifier, frame_source, stress_config, ExpressionVector())
        classifier.expressions = ExpressionVector(angry=0.9)

        async def run():
            detector.start_detection()
            await waiter(lambda: classifier.calls > 30)
            detector.stop_detection()

        asyncio.run(run())

        assert detector.get_detection_stats().total_detections == 2 * stress_config.smoothing_window

    def test_detection_stats(self, classifier, frame_source, stress_config, waiter):
        detector = calibrated(classifier, frame_source, stress_config, ExpressionVector())
        vectors = [ExpressionVector(angry=value) for value in (0.9, 0.8, 0.3, 0.7, 0.4)]

        run_detection(detector, classifier, waiter, vectors, expected_count=5)
        stats = detector.get_detection_stats()

        assert stats.total_detections == 5
        assert stats.stress_detections == 3
        assert stats.average_confidence == pytest.approx(0.62)
        assert stats.baseline_age >= 0
        assert stats.to_dict()['totalDetections'] == 5


class TestDefaults:
    """Fresh and reset detectors."""

    def test_empty_history_defaults(self, classifier, stress_config):
        detector = StressDetector(classifier, stress_config)

        assert detector.get_current_stress_level() == StressDetectionResult(stress=False, confidence=0, features=())
        assert detector.get_detection_stats() == DetectionStats()
        assert detector.get_calibration_progress() == 0

    def test_reset_completeness(self, classifier, frame_source, stress_config):
        detector = calibrated(classifier, frame_source, stress_config, ExpressionVector())
        assert detector.is_baseline_ready()
        assert detector.get_calibration_progress() == 1

        detector.reset()

        assert detector.is_baseline_ready() is False
        assert detector.is_detection_active() is False
        assert detector.is_calibration_active() is False
        assert detector.get_calibration_progress() == 0
        assert detector.get_detection_stats() == DetectionStats()

    def test_reset_stops_detection(self, classifier, frame_source, stress_config):
        detector = calibrated(classifier, frame_source, stress_config, ExpressionVector())

        async def run():
            assert detector.start_detection()
            detector.reset()
            await asyncio.sleep(0.05)

        asyncio.run(run())

        assert detector.is_detection_active() is False
        assert detector.get_detection_stats().total_detections == 0


class TestCalibration:
    """Calibration lifecycle."""

    def test_initialize_failure(self, classifier, frame_source, stress_config):
        classifier.fail_load = True
        detector = StressDetector(classifier, stress_config)

        assert asyncio.run(detector.initialize(frame_source)) is False
        assert detector.is_initialized is False

    def test_initialize_is_idempotent(self, classifier, frame_source, stress_config):
        detector = StressDetector(classifier, stress_config)

        async def run():
            assert await detector.initialize(frame_source)
            assert await detector.initialize(frame_source)

        asyncio.run(run())
        assert classifier.load_count == 1

    def test_calibration_requires_initialize(self, classifier, stress_config):
        detector = StressDetector(classifier, stress_config)

        assert asyncio.run(detector.start_calibration()) is False

    def test_calibration_builds_baseline_mean(self, classifier, frame_source, stress_config):
        detector = calibrated(classifier, frame_source, stress_config, ExpressionVector(neutral=0.8, sad=0.2))

        baseline = detector.baseline
        assert baseline.sample_count >= 1
        assert baseline.average_expressions.neutral == pytest.approx(0.8)
        assert baseline.average_expressions.sad == pytest.approx(0.2)

    def test_mutual_exclusion(self, classifier, frame_source, stress_config):
        detector = StressDetector(classifier, stress_config)

        async def run():
            await detector.initialize(frame_source)
            first = asyncio.create_task(detector.start_calibration())
            await asyncio.sleep(0)
            assert detector.is_calibration_active()
            second = await detector.start_calibration()
            return await first, second

        first, second = asyncio.run(run())

        assert first is True
        assert second is False

    def test_sequential_calibration_never_overlaps(self, classifier, frame_source, stress_config):
        classifier.delay = 0.02
        detector = StressDetector(classifier, stress_config)

        async def run():
            await detector.initialize(frame_source)
            return await detector.start_calibration()

        assert asyncio.run(run()) is True
        assert classifier.max_concurrent == 1

    def test_no_face_means_no_baseline(self, classifier, frame_source, stress_config):
        classifier.expressions = None
        detector = StressDetector(classifier, stress_config)

        async def run():
            await detector.initialize(frame_source)
            return await detector.start_calibration()

        assert asyncio.run(run()) is False
        assert detector.is_baseline_ready() is False
        assert detector.is_calibration_active() is False
        assert detector.get_calibration_progress() == 0

    def test_classifier_errors_are_skipped(self, classifier, frame_source, stress_config):
        classifier.fail_detect = True
        detector = StressDetector(classifier, stress_config)

        async def run():
            await detector.initialize(frame_source)
            return await detector.start_calibration()

        assert asyncio.run(run()) is False
        assert classifier.calls >= 1

    def test_stop_calibration(self, classifier, frame_source, stress_config):
        stress_config.calibration_duration = 1.0
        detector = StressDetector(classifier, stress_config)

        async def run():
            await detector.initialize(frame_source)
            task = asyncio.create_task(detector.start_calibration())
            await asyncio.sleep(0.05)
            progress = detector.get_calibration_progress()
            detector.stop_calibration()
            return progress, await task

        progress, result = asyncio.run(run())

        assert 0 < progress < 1
        assert result is False
        assert detector.is_baseline_ready() is False

    def test_recalibration_after_completion(self, classifier, frame_source, stress_config):
        detector = calibrated(classifier, frame_source, stress_config, ExpressionVector(neutral=1.0))
        classifier.expressions = ExpressionVector(happy=1.0)

        assert asyncio.run(detector.start_calibration()) is True
        assert detector.baseline.average_expressions.happy == pytest.approx(1.0)


class TestDetectionLoop:
    """The periodic detection loop."""

    def test_detection_requires_baseline(self, classifier, frame_source, stress_config):
        detector = StressDetector(classifier, stress_config)

        async def run():
            await detector.initialize(frame_source)
            return detector.start_detection()

        assert asyncio.run(run()) is False
        assert detector.is_detection_active() is False

    def test_detection_cannot_start_twice(self, classifier, frame_source, stress_config):
        detector = calibrated(classifier, frame_source, stress_config, ExpressionVector())

        async def run():
            first = detector.start_detection()
            second = detector.start_detection()
            detector.stop_detection()
            return first, second

        assert asyncio.run(run()) == (True, False)

    def test_overlapping_ticks_are_skipped(self, classifier, frame_source, stress_config):
        detector = calibrated(classifier, frame_source, stress_config, ExpressionVector())
        classifier.delay = 0.05
        classifier.max_concurrent = 0

        async def run():
            detector.start_detection()
            await asyncio.sleep(0.3)
            detector.stop_detection()
            await asyncio.sleep(0.06)

        asyncio.run(run())

        assert classifier.max_concurrent == 1
        assert detector.get_detection_stats().total_detections >= 2

    def test_no_mutation_after_stop(self, classifier, frame_source, stress_config):
        detector = calibrated(classifier, frame_source, stress_config, ExpressionVector())
        classifier.delay = 0.1
        classifier.expressions = ExpressionVector(angry=0.9)

        async def run():
            detector.start_detection()
            await asyncio.sleep(0.03)
            assert classifier.active_calls == 1
            detector.stop_detection()
            await asyncio.sleep(0.15)

        asyncio.run(run())

        assert detector.get_detection_stats().total_detections == 0

    def test_frame_failures_are_absorbed(self, classifier, frame_source, stress_config):
        detector = calibrated(classifier, frame_source, stress_config, ExpressionVector())
        classifier.fail_detect = True

        async def run():
            detector.start_detection()
            await asyncio.sleep(0.05)
            active = detector.is_detection_active()
            detector.stop_detection()
            return active

        assert asyncio.run(run()) is True
        assert detector.get_detection_stats().total_detections == 0
