"""
Tests for the suggestion rule evaluator.

Covers the no-sensor and all-normal fallbacks, staleness pre-emption, the
per-category bands, weather rules and idempotent re-evaluation.
"""

import pytest
from farmadvisor.models import CRITICAL, INFO, SUCCESS, WARNING
from farmadvisor.suggestions import (
    InvalidSnapshot,
    evaluate,
    quick_tips,
    suggested_questions,
    visible,
)


def ids(suggestions):
    return [s.id for s in suggestions]


class TestEvaluate:
    def test_no_sensors(self, make_snapshot, now):
        """An empty sensor list yields exactly one no-sensors suggestion."""
        result = evaluate(make_snapshot([]), now=now)
        assert ids(result) == ["no-sensors"]
        assert result[0].severity == INFO

    def test_no_sensors_ignores_weather(self, make_snapshot, now):
        snapshot = make_snapshot([], weather={"current": {"temperature": 40, "humidity": 10}})
        assert ids(evaluate(snapshot, now=now)) == ["no-sensors"]

    @pytest.mark.parametrize(
        "value, expected_id, severity",
        [
            (5.5, "ph-low-s1", WARNING),
            (7.0, "ph-good-s1", SUCCESS),
            (8.5, "ph-high-s1", WARNING),
        ],
    )
    def test_ph_bands(self, make_snapshot, sensor_record, now, value, expected_id, severity):
        result = evaluate(make_snapshot([sensor_record("s1", "pH", value)]), now=now)
        assert ids(result) == [expected_id]
        assert result[0].severity == severity
        assert result[0].sensor_id == "s1"

    def test_low_moisture_is_one_critical(self, make_snapshot, sensor_record, now):
        result = evaluate(make_snapshot([sensor_record("s2", "soil moisture", 15)]), now=now)
        moisture = [s for s in result if s.id.startswith("moisture-")]
        assert len(moisture) == 1
        assert moisture[0].severity == CRITICAL
        assert moisture[0].id == "moisture-low-s2"

    def test_healthy_moisture_is_silent(self, make_snapshot, sensor_record, now):
        """In-range moisture emits nothing, so the all-normal item appears."""
        result = evaluate(make_snapshot([sensor_record("s2", "soil moisture", 50)]), now=now)
        assert not [s for s in result if s.id.startswith("moisture-")]
        assert ids(result) == ["all-normal"]

    def test_temperature_and_ec(self, make_snapshot, sensor_record, now):
        snapshot = make_snapshot(
            [
                sensor_record("t1", "temperature", 38),
                sensor_record("e1", "EC", 0.4),
                sensor_record("e2", "EC", 3.4),
            ]
        )
        assert ids(evaluate(snapshot, now=now)) == [
            "temperature-high-t1",
            "ec-low-e1",
            "ec-high-e2",
        ]

    def test_stale_reading_preempts_value_rules(self, make_snapshot, sensor_record, now):
        """A reading older than 48h is reported stale and nothing else."""
        snapshot = make_snapshot([sensor_record("s1", "pH", 4.0, hours_ago=49)])
        result = evaluate(snapshot, now=now)
        assert ids(result) == ["stale-s1"]

    def test_stale_window_is_configurable(self, make_snapshot, sensor_record, now):
        from datetime import timedelta

        snapshot = make_snapshot([sensor_record("s1", "pH", 4.0, hours_ago=5)])
        assert ids(evaluate(snapshot, now=now, stale_after=timedelta(hours=4))) == ["stale-s1"]

    def test_missing_value_skips_rule(self, make_snapshot, sensor_record, now):
        snapshot = make_snapshot(
            [sensor_record("s1", "pH", "broken"), sensor_record("s2", "soil moisture", 10)]
        )
        assert ids(evaluate(snapshot, now=now)) == ["moisture-low-s2"]

    def test_sensor_order_is_preserved(self, make_snapshot, sensor_record, now):
        snapshot = make_snapshot(
            [sensor_record("b", "soil moisture", 10), sensor_record("a", "pH", 5)]
        )
        assert ids(evaluate(snapshot, now=now)) == ["moisture-low-b", "ph-low-a"]

    def test_weather_rules(self, make_snapshot, healthy_sensors, now):
        snapshot = make_snapshot(
            healthy_sensors,
            weather={
                "current": {"temperature": 33, "humidity": 40, "windSpeed": 22},
                "forecast": [{"rainProbability": 80}, {"rainProbability": 10}],
            },
        )
        assert ids(evaluate(snapshot, now=now)) == [
            "ph-good-s1",
            "weather-hot-dry",
            "weather-windy",
            "forecast-rain",
        ]

    def test_weather_only_first_forecast_day(self, make_snapshot, healthy_sensors, now):
        snapshot = make_snapshot(
            healthy_sensors,
            weather={"forecast": [{"precipitation_probability": 20}, {"precipitation_probability": 95}]},
        )
        assert "forecast-rain" not in ids(evaluate(snapshot, now=now))

    def test_idempotent(self, make_snapshot, sensor_record, now):
        snapshot = make_snapshot(
            [sensor_record("s1", "pH", 5.5), sensor_record("s2", "soil moisture", 15)]
        )
        assert evaluate(snapshot, now=now) == evaluate(snapshot, now=now)

    def test_accepts_dict(self, now):
        result = evaluate({"farm_id": "f", "farm_name": "F", "sensors": []}, now=now)
        assert ids(result) == ["no-sensors"]

    def test_bad_sensor_next_to_good_one(self, now):
        """A malformed reading only skips its own rules."""
        result = evaluate(
            {
                "farm_id": "f",
                "farm_name": "G",
                "sensors": [
                    {"id": "s1", "name": "pH", "type": "pH", "value": "n/a"},
                    {"id": "s2", "name": "M", "type": "moisture", "value": 15},
                    {"id": "s3", "type": "pH", "value": 7.0},
                ],
                "weather": {"current": {"temperature": 35, "humidity": "dry"}},
            },
            now=now,
        )
        assert ids(result) == ["moisture-low-s2", "ph-good-s3"]

    def test_rejects_garbage(self):
        with pytest.raises(InvalidSnapshot):
            evaluate("not a snapshot")
        with pytest.raises(InvalidSnapshot):
            evaluate({"sensors": "nope"})


class TestVisible:
    def test_default_hides_info_and_success(self, make_snapshot, sensor_record, now):
        result = evaluate(
            make_snapshot(
                [
                    sensor_record("s1", "pH", 7.0),
                    sensor_record("s2", "soil moisture", 15),
                    sensor_record("e1", "EC", 0.4),
                ]
            ),
            now=now,
        )
        assert ids(visible(result)) == ["moisture-low-s2"]
        assert ids(visible(result, include_all=True)) == ids(result)


class TestQuickTips:
    def test_without_farm(self):
        tips = quick_tips(None)
        assert len(tips) == 4
        assert "farm profile" in tips[0]

    def test_problem_readings_first(self, make_snapshot, sensor_record):
        tips = quick_tips(make_snapshot([sensor_record("s2", "soil moisture", 12)]))
        assert tips == ["Your soil moisture is low (12%) - consider watering"]

    def test_general_tips_when_healthy(self, snapshot):
        assert len(quick_tips(snapshot)) == 4


class TestSuggestedQuestions:
    def test_defaults(self):
        assert len(suggested_questions(None)) == 6

    def test_biased_to_problems(self, make_snapshot, sensor_record):
        questions = suggested_questions(
            make_snapshot([sensor_record("s1", "pH", 5.0), sensor_record("s2", "soil moisture", 10)])
        )
        assert questions[0] == "How can I adjust soil pH levels?"
        assert "How can I improve soil moisture levels?" in questions
        assert len(questions) == len(set(questions))
