"""Tests for the 10-day weather history builder."""

from datetime import date

import pytest

from ci_weather.dates import midnight
from ci_weather.models import DayStatus, ParsedLog, SubTestFailure, WeatherDay
from ci_weather.weather import (
    WINDOW_DAYS,
    anchor_day,
    build_weather_history,
    failed_tests_in_weather,
    merge_weather_history,
    select_day_run,
    window_days,
)


def _day(day, status=DayStatus.PASSED, **extra):
    return WeatherDay(date=midnight(day), status=status, **extra)


class TestWindow:

    def test_anchor_today_when_run_completed(self, run_factory, now):
        assert anchor_day([run_factory(days_ago=0)], now) == date(2026, 10, 19)

    def test_anchor_yesterday_without_completed_run(self, run_factory, now):
        running = run_factory(days_ago=0, conclusion=None, status="in_progress")
        assert anchor_day([running, run_factory(days_ago=1)], now) == date(2026, 10, 18)
        assert anchor_day([], now) == date(2026, 10, 18)

    def test_window_oldest_first(self):
        days = window_days(date(2026, 10, 19))
        assert len(days) == WINDOW_DAYS
        assert days[0] == date(2026, 10, 10)
        assert days[-1] == date(2026, 10, 19)


class TestBuildWeatherHistory:

    @pytest.mark.parametrize("run_days", [[], [0], [0, 0, 0, 1, 3, 12, 25]])
    def test_always_ten_days(self, run_factory, fatal_steps, now, run_days):
        runs = [run_factory(job_id=i, days_ago=d) for i, d in enumerate(run_days)]
        history = build_weather_history(runs, fatal_steps, {}, now=now)
        assert len(history) == 10

    def test_dates_midnight_and_ordered(self, run_factory, fatal_steps, now):
        history = build_weather_history([run_factory()], fatal_steps, {}, now=now)
        assert history[-1].date == midnight(date(2026, 10, 19))
        assert all(d.date.hour == 0 for d in history)
        assert [d.date for d in history] == sorted(d.date for d in history)

    def test_gaps_are_none(self, run_factory, fatal_steps, now):
        history = build_weather_history([run_factory(days_ago=0)], fatal_steps, {}, now=now)
        assert history[-1].status is DayStatus.PASSED
        assert all(d.status is DayStatus.NONE for d in history[:-1])

    def test_failed_day_parses_log(self, run_factory, fatal_steps, failing_log, now):
        run = run_factory(job_id=42, conclusion="failure")
        history = build_weather_history([run], fatal_steps, {"42": failing_log}, now=now)
        today = history[-1]

        assert today.status is DayStatus.FAILED
        assert today.job_id == "42"
        assert today.run_id == "420"
        assert today.duration == "12m 5s"
        assert today.failure_details.failures[0].name == "Delete pod"
        assert today.failure_step == "k8s-pod-lifecycle.bats"

    def test_failed_day_without_log_uses_step_name(self, run_factory, fatal_steps, now):
        history = build_weather_history([run_factory(conclusion="failure")], fatal_steps, {}, now=now)
        assert history[-1].failure_details is None
        assert history[-1].failure_step == "Run tests"

    def test_setup_failure_day_is_not_run(self, run_factory, fatal_steps, now):
        run = run_factory(conclusion="failure", failed_step="Build image")
        history = build_weather_history([run], fatal_steps, {}, now=now)
        assert history[-1].status is DayStatus.NOT_RUN

    def test_prefers_run_that_reached_tests(self, run_factory, fatal_steps, now):
        tested = run_factory(job_id=1, days_ago=1, hour=1)
        setup_only = run_factory(
            job_id=2, days_ago=1, hour=5, conclusion="failure",
            steps=[{"name": "Set up job", "conclusion": "failure"}],
        )
        history = build_weather_history([setup_only, tested], fatal_steps, {}, now=now)
        assert history[-1].date == midnight(date(2026, 10, 18))
        assert history[-1].status is DayStatus.PASSED
        assert history[-1].job_id == "1"

    def test_latest_run_of_the_day(self, run_factory, fatal_steps, now):
        first = run_factory(job_id=1, hour=1, conclusion="failure")
        retry = run_factory(job_id=2, hour=3, conclusion="success")
        assert select_day_run([first, retry], fatal_steps).job_id == "2"

    def test_cache_fills_days_without_runs(self, run_factory, fatal_steps, now):
        cached = [_day(date(2026, 10, 12), DayStatus.FAILED, run_id="55", failure_step="x.bats")]
        history = build_weather_history([run_factory()], fatal_steps, {}, cached=cached, now=now)
        day = history[2]
        assert day.date == midnight(date(2026, 10, 12))
        assert day.status is DayStatus.FAILED
        assert day.run_id == "55"
        assert day.failure_step == "x.bats"

    def test_live_run_wins_over_cache(self, run_factory, fatal_steps, now):
        cached = [_day(date(2026, 10, 19), DayStatus.FAILED, run_id="old")]
        history = build_weather_history([run_factory(job_id=7)], fatal_steps, {}, cached=cached, now=now)
        assert history[-1].status is DayStatus.PASSED
        assert history[-1].job_id == "7"

    def test_cached_failure_details_when_log_gone(self, run_factory, fatal_steps, now):
        details = ParsedLog(failures=[SubTestFailure(number=3, name="Attach volume")])
        cached = [_day(date(2026, 10, 19), DayStatus.FAILED, failure_details=details)]
        run = run_factory(conclusion="failure")
        history = build_weather_history([run], fatal_steps, {}, cached=cached, now=now)
        assert history[-1].failure_details.failures[0].name == "Attach volume"

    def test_fresh_parse_wins_over_cached_details(self, run_factory, fatal_steps, failing_log, now):
        details = ParsedLog(failures=[SubTestFailure(number=3, name="Attach volume")])
        cached = [_day(date(2026, 10, 19), DayStatus.FAILED, failure_details=details)]
        run = run_factory(job_id=9, conclusion="failure")
        history = build_weather_history([run], fatal_steps, {"9": failing_log}, cached=cached, now=now)
        assert history[-1].failure_details.failures[0].name == "Delete pod"

    def test_rebuilding_from_own_output_is_stable(self, run_factory, fatal_steps, failing_log, now):
        runs = [
            run_factory(job_id=1, days_ago=0, conclusion="failure"),
            run_factory(job_id=2, days_ago=2),
            run_factory(job_id=3, days_ago=4, conclusion="failure", failed_step="Build image"),
        ]
        logs = {"1": failing_log}
        first = build_weather_history(runs, fatal_steps, logs, now=now)
        second = build_weather_history(runs, fatal_steps, logs, cached=first, now=now)
        assert second == first

    def test_cache_is_not_mutated(self, run_factory, fatal_steps, now):
        cached = [_day(date(2026, 10, 12), DayStatus.PASSED)]
        history = build_weather_history([run_factory()], fatal_steps, {}, cached=cached, now=now)
        history[2].status = DayStatus.FAILED
        assert cached[0].status is DayStatus.PASSED


class TestFailedTestsInWeather:

    def test_counts_days_not_occurrences(self):
        failure = SubTestFailure(number=1, name="Delete pod", file="##[group]k8s-pods.bats")
        details = ParsedLog(failures=[failure, failure])
        history = [
            _day(date(2026, 10, 17), DayStatus.FAILED, failure_details=details),
            _day(date(2026, 10, 18), DayStatus.PASSED),
            _day(date(2026, 10, 19), DayStatus.FAILED, failure_details=details),
        ]
        summary = failed_tests_in_weather(history)

        assert len(summary) == 1
        assert summary[0].count == 2
        assert summary[0].dates == ["2026-10-19", "2026-10-17"]
        assert summary[0].files == ["k8s-pods.bats"]

    def test_sorted_by_count(self):
        a = ParsedLog(failures=[SubTestFailure(number=1, name="a")])
        ab = ParsedLog(failures=[SubTestFailure(number=1, name="a"), SubTestFailure(number=2, name="b")])
        history = [
            _day(date(2026, 10, 18), DayStatus.FAILED, failure_details=ab),
            _day(date(2026, 10, 19), DayStatus.FAILED, failure_details=a),
        ]
        assert [s.name for s in failed_tests_in_weather(history)] == ["a", "b"]


class TestMergeWeatherHistory:

    def test_fills_only_none_days(self):
        new = [
            _day(date(2026, 10, 17), DayStatus.NONE),
            _day(date(2026, 10, 18), DayStatus.FAILED, run_id="new"),
            _day(date(2026, 10, 19), DayStatus.NONE),
        ]
        old = [
            _day(date(2026, 10, 17), DayStatus.PASSED, run_id="old17"),
            _day(date(2026, 10, 18), DayStatus.PASSED, run_id="old18"),
            _day(date(2026, 10, 19), DayStatus.NONE),
        ]
        merged = merge_weather_history(new, old)

        assert merged[0].status is DayStatus.PASSED
        assert merged[0].run_id == "old17"
        assert merged[1].run_id == "new"
        assert merged[2].status is DayStatus.NONE

    @pytest.mark.parametrize("status", [DayStatus.PASSED, DayStatus.FAILED, DayStatus.NOT_RUN])
    def test_never_overwrites_live_days(self, status):
        new = [_day(date(2026, 10, 19), status, run_id="live")]
        old = [_day(date(2026, 10, 19), DayStatus.FAILED, run_id="cached")]
        assert merge_weather_history(new, old)[0].run_id == "live"

    def test_without_old_history(self):
        new = [_day(date(2026, 10, 19), DayStatus.NONE)]
        assert merge_weather_history(new, None) == new
