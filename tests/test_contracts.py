"""Tests for src.contracts — events, rules, operators, notifications."""

from __future__ import annotations

import dataclasses
from datetime import UTC, datetime, timedelta

import pytest

from src.contracts import (
    AccessEvent,
    AlertRule,
    AlertState,
    AlertStatus,
    MatchMode,
    Notification,
    Operator,
)
from src.contracts.notification import NOTIFICATION_CSV_COLUMNS
from tests.conftest import BASE, at, make_event, make_notification, make_rule

# ═══════════════════════════════════════════════════════════════════════════
#  AccessEvent
# ═══════════════════════════════════════════════════════════════════════════


class TestAccessEvent:
    def test_is_immutable(self):
        ev = make_event()
        with pytest.raises(dataclasses.FrozenInstanceError):
            ev.path = "/other"

    def test_metadata_is_read_only(self):
        ev = make_event(metadata={"status": 200})
        with pytest.raises(TypeError):
            ev.metadata["status"] = 500

    def test_metadata_copied_from_input(self):
        meta = {"ip": "10.0.0.1"}
        ev = make_event(metadata=meta)
        meta["ip"] = "changed"
        assert ev.metadata["ip"] == "10.0.0.1"

    def test_naive_timestamp_treated_as_utc(self):
        ev = AccessEvent(timestamp=datetime(2026, 2, 26, 10, 0), path="/x")
        assert ev.timestamp == BASE

    def test_from_dict_iso_z(self):
        ev = AccessEvent.from_dict({"timestamp": "2026-02-26T10:00:00Z", "path": "/api/getresume"})
        assert ev.timestamp == BASE
        assert ev.path == "/api/getresume"

    def test_from_dict_offset_normalised_to_utc(self):
        ev = AccessEvent.from_dict({"timestamp": "2026-02-26T12:00:00+02:00", "path": "/"})
        assert ev.timestamp == BASE
        assert ev.timestamp.tzinfo == UTC

    def test_from_dict_folds_extra_keys_into_metadata(self):
        ev = AccessEvent.from_dict(
            {"timestamp": "2026-02-26T10:00:00Z", "path": "/", "status": 200,
             "metadata": {"ip": "1.2.3.4"}}
        )
        assert ev.metadata == {"ip": "1.2.3.4", "status": 200}

    def test_from_dict_missing_timestamp(self):
        with pytest.raises(KeyError):
            AccessEvent.from_dict({"path": "/"})

    def test_from_dict_empty_timestamp(self):
        with pytest.raises(KeyError):
            AccessEvent.from_dict({"timestamp": "", "path": "/"})

    def test_from_dict_missing_path(self):
        with pytest.raises(KeyError):
            AccessEvent.from_dict({"timestamp": "2026-02-26T10:00:00Z"})

    def test_from_dict_bad_timestamp(self):
        with pytest.raises(ValueError):
            AccessEvent.from_dict({"timestamp": "yesterday", "path": "/"})

    def test_to_dict_round_trip_shape(self):
        d = make_event(metadata={"ip": "1.2.3.4"}).to_dict()
        assert d == {
            "timestamp": "2026-02-26T10:00:00Z",
            "path": "/api/getresume",
            "metadata": {"ip": "1.2.3.4"},
        }

    def test_to_json_compact(self):
        assert " " not in make_event().to_json()


# ═══════════════════════════════════════════════════════════════════════════
#  Operator
# ═══════════════════════════════════════════════════════════════════════════


class TestOperator:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("GreaterThan", Operator.GREATER_THAN),
            ("greaterthan", Operator.GREATER_THAN),
            (">", Operator.GREATER_THAN),
            (">=", Operator.GREATER_THAN_OR_EQUAL),
            ("LessThan", Operator.LESS_THAN),
            ("<=", Operator.LESS_THAN_OR_EQUAL),
            ("Equal", Operator.EQUAL),
            ("==", Operator.EQUAL),
        ],
    )
    def test_parse(self, raw, expected):
        assert Operator.parse(raw) is expected

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            Operator.parse("Between")

    @pytest.mark.parametrize(
        "op, observed, threshold, expected",
        [
            (Operator.GREATER_THAN, 1, 0, True),
            (Operator.GREATER_THAN, 0, 0, False),
            (Operator.GREATER_THAN_OR_EQUAL, 0, 0, True),
            (Operator.LESS_THAN, 0, 1, True),
            (Operator.LESS_THAN, 1, 1, False),
            (Operator.LESS_THAN_OR_EQUAL, 1, 1, True),
            (Operator.EQUAL, 2, 2, True),
            (Operator.EQUAL, 3, 2, False),
        ],
    )
    def test_holds(self, op, observed, threshold, expected):
        assert op.holds(observed, threshold) is expected


# ═══════════════════════════════════════════════════════════════════════════
#  AlertRule
# ═══════════════════════════════════════════════════════════════════════════


class TestAlertRule:
    def test_defaults_mirror_reference_alert(self):
        r = AlertRule(name="r", pattern="/api/getresume")
        assert r.threshold == 0
        assert r.operator is Operator.GREATER_THAN
        assert r.window == timedelta(minutes=5)
        assert r.frequency == timedelta(minutes=1)
        assert r.min_failing_periods == 1
        assert r.auto_mitigate is True

    def test_contains_is_case_insensitive(self):
        r = make_rule(pattern="/api/getresume")
        assert r.matches("/API/GetResume?code=abc")
        assert not r.matches("/api/health")

    def test_exact(self):
        r = make_rule(pattern="/api/getresume", match_mode=MatchMode.EXACT)
        assert r.matches("/api/getresume")
        assert not r.matches("/api/getresume/")

    def test_prefix(self):
        r = make_rule(pattern="/api/", match_mode=MatchMode.PREFIX)
        assert r.matches("/api/getresume")
        assert not r.matches("/static/api/")

    def test_regex(self):
        r = make_rule(pattern=r"^/api/get(resume|cv)$", match_mode=MatchMode.REGEX)
        assert r.matches("/api/getcv")
        assert not r.matches("/api/getphoto")

    def test_bad_regex_rejected(self):
        with pytest.raises(ValueError, match="bad regex"):
            make_rule(pattern="([", match_mode=MatchMode.REGEX)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"name": ""},
            {"pattern": ""},
            {"window_min": 0},
            {"frequency_min": -1},
            {"window_min": 1, "frequency_min": 5},
            {"min_failing_periods": 0},
            {"cooldown_sec": -5},
        ],
    )
    def test_invalid_config_rejected(self, kwargs):
        with pytest.raises(ValueError):
            make_rule(**kwargs)

    def test_predicate_uses_operator(self):
        r = make_rule(threshold=2, operator=Operator.GREATER_THAN_OR_EQUAL)
        assert r.predicate(2)
        assert not r.predicate(1)


# ═══════════════════════════════════════════════════════════════════════════
#  AlertState / Notification
# ═══════════════════════════════════════════════════════════════════════════


class TestAlertState:
    def test_initial_state_is_normal(self):
        st = AlertState(rule_name="r")
        assert st.status is AlertStatus.NORMAL
        assert st.last_fired is None
        assert st.consecutive_periods == 0

    def test_status_follows_firing_flag(self):
        st = AlertState(rule_name="r", firing=True)
        assert st.status is AlertStatus.FIRING


class TestNotification:
    def test_is_immutable(self):
        n = make_notification()
        with pytest.raises(dataclasses.FrozenInstanceError):
            n.observed_count = 5

    def test_to_dict(self):
        d = make_notification().to_dict()
        assert d["rule"] == "resume-accessed"
        assert d["fired_at"] == "2026-02-26T10:05:00Z"
        assert d["observed_count"] == 3
        assert d["window_start"] == "2026-02-26T10:00:00Z"

    def test_to_dict_without_window(self):
        d = make_notification(window_start=None, window_end=None).to_dict()
        assert d["window_start"] == ""
        assert d["window_end"] == ""

    def test_csv_header_matches_columns(self):
        assert Notification.csv_header().split(",") == NOTIFICATION_CSV_COLUMNS

    def test_csv_row_quotes_commas(self):
        row = make_notification(description="a, b").to_csv_row()
        assert '"a, b"' in row

    def test_subject_and_body(self):
        n = make_notification(fired_at=at(5))
        assert "resume-accessed" in n.subject
        assert "3 hit" in n.subject
        body = n.body()
        assert "Observed count: 3" in body
        assert "2026-02-26T10:00:00Z .. 2026-02-26T10:05:00Z" in body
