"""Tests for timestamp helpers."""

from __future__ import annotations

from datetime import UTC, date, datetime

from layerstore.core.timestamps import date_string, db_timestamp, utc_now


class TestTimestamps:
    def test_utc_now_is_aware(self) -> None:
        assert utc_now().tzinfo is UTC

    def test_db_timestamp_format(self) -> None:
        assert db_timestamp(datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02 03:04:05"
        assert len(db_timestamp()) == len("2024-01-02 03:04:05")

    def test_date_string(self) -> None:
        assert date_string(datetime(2024, 1, 2, 23, 59)) == "2024-01-02"
        assert date_string(date(2024, 1, 2)) == "2024-01-02"
        assert date_string("2024-01-02 10:00:00") == "2024-01-02 10:00:00"
