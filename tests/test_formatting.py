from datetime import datetime, timedelta, timezone

from tokctl.formatting import fmt_cost, fmt_num, fmt_tokens_short, relative_time

NOW = datetime(2026, 4, 22, 16, 30, 0, tzinfo=timezone.utc)


def test_minutes():
    assert relative_time(NOW - timedelta(minutes=3), NOW) == "3m ago"


def test_hours():
    assert relative_time(NOW - timedelta(hours=2), NOW) == "2h ago"


def test_days():
    assert relative_time(NOW - timedelta(days=3), NOW) == "3d ago"


def test_just_now():
    assert relative_time(NOW - timedelta(seconds=10), NOW) == "just now"


def test_long_ago_date():
    assert relative_time(NOW - timedelta(days=40), NOW).startswith("2026")


def test_future_shows_date():
    # Noon UTC lands on one of these two calendar days in every local zone.
    future = datetime(2026, 5, 22, 12, 0, 0, tzinfo=timezone.utc)
    assert relative_time(future, NOW) in {"2026-05-22", "2026-05-23"}


def test_short_tokens():
    assert fmt_tokens_short(340) == "340"
    assert fmt_tokens_short(12_000) == "12.0K"
    assert fmt_tokens_short(4_200_000) == "4.2M"


def test_fmt_num_adds_thousands_separators():
    assert fmt_num(1_234_567) == "1,234,567"
    assert fmt_num(0) == "0"
    assert fmt_num(999) == "999"


def test_fmt_cost_two_decimals():
    assert fmt_cost(1.23456) == "$1.23"
    assert fmt_cost(0) == "$0.00"