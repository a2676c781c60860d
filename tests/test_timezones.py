"""
Tests for ZIP to timezone resolution
"""
import pytest
from datetime import date, datetime, timezone
from app.utils.timezones import (
    clean_zip,
    get_timezone_from_zip,
    to_utc,
    format_local,
    DEFAULT_TIMEZONE,
)


@pytest.mark.unit
class TestZipLookup:
    """Tests for get_timezone_from_zip"""

    def test_split_state_prefixes(self):
        """Test longest prefix wins inside split-timezone states"""
        assert get_timezone_from_zip('83702') == 'America/Boise'
        assert get_timezone_from_zip('83201') == 'America/Los_Angeles'
        assert get_timezone_from_zip('99501') == 'America/Anchorage'
        assert get_timezone_from_zip('99601') == 'America/Adak'

    def test_el_paso_is_mountain(self):
        assert get_timezone_from_zip('79901') == 'America/Denver'
        assert get_timezone_from_zip('78701') == 'America/Chicago'

    def test_state_fallback(self):
        assert get_timezone_from_zip('96813', state='hi') == 'Pacific/Honolulu'

    def test_numeric_ranges(self):
        assert get_timezone_from_zip('85001') == 'America/Phoenix'
        assert get_timezone_from_zip('10001') == 'America/New_York'

    def test_empty_zip_uses_default(self):
        assert get_timezone_from_zip('') == DEFAULT_TIMEZONE
        assert get_timezone_from_zip(None) == DEFAULT_TIMEZONE

    def test_clean_zip_drops_extension(self):
        assert clean_zip('78701-1234') == '78701'
        assert clean_zip(None) == ''


@pytest.mark.unit
class TestConversion:
    """Tests for local/UTC conversion"""

    def test_to_utc_in_daylight_time(self):
        result = to_utc(date(2026, 6, 1), '08:00', 'America/Chicago')
        assert result == datetime(2026, 6, 1, 13, 0, tzinfo=timezone.utc)

    def test_to_utc_without_time_is_midnight(self):
        result = to_utc(date(2026, 1, 15), None, 'America/New_York')
        assert result == datetime(2026, 1, 15, 5, 0, tzinfo=timezone.utc)

    def test_unknown_timezone_falls_back(self):
        result = to_utc(date(2026, 1, 15), '00:00', 'Mars/Olympus_Mons')
        assert result.hour == 5

    def test_format_local_naive_is_utc(self):
        text = format_local(datetime(2026, 6, 1, 13, 0), 'America/Chicago', fmt='%H:%M')
        assert text == '08:00'
