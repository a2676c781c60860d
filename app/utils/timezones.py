"""
ZIP code to IANA timezone lookup, including split-timezone states.
"""

import re
from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = 'America/New_York'

# Prefix overrides for split-timezone states. Lookup takes the longest
# matching prefix, so '832' (Idaho panhandle) wins over '83'.
ZIP_PREFIX_TIMEZONES = {
    # Idaho
    '83': 'America/Boise',
    '832': 'America/Los_Angeles',
    # Oregon
    '97': 'America/Los_Angeles',
    '979': 'America/Boise',
    # Nevada
    '89': 'America/Los_Angeles',
    '893': 'America/Boise',
    # Kansas
    '66': 'America/Chicago',
    '678': 'America/Denver',
    '679': 'America/Denver',
    # Nebraska
    '68': 'America/Chicago',
    '691': 'America/Denver',
    # North Dakota
    '58': 'America/Chicago',
    '586': 'America/Denver',
    # South Dakota
    '57': 'America/Chicago',
    '577': 'America/Denver',
    # Texas (El Paso is Mountain)
    '75': 'America/Chicago',
    '76': 'America/Chicago',
    '77': 'America/Chicago',
    '78': 'America/Chicago',
    '79': 'America/Denver',
    # Florida panhandle
    '32': 'America/New_York',
    '325': 'America/Chicago',
    # Indiana
    '46': 'America/New_York',
    '47': 'America/Chicago',
    # Kentucky
    '40': 'America/New_York',
    '41': 'America/New_York',
    '42': 'America/Chicago',
    # Michigan upper peninsula
    '48': 'America/New_York',
    '49': 'America/New_York',
    '498': 'America/Chicago',
    # Tennessee
    '37': 'America/New_York',
    '38': 'America/Chicago',
    # Alaska / Aleutians
    '99': 'America/Anchorage',
    '996': 'America/Adak',
}

STATE_TIMEZONES = {
    # Eastern
    'ME': 'America/New_York', 'NH': 'America/New_York', 'VT': 'America/New_York',
    'MA': 'America/New_York', 'RI': 'America/New_York', 'CT': 'America/New_York',
    'NY': 'America/New_York', 'NJ': 'America/New_York', 'PA': 'America/New_York',
    'DE': 'America/New_York', 'MD': 'America/New_York', 'DC': 'America/New_York',
    'VA': 'America/New_York', 'WV': 'America/New_York', 'NC': 'America/New_York',
    'SC': 'America/New_York', 'GA': 'America/New_York', 'OH': 'America/New_York',
    # Central
    'WI': 'America/Chicago', 'IL': 'America/Chicago', 'MN': 'America/Chicago',
    'IA': 'America/Chicago', 'MO': 'America/Chicago', 'AR': 'America/Chicago',
    'LA': 'America/Chicago', 'MS': 'America/Chicago', 'AL': 'America/Chicago',
    'OK': 'America/Chicago',
    # Mountain
    'MT': 'America/Denver', 'WY': 'America/Denver', 'CO': 'America/Denver',
    'NM': 'America/Denver', 'UT': 'America/Denver', 'AZ': 'America/Phoenix',
    # Pacific
    'WA': 'America/Los_Angeles', 'CA': 'America/Los_Angeles',
    # Hawaii
    'HI': 'Pacific/Honolulu',
}

# (low, high, timezone), inclusive on both ends
ZIP_RANGES = [
    (10001, 34999, 'America/New_York'),
    (35001, 36999, 'America/Chicago'),
    (38001, 39999, 'America/Chicago'),
    (40001, 49999, 'America/New_York'),
    (50001, 58999, 'America/Chicago'),
    (59001, 59999, 'America/Denver'),
    (60001, 79999, 'America/Chicago'),
    (80001, 84999, 'America/Denver'),
    (85001, 86999, 'America/Phoenix'),
    (87001, 88999, 'America/Denver'),
    (89001, 99999, 'America/Los_Angeles'),
]


def clean_zip(zip_code: Optional[str]) -> str:
    """Digits only, first five (drops a +4 extension)."""
    return re.sub(r'[^0-9]', '', zip_code or '')[:5]


def get_timezone_from_zip(zip_code: Optional[str], state: Optional[str] = None) -> str:
    """
    Resolve a ZIP (and optional state) to an IANA timezone.

    Order: longest split-state prefix, then state table, then numeric ZIP
    ranges, then America/New_York.
    """
    zip5 = clean_zip(zip_code)
    if not zip5:
        return DEFAULT_TIMEZONE

    for length in range(len(zip5), 0, -1):
        match = ZIP_PREFIX_TIMEZONES.get(zip5[:length])
        if match:
            return match

    if state:
        return STATE_TIMEZONES.get(state.strip().upper(), DEFAULT_TIMEZONE)

    zip_num = int(zip5)
    for low, high, tz_name in ZIP_RANGES:
        if low <= zip_num <= high:
            return tz_name

    return DEFAULT_TIMEZONE


def to_utc(scheduled_date: date, scheduled_time: Optional[str], tz_name: Optional[str]) -> datetime:
    """
    Convert a local job date and HH:MM time in the job's timezone to an aware
    UTC datetime. A missing time means start of day.
    """
    try:
        zone = ZoneInfo(tz_name or DEFAULT_TIMEZONE)
    except ZoneInfoNotFoundError:
        zone = ZoneInfo(DEFAULT_TIMEZONE)

    local_time = time(0, 0)
    if scheduled_time:
        hours, _, minutes = scheduled_time.partition(':')
        local_time = time(int(hours), int(minutes or 0))

    local = datetime.combine(scheduled_date, local_time, tzinfo=zone)
    return local.astimezone(timezone.utc)


def format_local(dt_utc: datetime, tz_name: Optional[str], fmt: str = '%Y-%m-%d %I:%M %p %Z') -> str:
    """Render a UTC datetime in the given timezone."""
    if dt_utc.tzinfo is None:
        dt_utc = dt_utc.replace(tzinfo=timezone.utc)
    return dt_utc.astimezone(ZoneInfo(tz_name or DEFAULT_TIMEZONE)).strftime(fmt)
