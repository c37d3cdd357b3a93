from datetime import datetime, timedelta, timezone
import random
import re

import pytest

from smarttryout.services.exam_session import extract_final_score, seconds_remaining
from smarttryout.utils import (
    format_clock,
    format_score,
    generate_access_code,
    normalize_access_code,
    parse_timestamp,
)

START = datetime(2024, 3, 18, 2, 0, 0, tzinfo=timezone.utc)
ACCESS_CODE = re.compile(r'^[A-Z0-9]{3}[A-Z0-9]{3}\d{8}\d{3}$')


def test_access_code_shape():
    now = datetime(2024, 3, 18, 9, 30, 15)
    code = generate_access_code('SMA Negeri 1', 'Matematika Wajib', now=now, rng=random.Random(7))

    assert ACCESS_CODE.match(code)
    assert code.startswith('SMAMAT18093015')


def test_access_code_defaults_and_symbols():
    now = datetime(2024, 1, 5, 0, 0, 0)
    assert generate_access_code(None, None, now=now, rng=random.Random(1))[:6] == 'SCHEXA'
    assert generate_access_code('!!', '#?', now=now, rng=random.Random(1))[:6] == 'XXXXXX'
    assert generate_access_code('VIRTUAL', 'ab', now=now, rng=random.Random(1))[:5] == 'VIRAB'


def test_access_code_suffix_is_zero_padded():
    class LowRandom:
        def randrange(self, stop):
            return 7

    code = generate_access_code('SMA', 'Fisika', now=datetime(2024, 1, 1), rng=LowRandom())
    assert code.endswith('007')


@pytest.mark.parametrize('raw', [' math-01 ', 'MATH-01', 'Math-01\n'])
def test_normalize_access_code(raw):
    assert normalize_access_code(raw) == 'MATH-01'


def test_normalize_access_code_empty():
    assert normalize_access_code(None) == ''
    assert normalize_access_code('   ') == ''


@pytest.mark.parametrize('seconds, expected', [
    (3600, '60:00'),
    (3599, '59:59'),
    (61, '01:01'),
    (0, '00:00'),
    (-5, '00:00'),
    (6000, '100:00'),
])
def test_format_clock(seconds, expected):
    assert format_clock(seconds) == expected


def test_format_score():
    assert format_score(None) == 'Not released'
    assert format_score(66.666) == '66.7'
    assert format_score(100) == '100.0'


def test_parse_timestamp_accepts_z_suffix_and_naive():
    assert parse_timestamp('2024-03-18T02:00:00Z') == START
    assert parse_timestamp('2024-03-18T02:00:00') == START
    assert parse_timestamp(None) is None


class TestSecondsRemaining:

    def test_full_duration_at_start(self):
        assert seconds_remaining(START, 60, START) == 3600

    def test_iso_start_time(self):
        assert seconds_remaining(START.isoformat(), 60, START + timedelta(seconds=90)) == 3510

    def test_exact_deadline_is_zero(self):
        assert seconds_remaining(START, 60, START + timedelta(minutes=60)) == 0

    def test_past_deadline_never_negative(self):
        assert seconds_remaining(START, 60, START + timedelta(hours=5)) == 0

    def test_fraction_of_a_second_left_rounds_down(self):
        now = START + timedelta(minutes=59, seconds=59, milliseconds=500)
        assert seconds_remaining(START, 60, now) == 0


@pytest.mark.parametrize('data, expected', [
    ([{'final_score': 80}], 80.0),
    ({'final_score': 75.5}, 75.5),
    (42, 42.0),
    ([], 0.0),
    (None, 0.0),
])
def test_extract_final_score(data, expected):
    assert extract_final_score(data) == expected
