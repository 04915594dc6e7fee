"""Unit tests for NaturalTimeParser. The clock is frozen at Monday 10:00 SGT."""
import pytest

from booking.time_parser import NaturalTimeParser
from tests.conftest import at


@pytest.fixture
def parser(config, clock):
    return NaturalTimeParser(config, clock)


class TestSupportedPhrasings:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("tomorrow at 3pm", at(3, 15)),
            ("Tomorrow 3PM please", at(3, 15)),
            ("3pm tomorrow", at(3, 15)),
            ("10:30am tomorrow works", at(3, 10, 30)),
            ("today at 4:15pm", at(2, 16, 15)),
            ("friday at 2pm", at(6, 14)),
            ("How about Wednesday 9am?", at(4, 9)),
            ("4pm", at(2, 16)),
            ("can we do 8pm", at(2, 20)),
        ],
    )
    def test_parses(self, parser, text, expected):
        assert parser.parse(text) == expected

    def test_same_weekday_means_next_week(self, parser):
        assert parser.parse("monday at 9am") == at(9, 9)

    def test_noon_and_midnight(self, parser):
        assert parser.parse("tomorrow at 12pm") == at(3, 12)
        # 12am is midnight, before opening.
        assert parser.parse("tomorrow at 12am") is None

    def test_day_phrase_wins_over_bare_clock(self, parser):
        assert parser.parse("not 9am, tomorrow at 3pm") == at(3, 15)


class TestRejected:
    @pytest.mark.parametrize(
        "text",
        [
            "",
            "hello there",
            "sometime next week",
            "15:00",
            "9am",  # already past today
            "today at 10am",  # exactly now, not strictly future
            "tomorrow at 7am",  # before opening
            "tomorrow at 10pm",  # closing hour is exclusive
            "tomorrow at 11pm",
            "13pm",
            "tomorrow at 3:75pm",
        ],
    )
    def test_returns_none(self, parser, text):
        assert parser.parse(text) is None

    def test_result_is_timezone_aware(self, parser, config):
        result = parser.parse("tomorrow at 3pm")
        assert result.tzinfo is not None
        assert result.utcoffset() == config.tz.utcoffset(result)
