import logging
import queue

import pytest

from motion_classifier.errors import ParseError
from motion_classifier.ingest import (
    RawSample,
    iter_samples,
    make_sample,
    parse_sample_line,
    put_latest,
    try_parse_sample,
)


def test_parse_valid_line():
    assert parse_sample_line(" 1.5, -2, 3e-1\r\n") == RawSample(1.5, -2.0, 0.3)
    assert parse_sample_line(b"0,0,9.81\n") == RawSample(0.0, 0.0, 9.81)


@pytest.mark.parametrize("line", ["abc,1,2", "1,2", "1,2,3,4", "", "1,,3", "nan,1,2", "1,inf,2"])
def test_parse_rejects_malformed_lines(line):
    with pytest.raises(ParseError):
        parse_sample_line(line)


def test_try_parse_logs_and_returns_none(caplog):
    with caplog.at_level(logging.WARNING, logger="motion_classifier.ingest"):
        assert try_parse_sample("abc,1,2") is None
    assert "Dropping sample" in caplog.text


def test_make_sample_rejects_non_finite():
    with pytest.raises(ParseError):
        make_sample(float("nan"), 0, 0)


def test_iter_samples_skips_blank_and_bad_lines():
    lines = ["1,2,3", "", "garbage", "4,5,6\n"]
    assert list(iter_samples(lines)) == [RawSample(1.0, 2.0, 3.0), RawSample(4.0, 5.0, 6.0)]


def test_put_latest_drops_oldest_when_full():
    q = queue.Queue(maxsize=2)
    for i in range(3):
        put_latest(q, RawSample(float(i), 0.0, 0.0))

    assert [q.get_nowait().x for _ in range(2)] == [1.0, 2.0]
