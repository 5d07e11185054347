from titanscan.core.sse import iter_data_payloads, parse_data_line


def test_only_data_lines_are_yielded():
    lines = [
        ": comment",
        "",
        "event: update",
        'data: {"a": 1}',
        "id: 3",
        'data:{"b": 2}\r',
        b'data: {"c": 3}',
        "data:   ",
        None,
    ]
    assert list(iter_data_payloads(lines)) == ['{"a": 1}', '{"b": 2}', '{"c": 3}']


def test_empty_stream_yields_nothing():
    assert list(iter_data_payloads([])) == []


def test_non_data_lines_parse_to_none():
    assert parse_data_line(": keep-alive") is None
    assert parse_data_line("") is None
    assert parse_data_line("event: done") is None
    assert parse_data_line(b"data: {}\r\n") == "{}"
