from __future__ import annotations

from mcp_servers.overty.events import EventLog, normalize_event, remote_arg_to_text, summarize_events


def test_remote_arg_rendering() -> None:
    assert remote_arg_to_text({"type": "string", "value": "hi"}) == "hi"
    assert remote_arg_to_text({"type": "object", "value": {"a": 1}}) == '{"a": 1}'
    assert remote_arg_to_text({"type": "function", "description": "function f() {}"}) == "function f() {}"
    assert remote_arg_to_text({"type": "symbol"}) == "[symbol]"
    assert remote_arg_to_text({}) == "[arg]"


def test_console_event_keeps_stack_top() -> None:
    event = normalize_event(
        "Runtime.consoleAPICalled",
        {
            "type": "error",
            "args": [{"value": "bad"}],
            "stackTrace": {"callFrames": [{"url": "app.js", "lineNumber": 4, "columnNumber": 2, "functionName": ""}]},
        },
    )
    assert event == {
        "type": "console",
        "level": "error",
        "text": "bad",
        "location": {"url": "app.js", "lineNumber": 4, "columnNumber": 2, "functionName": None},
    }


def test_exception_without_description_uses_text() -> None:
    event = normalize_event("Runtime.exceptionThrown", {"exceptionDetails": {"text": "Uncaught", "lineNumber": 1}})
    assert event is not None
    assert event["text"] == "Uncaught"
    assert event["location"]["lineNumber"] == 1


def test_uncaptured_events() -> None:
    assert normalize_event("Page.loadEventFired", {}) is None
    assert normalize_event("Log.entryAdded", {"entry": "nope"}) is None


def test_ring_buffer_evicts_oldest_and_keeps_seq() -> None:
    log = EventLog(max_events=3)
    for i in range(5):
        log.push({"type": "console", "level": "log", "text": str(i)})

    events = log.query()
    assert [e["seq"] for e in events] == [3, 4, 5]
    assert log.last_seq == 5
    assert len(log) == 3


def test_query_filters_and_limit() -> None:
    log = EventLog()
    for kind in ("console", "log", "console", "exception"):
        log.push({"type": kind, "level": "info", "text": kind})

    assert [e["seq"] for e in log.query(types=["console"])] == [1, 3]
    assert [e["seq"] for e in log.query(since_seq=2)] == [3, 4]
    assert [e["seq"] for e in log.query(limit=1)] == [4]


def test_clear_keeps_sequence_increasing() -> None:
    log = EventLog()
    first = log.push({"type": "log", "level": "info", "text": "a"})
    drained = log.query(clear=True)

    assert len(drained) == 1
    assert len(log) == 0
    second = log.push({"type": "log", "level": "info", "text": "b"})
    assert second["seq"] > first["seq"]
    assert [e["seq"] for e in log.query(since_seq=first["seq"])] == [second["seq"]]

    log.clear()
    assert log.push({"type": "log", "level": "info", "text": "c"})["seq"] == second["seq"] + 1


def test_summary_counts_levels_and_collects_errors() -> None:
    summary = summarize_events(
        [
            {"type": "console", "level": "error", "text": "e1", "seq": 1},
            {"type": "console", "level": "warn", "text": "w", "seq": 2},
            {"type": "console", "level": "log", "text": "l", "seq": 3},
            {"type": "log", "level": "warning", "text": "lw", "seq": 4},
            {"type": "exception", "level": "error", "text": "x", "seq": 5},
            {"type": "other"},
        ]
    )
    assert summary["console"] == {"total": 3, "error": 1, "warning": 1, "info": 1}
    assert summary["log"] == {"total": 1, "error": 0, "warning": 1, "info": 0}
    assert summary["exception"] == {"total": 1}
    assert [e["seq"] for e in summary["errors"]] == [1, 5]


def test_summary_caps_error_samples() -> None:
    events = [{"type": "exception", "text": str(i), "seq": i} for i in range(20)]
    assert len(summarize_events(events, limit_errors=3)["errors"]) == 3
