"""Tests for reading the session header from a transcript prefix."""

import json

from gateway.transcript_header import HEADER_READ_BYTES, read_session_id_from_transcript


def test_reads_session_id_from_first_line(write_transcript):
    path = write_transcript("a.jsonl", [{"type": "session", "id": "sess-42"}])
    assert read_session_id_from_transcript(path) == "sess-42"


def test_accepts_str_path(write_transcript):
    path = write_transcript("a.jsonl", [{"type": "session", "id": "sess-42"}])
    assert read_session_id_from_transcript(str(path)) == "sess-42"


def test_skips_other_record_kinds_and_blank_lines(write_transcript):
    path = write_transcript(
        "a.jsonl",
        [
            {"type": "meta", "id": "not-this"},
            "",
            "   ",
            {"type": "session", "id": "  sess-7  "},
            {"type": "session", "id": "sess-later"},
        ],
    )
    assert read_session_id_from_transcript(path) == "sess-7", "First session record wins, trimmed"


def test_session_record_with_blank_or_non_string_id_is_skipped(write_transcript):
    path = write_transcript(
        "a.jsonl",
        [
            {"type": "session", "id": "   "},
            {"type": "session", "id": 42},
            {"type": "session"},
            {"type": "session", "id": "sess-ok"},
        ],
    )
    assert read_session_id_from_transcript(path) == "sess-ok"


def test_non_object_records_are_skipped(write_transcript):
    path = write_transcript("a.jsonl", ["null", "[1, 2]", '"text"', {"type": "session", "id": "s"}])
    assert read_session_id_from_transcript(path) == "s"


def test_malformed_first_line_is_not_found(write_transcript):
    path = write_transcript("a.jsonl", ["{not json", {"type": "session", "id": "sess-42"}])
    assert read_session_id_from_transcript(path) is None


def test_malformed_line_before_header_stops_scan(write_transcript):
    path = write_transcript(
        "a.jsonl", [{"type": "meta"}, "garbage", {"type": "session", "id": "sess-42"}]
    )
    assert read_session_id_from_transcript(path) is None


def test_crlf_line_endings(tmp_path):
    path = tmp_path / "a.jsonl"
    path.write_bytes(b'{"type":"meta"}\r\n{"type":"session","id":"sess-crlf"}\r\n')
    assert read_session_id_from_transcript(path) == "sess-crlf"


def test_empty_file_is_not_found(tmp_path):
    path = tmp_path / "empty.jsonl"
    path.write_bytes(b"")
    assert read_session_id_from_transcript(path) is None


def test_missing_file_is_not_found(tmp_path):
    assert read_session_id_from_transcript(tmp_path / "gone.jsonl") is None


def test_directory_is_not_found(tmp_path):
    assert read_session_id_from_transcript(tmp_path) is None


def test_only_prefix_is_read(tmp_path):
    """A header beyond the inspected prefix is never seen."""
    filler = json.dumps({"type": "message", "text": "x" * (HEADER_READ_BYTES + 100)})
    path = tmp_path / "big.jsonl"
    path.write_text(filler + "\n" + json.dumps({"type": "session", "id": "late"}) + "\n")

    # The prefix ends inside the first record, which then fails to parse
    assert read_session_id_from_transcript(path) is None


def test_custom_prefix_size(tmp_path):
    header = json.dumps({"type": "session", "id": "sess-small"})
    path = tmp_path / "a.jsonl"
    path.write_text(header + "\n" + "{}\n" * 100)

    assert read_session_id_from_transcript(path, max_bytes=len(header)) == "sess-small"
    assert read_session_id_from_transcript(path, max_bytes=len(header) - 1) is None


def test_deeply_nested_line_is_not_found(tmp_path):
    """Nesting past the parser's recursion limit is treated as malformed."""
    path = tmp_path / "nested.jsonl"
    path.write_text("[" * 8000 + "\n")

    assert read_session_id_from_transcript(path) is None
