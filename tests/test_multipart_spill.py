"""Multipart parsing and the in-memory budget for uploads."""

import io

import pytest

import reqbind.http
from reqbind import DecodeError, Request


def _parse(multipart_body, parts, max_memory):
    body, ctype = multipart_body(parts)
    req = Request(body=body, headers={"Content-Type": ctype})
    return req, req.parse_multipart_form(max_memory)


def test_small_uploads_stay_in_memory(multipart_body) -> None:
    req, form = _parse(multipart_body, [("f", "a.bin", b"x" * 10, None)], 1024)
    upload = form.files["f"][0]
    assert upload.in_memory
    assert upload.read() == b"x" * 10
    req.close()


def test_upload_crossing_budget_spills_to_disk(multipart_body) -> None:
    parts = [
        ("f", "first.bin", b"a" * 60, None),
        ("f", "second.bin", b"b" * 60, None),
        ("f", "third.bin", b"c" * 30, None),
    ]
    req, form = _parse(multipart_body, parts, 100)
    first, second, third = form.files["f"]
    assert first.in_memory
    assert not second.in_memory
    # the spilled part no longer counts against the budget
    assert third.in_memory
    assert second.read() == b"b" * 60
    assert second.size == 60
    req.close()


def test_zero_budget_spills_everything(multipart_body) -> None:
    req, form = _parse(multipart_body, [("f", "a.bin", b"data", None)], 0)
    upload = form.files["f"][0]
    assert not upload.in_memory
    assert upload.read() == b"data"
    req.close()


def test_plain_values_do_not_use_budget(multipart_body) -> None:
    req, form = _parse(
        multipart_body, [("note", "", b"n" * 500, None), ("f", "a.bin", b"x", None)], 10
    )
    assert form.values["note"] == ["n" * 500]
    assert form.files["f"][0].in_memory
    req.close()


def test_parse_is_cached(multipart_body) -> None:
    req, form = _parse(multipart_body, [("a", "", b"1", None)], 1024)
    assert req.parse_multipart_form(1024) is form
    assert req.multipart_form is form


def test_truncated_body(multipart_body) -> None:
    body, ctype = multipart_body([("f", "a.bin", b"payload", None)])
    req = Request(body=body[:-20], headers={"Content-Type": ctype})
    with pytest.raises(DecodeError, match="unexpected end of body"):
        req.parse_multipart_form(1024)
    assert req.multipart_form is None


def test_missing_boundary() -> None:
    req = Request(body=b"--x--\r\n", headers={"Content-Type": "multipart/form-data"})
    with pytest.raises(DecodeError, match="boundary"):
        req.parse_multipart_form(1024)


def test_malformed_body_is_decode_error() -> None:
    req = Request(
        body=b"garbage without boundary\r\n",
        headers={"Content-Type": "multipart/form-data; boundary=B"},
    )
    with pytest.raises(DecodeError):
        req.parse_multipart_form(1024)


def test_stream_body_is_read_in_chunks(multipart_body) -> None:
    content = bytes(range(256)) * 600
    body, ctype = multipart_body([("f", "big.bin", content, "application/octet-stream")])
    req = Request(body=io.BytesIO(body), headers={"Content-Type": ctype})
    upload = req.parse_multipart_form(1 << 20).files["f"][0]
    assert upload.size == len(content)
    assert upload.read() == content
    assert upload.content_type == "application/octet-stream"
    req.close()


def test_plain_values_are_capped(monkeypatch, multipart_body) -> None:
    monkeypatch.setattr(reqbind.http, "VALUE_HEADROOM", 16)
    req, form = _parse(multipart_body, [("a", "", b"x" * 10, None), ("b", "", b"y" * 6, None)], 0)
    assert form.values == {"a": ["x" * 10], "b": ["y" * 6]}

    body, ctype = multipart_body([("a", "", b"x" * 10, None), ("b", "", b"y" * 7, None)])
    req = Request(body=body, headers={"Content-Type": ctype})
    with pytest.raises(DecodeError, match="message too large"):
        req.parse_multipart_form(0)


def test_upload_threshold_extends_value_cap(monkeypatch, multipart_body) -> None:
    monkeypatch.setattr(reqbind.http, "VALUE_HEADROOM", 0)
    req, form = _parse(multipart_body, [("note", "", b"n" * 20, None)], 20)
    assert form.values["note"] == ["n" * 20]
