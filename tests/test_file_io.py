"""Tests for atomic file helpers."""

import os

import pytest

from switchyard.core.errors import ConfigParseError
from switchyard.utils.file_io import (
    dump_json,
    read_json_object,
    read_text,
    write_json_atomic,
    write_text_atomic,
)


def test_read_text_missing_returns_none(tmp_path):
    assert read_text(tmp_path / "missing.txt") is None


def test_read_text_strips_bom(tmp_path):
    path = tmp_path / "bom.json"
    path.write_bytes(b"\xef\xbb\xbf{}")
    assert read_text(path) == "{}"


def test_write_text_atomic_creates_parents_and_leaves_no_temp(tmp_path):
    path = tmp_path / "nested" / "dir" / "file.txt"
    write_text_atomic(path, "hello")
    assert path.read_text(encoding="utf-8") == "hello"
    assert [p.name for p in path.parent.iterdir()] == ["file.txt"]


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
def test_write_text_atomic_preserves_mode(tmp_path):
    path = tmp_path / "secret.json"
    path.write_text("{}", encoding="utf-8")
    os.chmod(path, 0o600)
    write_text_atomic(path, '{"a": 1}')
    assert path.stat().st_mode & 0o777 == 0o600


def test_read_json_object_variants(tmp_path):
    assert read_json_object(tmp_path / "missing.json") is None

    empty = tmp_path / "empty.json"
    empty.write_text("  \n", encoding="utf-8")
    assert read_json_object(empty) == {}

    valid = tmp_path / "valid.json"
    write_json_atomic(valid, {"a": [1, 2]})
    assert read_json_object(valid) == {"a": [1, 2]}


def test_read_json_object_rejects_bad_content(tmp_path):
    broken = tmp_path / "broken.json"
    broken.write_text("{", encoding="utf-8")
    with pytest.raises(ConfigParseError) as exc_info:
        read_json_object(broken)
    assert exc_info.value.error_code == "parse_error"

    array = tmp_path / "array.json"
    array.write_text("[]", encoding="utf-8")
    with pytest.raises(ConfigParseError):
        read_json_object(array)


def test_dump_json_is_stable():
    assert dump_json({"name": "中转"}) == '{\n  "name": "中转"\n}\n'
