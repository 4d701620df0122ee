from __future__ import annotations

import asyncio
import os
from pathlib import Path

import pytest

from docembed import Content, Failure, FileLoader, InvalidPattern, IoFailure, LoaderError


def _write_toml_pair(directory):
    (directory / "a.toml").write_text('[section]\nkey = "value"\n', encoding="utf-8")
    (directory / "b.toml").write_text('[section]\nkey = "another_value"\n', encoding="utf-8")


def test_with_glob_reads_matching_toml_files(tmp_path):
    _write_toml_pair(tmp_path)
    (tmp_path / "notes.txt").write_text("not a toml file", encoding="utf-8")

    results = FileLoader.with_glob(f"{tmp_path}/*.toml").read()

    assert len(results) == 2
    for result in results:
        assert isinstance(result, Content)
        assert result.ok
        assert "[section]" in result.text
        assert "key =" in result.text


def test_pattern_matching_nothing_reads_empty(tmp_path):
    loader = FileLoader.with_glob(f"{tmp_path}/*.md")

    assert loader.paths == ()
    assert loader.read() == []


def test_missing_root_directory_is_not_an_error(tmp_path):
    assert FileLoader.with_glob(f"{tmp_path}/missing/*.toml").read() == []


def test_deleted_file_yields_failure_for_that_path(tmp_path):
    _write_toml_pair(tmp_path)
    (tmp_path / "c.toml").write_text("[other]\n", encoding="utf-8")
    loader = FileLoader.with_glob(f"{tmp_path}/*.toml")

    victim = tmp_path / "b.toml"
    victim.unlink()
    results = loader.read()

    assert len(results) == 3
    failures = [result for result in results if isinstance(result, Failure)]
    assert len(failures) == 1
    assert failures[0].path == victim
    assert failures[0].kind == "not_found"
    assert not failures[0].ok
    assert sum(isinstance(result, Content) for result in results) == 2


def test_read_rescans_matched_paths_on_every_call(tmp_path):
    target = tmp_path / "a.toml"
    target.write_text("first", encoding="utf-8")
    loader = FileLoader.with_glob(f"{tmp_path}/*.toml")
    assert loader.read()[0].text == "first"

    target.write_text("second", encoding="utf-8")
    (tmp_path / "late.toml").write_text("added after resolution", encoding="utf-8")

    results = loader.read()
    assert len(results) == 1
    assert results[0].text == "second"


def test_undecodable_file_is_reported_without_aborting_siblings(tmp_path):
    _write_toml_pair(tmp_path)
    (tmp_path / "binary.toml").write_bytes(b"\xff\xfe\xfa\x00garbage")

    results = FileLoader.with_glob(f"{tmp_path}/*.toml").read_with_path()

    by_path = {path.name: result for path, result in results}
    assert set(by_path) == {"a.toml", "b.toml", "binary.toml"}
    assert isinstance(by_path["binary.toml"], Failure)
    assert by_path["binary.toml"].kind == "decode_error"
    assert isinstance(by_path["a.toml"], Content)


def test_matched_directory_is_reported_as_failure(tmp_path):
    (tmp_path / "nested.toml").mkdir()
    (tmp_path / "a.toml").write_text("[a]\n", encoding="utf-8")

    results = FileLoader.with_glob(f"{tmp_path}/*.toml").read()

    kinds = sorted(result.kind for result in results if isinstance(result, Failure))
    assert kinds == ["is_a_directory"]
    assert len(results) == 2


def test_ignore_errors_keeps_only_content(tmp_path):
    _write_toml_pair(tmp_path)
    loader = FileLoader.with_glob(f"{tmp_path}/*.toml")
    (tmp_path / "a.toml").unlink()

    contents = loader.ignore_errors()

    assert [content.path.name for content in contents] == ["b.toml"]


def test_recursive_pattern_matches_nested_files_once(tmp_path):
    nested = tmp_path / "one" / "two"
    nested.mkdir(parents=True)
    (tmp_path / "top.toml").write_text("[top]\n", encoding="utf-8")
    (nested / "deep.toml").write_text("[deep]\n", encoding="utf-8")

    loader = FileLoader.with_glob(f"{tmp_path}/**/*.toml")

    names = [path.name for path in loader.paths]
    assert sorted(names) == ["deep.toml", "top.toml"]
    assert len(set(loader.paths)) == len(loader.paths)


@pytest.mark.parametrize(
    "pattern",
    [
        "docs/[abc.toml",
        "docs/[!abc",
        "docs/a**.toml",
        "docs/***/x.toml",
        "",
    ],
)
def test_malformed_pattern_raises_invalid_pattern(pattern):
    with pytest.raises(InvalidPattern) as excinfo:
        FileLoader.with_glob(pattern)

    assert isinstance(excinfo.value, LoaderError)
    assert excinfo.value.pattern == pattern


def test_character_classes_are_accepted(tmp_path):
    _write_toml_pair(tmp_path)

    loader = FileLoader.with_glob(f"{tmp_path}/[a]*.toml")

    assert [path.name for path in loader.paths] == ["a.toml"]


def test_with_dir_lists_regular_files(tmp_path):
    _write_toml_pair(tmp_path)
    (tmp_path / "subdir").mkdir()

    loader = FileLoader.with_dir(tmp_path)

    assert sorted(path.name for path in loader.paths) == ["a.toml", "b.toml"]
    assert all(isinstance(result, Content) for result in loader.read())


def test_with_dir_on_missing_directory_raises_io_failure(tmp_path):
    with pytest.raises(IoFailure) as excinfo:
        FileLoader.with_dir(tmp_path / "missing")

    assert excinfo.value.path == tmp_path / "missing"


@pytest.mark.skipif(
    not hasattr(os, "geteuid") or os.geteuid() == 0,
    reason="permission bits are not enforced for root",
)
def test_unreadable_root_directory_raises_io_failure(tmp_path):
    locked = tmp_path / "locked"
    locked.mkdir()
    (locked / "a.toml").write_text("[a]\n", encoding="utf-8")
    locked.chmod(0)
    try:
        with pytest.raises(IoFailure):
            FileLoader.with_glob(f"{locked}/*.toml")
    finally:
        locked.chmod(0o755)


def _deny_listing(monkeypatch, locked):
    real_scandir = os.scandir

    def scandir(path="."):
        if Path(path) == locked:
            raise PermissionError(13, "Permission denied", str(path))
        return real_scandir(path)

    monkeypatch.setattr(os, "scandir", scandir)


def test_root_directory_that_cannot_be_listed_raises_io_failure(tmp_path, monkeypatch):
    _write_toml_pair(tmp_path)
    _deny_listing(monkeypatch, tmp_path)

    with pytest.raises(IoFailure) as excinfo:
        FileLoader.with_glob(f"{tmp_path}/*.toml")

    assert excinfo.value.path == tmp_path
    assert isinstance(excinfo.value.cause, PermissionError)


@pytest.mark.parametrize("suffix", ["*/*.toml", "**/*.toml"])
def test_nested_directory_that_cannot_be_listed_raises_io_failure(tmp_path, monkeypatch, suffix):
    open_dir = tmp_path / "open"
    locked = tmp_path / "locked"
    open_dir.mkdir()
    locked.mkdir()
    _write_toml_pair(open_dir)
    (locked / "c.toml").write_text("[c]\n", encoding="utf-8")
    _deny_listing(monkeypatch, locked)

    with pytest.raises(IoFailure) as excinfo:
        FileLoader.with_glob(f"{tmp_path}/{suffix}")

    assert excinfo.value.path == locked


def test_recursive_pattern_skips_hidden_files(tmp_path):
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    (tmp_path / "top.toml").write_text("[top]\n", encoding="utf-8")
    (nested / "deep.toml").write_text("[deep]\n", encoding="utf-8")
    (tmp_path / ".hidden.toml").write_text("[hidden]\n", encoding="utf-8")

    loader = FileLoader.with_glob(f"{tmp_path}/**/*.toml")

    assert loader.paths == (nested / "deep.toml", tmp_path / "top.toml")


def test_permission_denied_file_yields_failure_and_siblings_still_read(tmp_path, monkeypatch):
    _write_toml_pair(tmp_path)
    loader = FileLoader.with_glob(f"{tmp_path}/*.toml")
    real_open = Path.open

    def guarded_open(self, *args, **kwargs):
        if self.name == "b.toml":
            raise PermissionError(13, "Permission denied", str(self))
        return real_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", guarded_open)
    results = loader.read()

    assert isinstance(results[0], Content)
    assert results[0].path == tmp_path / "a.toml"
    assert isinstance(results[1], Failure)
    assert results[1].path == tmp_path / "b.toml"
    assert results[1].kind == "permission_denied"


def test_crlf_line_endings_are_preserved(tmp_path):
    (tmp_path / "a.toml").write_bytes(b'[section]\r\nkey = "value"\r\n')

    (result,) = FileLoader.with_glob(f"{tmp_path}/*.toml").read()

    assert isinstance(result, Content)
    assert result.text == '[section]\r\nkey = "value"\r\n'


def test_unknown_encoding_is_rejected_up_front(tmp_path):
    _write_toml_pair(tmp_path)

    with pytest.raises(ValueError, match="no-such-codec"):
        FileLoader.with_glob(f"{tmp_path}/*.toml", encoding="no-such-codec")


def test_concurrent_read_matches_sequential_read(tmp_path):
    for idx in range(12):
        (tmp_path / f"doc{idx:02d}.toml").write_text(f"[doc]\nkey = {idx}\n", encoding="utf-8")
    loader = FileLoader.with_glob(f"{tmp_path}/*.toml")
    (tmp_path / "doc05.toml").unlink()

    sequential = loader.read()
    concurrent = asyncio.run(loader.aread(concurrency=3))

    assert set(concurrent) == set(sequential)
    assert [result.path for result in concurrent] == list(loader.paths)
    assert sum(isinstance(result, Failure) for result in concurrent) == 1


def test_concurrency_must_be_positive(tmp_path):
    loader = FileLoader.with_glob(f"{tmp_path}/*.toml")

    with pytest.raises(ValueError):
        asyncio.run(loader.aread(concurrency=0))
