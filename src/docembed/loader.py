from __future__ import annotations

import asyncio
import codecs
import fnmatch
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Union

from docembed.errors import InvalidPattern, IoFailure

logger = logging.getLogger(__name__)

_MAGIC_CHARS = frozenset("*?[")


@dataclass(frozen=True, slots=True)
class Content:
    """Full text of one matched file."""

    path: Path
    text: str

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Failure:
    """A matched file that could not be read. `kind` is a stable tag, `message` is free text."""

    path: Path
    kind: str
    message: str

    @property
    def ok(self) -> bool:
        return False


FileReadResult = Union[Content, Failure]


class FileLoader:
    """
    Enumerate files once, read them on demand.

    Matching happens when the loader is built; every call to `read()` re-opens each matched path
    from scratch, so files removed in between show up as `Failure` entries rather than going
    missing from the result list.
    """

    def __init__(self, pattern: str, paths: list[Path], *, encoding: str = "utf-8") -> None:
        try:
            codecs.lookup(encoding)
        except LookupError as exc:
            raise ValueError(f"Unknown text encoding: {encoding!r}") from exc
        self._pattern = pattern
        self._paths = tuple(paths)
        self._encoding = encoding

    @classmethod
    def with_glob(cls, pattern: str, *, encoding: str = "utf-8") -> "FileLoader":
        _validate_pattern(pattern)
        matches = _expand_pattern(pattern)
        # `**` can reach the same file through more than one expansion.
        paths = sorted(dict.fromkeys(matches))
        logger.debug("Resolved glob pattern", extra={"pattern": pattern, "matches": len(paths)})
        return cls(pattern, paths, encoding=encoding)

    @classmethod
    def with_dir(cls, directory: str | os.PathLike[str], *, encoding: str = "utf-8") -> "FileLoader":
        root = Path(directory)
        pattern = str(root)
        try:
            with os.scandir(root) as entries:
                paths = sorted(Path(entry.path) for entry in entries if entry.is_file())
        except OSError as exc:
            raise IoFailure(pattern, root, exc) from exc
        return cls(pattern, paths, encoding=encoding)

    @property
    def pattern(self) -> str:
        return self._pattern

    @property
    def paths(self) -> tuple[Path, ...]:
        return self._paths

    def __len__(self) -> int:
        return len(self._paths)

    def read(self) -> list[FileReadResult]:
        return list(self.iter_read())

    def iter_read(self) -> Iterator[FileReadResult]:
        for path in self._paths:
            yield self._read_one(path)

    def read_with_path(self) -> list[tuple[Path, FileReadResult]]:
        return [(result.path, result) for result in self.iter_read()]

    def ignore_errors(self) -> list[Content]:
        return [result for result in self.iter_read() if isinstance(result, Content)]

    async def aread(self, concurrency: int = 8) -> list[FileReadResult]:
        """
        Read matched files on worker threads, at most `concurrency` at a time.

        The returned list lines up with `paths` exactly as `read()` does.
        """

        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        semaphore = asyncio.Semaphore(concurrency)

        async def _bounded(path: Path) -> FileReadResult:
            async with semaphore:
                return await asyncio.to_thread(self._read_one, path)

        return list(await asyncio.gather(*(_bounded(path) for path in self._paths)))

    def _read_one(self, path: Path) -> FileReadResult:
        try:
            with path.open("r", encoding=self._encoding, newline="") as fh:
                return Content(path=path, text=fh.read())
        except FileNotFoundError as exc:
            failure = Failure(path, "not_found", str(exc))
        except PermissionError as exc:
            failure = Failure(path, "permission_denied", str(exc))
        except IsADirectoryError as exc:
            failure = Failure(path, "is_a_directory", str(exc))
        except UnicodeDecodeError as exc:
            failure = Failure(path, "decode_error", str(exc))
        except OSError as exc:
            failure = Failure(path, "io_error", str(exc))
        logger.warning(
            "Failed to read matched file",
            extra={"path": str(path), "kind": failure.kind, "error": failure.message},
        )
        return failure


def _validate_pattern(pattern: str) -> None:
    if not pattern:
        raise InvalidPattern(pattern, "pattern is empty")

    for component in _split_components(pattern):
        if "**" in component and component != "**":
            raise InvalidPattern(pattern, "recursive wildcards must form a whole path component")

    idx = 0
    while idx < len(pattern):
        if pattern[idx] == "[":
            close = _class_end(pattern, idx)
            if close < 0:
                raise InvalidPattern(pattern, f"unclosed character class at offset {idx}")
            idx = close
        idx += 1


def _class_end(pattern: str, start: int) -> int:
    """Index of the `]` closing the class opened at `start`, or -1."""

    idx = start + 1
    if idx < len(pattern) and pattern[idx] == "!":
        idx += 1
    # A leading `]` is a literal member of the class.
    if idx < len(pattern) and pattern[idx] == "]":
        idx += 1
    while idx < len(pattern):
        if pattern[idx] == "]":
            return idx
        idx += 1
    return -1


def _split_components(pattern: str) -> list[str]:
    normalized = pattern.replace(os.sep, "/") if os.sep != "/" else pattern
    return normalized.split("/")


def _expand_pattern(pattern: str) -> list[Path]:
    """
    Resolve `pattern` against the filesystem.

    Follows `glob` semantics (`**` spans any number of directories, names starting with a dot
    only match components that start with a dot), but any directory that exists and cannot be
    listed raises `IoFailure` instead of silently contributing no matches.
    """

    parts = Path(pattern).parts
    literal: list[str] = []
    for part in parts:
        if _MAGIC_CHARS.intersection(part):
            break
        literal.append(part)
    if len(literal) == len(parts):
        return [Path(pattern)] if os.path.lexists(pattern) else []

    root = Path(*literal) if literal else Path(".")
    return list(_expand(pattern, root, parts[len(literal) :]))


def _expand(pattern: str, directory: Path, parts: tuple[str, ...]) -> Iterator[Path]:
    head, rest = parts[0], parts[1:]

    if head == "**":
        if not rest:
            yield directory
            yield from _walk(pattern, directory, files=True)
            return
        for candidate in (directory, *_walk(pattern, directory, files=False)):
            yield from _expand(pattern, candidate, rest)
        return

    if not _MAGIC_CHARS.intersection(head):
        candidate = directory / head
        if not rest:
            if os.path.lexists(candidate):
                yield candidate
        elif candidate.is_dir():
            yield from _expand(pattern, candidate, rest)
        return

    for entry in _list_dir(pattern, directory):
        if entry.name.startswith(".") and not head.startswith("."):
            continue
        if not fnmatch.fnmatch(entry.name, head):
            continue
        if not rest:
            yield directory / entry.name
        elif entry.is_dir():
            yield from _expand(pattern, directory / entry.name, rest)


def _walk(pattern: str, directory: Path, *, files: bool) -> Iterator[Path]:
    """Every non-hidden descendant of `directory`, depth first. Symlinked directories are not entered."""

    for entry in _list_dir(pattern, directory):
        if entry.name.startswith("."):
            continue
        is_dir = entry.is_dir(follow_symlinks=False)
        if is_dir or files:
            yield directory / entry.name
        if is_dir:
            yield from _walk(pattern, directory / entry.name, files=files)


def _list_dir(pattern: str, directory: Path) -> list[os.DirEntry]:
    try:
        with os.scandir(directory) as entries:
            return list(entries)
    except (FileNotFoundError, NotADirectoryError):
        return []
    except OSError as exc:
        raise IoFailure(pattern, directory, exc) from exc
