"""Work list construction: directory enumeration, list files and shuffling.

A work list is always streamed from a newline-delimited list file. When the
source is a directory, the tree is first spooled into a temporary list file;
when shuffling is requested, the list is loaded, permuted and written to a
second temporary list file. Temporary files are removed when the
:class:`WorkList` is closed.
"""

import logging
import os
import posixpath
import random
import sys
import tempfile
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import TextIO

from bulkupload.errors import ConfigurationError, EnumerationError

logger = logging.getLogger(__name__)

# "-" as a list file path means standard input.
STDIN = "-"


@dataclass(frozen=True)
class WorkItem:
    """One local file slated for upload.

    Attributes:
        path: Relative path with forward-slash separators.
        key: Remote object key (destination prefix joined with ``path``).
        source: Local filesystem path to open for reading.
    """

    path: str
    key: str
    source: str


def normalize_path(path: str) -> str:
    """Convert host path separators to forward slashes."""
    return path.replace("\\", "/")


def object_key(prefix: str, path: str) -> str:
    """Join a destination prefix and a relative path into an object key.

    Separators are normalized and the result is cleaned like a POSIX path
    join (``.`` segments, repeated and leading slashes removed).
    """
    joined = "/".join(part for part in (prefix, normalize_path(path)) if part)
    if not joined:
        return ""
    key = posixpath.normpath(joined).lstrip("/")
    return "" if key == "." else key


def make_item(path: str, prefix: str = "", base_dir: str = "") -> WorkItem:
    """Build a WorkItem for a raw list entry.

    Args:
        path: The entry as found in the list file or directory walk.
        prefix: Destination key prefix.
        base_dir: Directory the entry is relative to, or empty for the
            current working directory.
    """
    source = os.path.join(base_dir, path) if base_dir else path
    return WorkItem(path=normalize_path(path), key=object_key(prefix, path), source=source)


def walk_directory(root: str) -> Iterator[str]:
    """Yield the relative paths of all regular files below ``root``.

    Entries are visited depth first in lexical order. Symlinks to regular
    files are included; symlinked directories are not descended into.
    Nesting depth is not limited by the interpreter's recursion limit.

    Raises:
        EnumerationError: If ``root`` or any directory below it cannot be
            read.
    """

    def _scan(directory: str) -> Iterator[os.DirEntry]:
        try:
            with os.scandir(directory) as it:
                return iter(sorted(it, key=lambda e: e.name))
        except OSError as exc:
            raise EnumerationError(f"walk({root}): {exc}") from exc

    # One (relative dir, remaining entries) pair per open directory level.
    stack: list[tuple[str, Iterator[os.DirEntry]]] = [("", _scan(root))]
    while stack:
        rel, entries = stack[-1]
        entry = next(entries, None)
        if entry is None:
            stack.pop()
            continue
        child = f"{rel}/{entry.name}" if rel else entry.name
        try:
            if entry.is_dir(follow_symlinks=False):
                stack.append((child, _scan(entry.path)))
            elif entry.is_file():
                yield child
        except OSError as exc:
            raise EnumerationError(f"walk({root}): {exc}") from exc


def open_list_file(path: str) -> TextIO:
    """Open a list file for reading, or return stdin for ``-``.

    Raises:
        EnumerationError: If the file cannot be opened.
    """
    if path == STDIN:
        return sys.stdin
    try:
        return open(path, "r", encoding="utf-8", newline="")
    except OSError as exc:
        raise EnumerationError(f"open list file: {exc}") from exc


def iter_list_file(stream: TextIO) -> Iterator[str]:
    """Yield the non-blank entries of a newline-delimited list file.

    Raises:
        EnumerationError: If reading the stream fails part way through.
    """
    try:
        for line in stream:
            entry = line.rstrip("\r\n")
            if entry:
                yield entry
    except (OSError, UnicodeDecodeError) as exc:
        raise EnumerationError(f"scan list file: {exc}") from exc


def write_list_file(paths: Iterable[str]) -> str:
    """Write paths to a new temporary list file and return its name.

    The file is removed again if writing fails.

    Raises:
        EnumerationError: If the temporary file cannot be written, or if
            iterating ``paths`` raises it.
    """
    try:
        fd, name = tempfile.mkstemp(prefix="bulkupload-", suffix=".list")
    except OSError as exc:
        raise EnumerationError(f"create list file: {exc}") from exc

    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as fh:
            for path in paths:
                fh.write(path + "\n")
    except BaseException as exc:
        os.unlink(name)
        if isinstance(exc, OSError):
            raise EnumerationError(f"write list file: {exc}") from exc
        raise
    return name


def shuffle_paths(paths: list[str], rng: random.Random | None = None) -> list[str]:
    """Return a uniformly random permutation of ``paths``.

    The input list is left untouched.
    """
    shuffled = list(paths)
    (rng or random).shuffle(shuffled)
    return shuffled


class WorkList:
    """Ordered, single-use stream of WorkItems for one batch run.

    Exactly one of ``directory`` and ``list_file`` must be given. Use as a
    context manager; temporary list files are removed on exit.

    Attributes:
        directory: Source directory to enumerate.
        list_file: Pre-built list file path, or ``-`` for stdin.
        prefix: Destination key prefix.
        shuffle: Whether to randomize upload order.
    """

    def __init__(
        self,
        directory: str = "",
        list_file: str = "",
        prefix: str = "",
        shuffle: bool = False,
        rng: random.Random | None = None,
    ) -> None:
        if not directory and not list_file:
            raise ConfigurationError("target not found: please use either -l or -d")
        if directory and list_file:
            raise ConfigurationError("cannot use both -l and -d")
        self.directory = directory
        self.list_file = list_file
        self.prefix = prefix
        self.shuffle = shuffle
        self._rng = rng
        self._temp_files: list[str] = []
        self._stream: TextIO | None = None

    def open(self) -> None:
        """Enumerate (and optionally shuffle) the source and open the list."""
        list_file = self.list_file
        if self.directory:
            list_file = self._spool(walk_directory(self.directory))
            logger.debug("Wrote directory listing of %s to %s", self.directory, list_file)

        if self.shuffle:
            stream = open_list_file(list_file)
            try:
                paths = list(iter_list_file(stream))
            finally:
                if stream is not sys.stdin:
                    stream.close()
            list_file = self._spool(shuffle_paths(paths, self._rng))
            logger.debug("Shuffled %d entries into %s", len(paths), list_file)

        self._stream = open_list_file(list_file)

    def _spool(self, paths: Iterable[str]) -> str:
        name = write_list_file(paths)
        self._temp_files.append(name)
        return name

    def close(self) -> None:
        """Close the list stream and remove temporary list files."""
        if self._stream is not None and self._stream is not sys.stdin:
            self._stream.close()
        self._stream = None
        for name in self._temp_files:
            try:
                os.unlink(name)
            except FileNotFoundError:
                pass
        self._temp_files.clear()

    def __enter__(self) -> "WorkList":
        try:
            self.open()
        except BaseException:
            self.close()
            raise
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __iter__(self) -> Iterator[WorkItem]:
        if self._stream is None:
            raise RuntimeError("WorkList is not open")
        for path in iter_list_file(self._stream):
            yield make_item(path, self.prefix, self.directory)
