"""Discovery of command files and unwrapping of compressed containers.

Responsibilities
----------------
- Resolve command-line arguments (files, directories, glob patterns) into an
  ordered list of :class:`CommandSource` objects, filtering directory contents
  by file extension and skipping hidden entries.
- Open a source as a binary XML stream: ``.zip`` archives must hold an ``.xml``
  file as their first entry, ``.gz`` files are decompressed on the fly, and any
  other file is read as is.
"""

from __future__ import annotations

import fnmatch
import gzip
import logging
import zipfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Iterable, Iterator, List, Sequence

from CloudPost.errors import SourceReadError

__all__ = ["DEFAULT_FILE_TYPES", "CommandSource", "discover_sources"]

LOGGER = logging.getLogger(__name__)

DEFAULT_FILE_TYPES = ("xml", "zip", "gz")


@dataclass(frozen=True)
class CommandSource:
    """A command file on disk."""

    path: Path

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def is_zip(self) -> bool:
        return self.path.suffix.lower() == ".zip"

    @property
    def is_gzip(self) -> bool:
        return self.path.suffix.lower() == ".gz"

    @contextmanager
    def open(self) -> Iterator[IO[bytes]]:
        """Yield a binary stream of the XML content, unwrapping zip/gz containers.

        Raises:
            SourceReadError: If the file cannot be opened or the archive does
                not contain an XML file
        """
        try:
            if self.is_zip:
                with zipfile.ZipFile(self.path) as archive:
                    entries = archive.infolist()
                    # Only a single .xml file inside the archive is handled.
                    if not entries or not entries[0].filename.lower().endswith(".xml"):
                        raise SourceReadError(
                            f"Cannot read .xml file from {self.name}", source=self.name
                        )
                    LOGGER.info(">> Found xml file %s inside %s", entries[0].filename, self.name)
                    with archive.open(entries[0]) as stream:
                        yield stream
            elif self.is_gzip:
                with gzip.open(self.path, "rb") as stream:
                    yield stream
            else:
                with self.path.open("rb") as stream:
                    yield stream
        except (OSError, zipfile.BadZipFile) as exc:
            raise SourceReadError(f"Cannot open {self.name}: {exc}", source=self.name) from exc


def _is_hidden(path: Path) -> bool:
    return path.name.startswith(".") and path.name not in (".", "..")


def _matches_types(path: Path, file_types: Sequence[str]) -> bool:
    if "*" in file_types:
        return True
    return path.suffix.lower().lstrip(".") in file_types


def _walk_directory(directory: Path, file_types: Sequence[str]) -> Iterator[Path]:
    if _is_hidden(directory):
        return
    entries = sorted(directory.iterdir())
    files = [
        entry
        for entry in entries
        if entry.is_file() and not _is_hidden(entry) and _matches_types(entry, file_types)
    ]
    LOGGER.info("Indexing directory %s (%d files)", directory, len(files))
    yield from files
    for entry in entries:
        if entry.is_dir():
            yield from _walk_directory(entry, file_types)


def _expand_glob(pattern: Path) -> List[Path]:
    parent = pattern.parent if str(pattern.parent) else Path(".")
    if not parent.is_dir():
        return []
    needle = pattern.name.lower()
    return sorted(
        entry for entry in parent.iterdir() if fnmatch.fnmatchcase(entry.name.lower(), needle)
    )


def discover_sources(
    paths: Iterable[str | Path],
    file_types: Sequence[str] = DEFAULT_FILE_TYPES,
) -> List[CommandSource]:
    """Resolve files, directories and glob patterns into command sources.

    Args:
        paths: Arguments as given on the command line
        file_types: Extensions accepted when walking directories (``"*"`` for all)

    Returns:
        Sources in argument order; directories are walked recursively in sorted
        order. Duplicates are dropped.
    """
    types = [ext.lower().lstrip(".") for ext in file_types]
    found: List[Path] = []

    def _collect(candidate: Path) -> None:
        if candidate.is_dir():
            found.extend(_walk_directory(candidate, types))
        elif candidate.is_file():
            if not _is_hidden(candidate):
                found.append(candidate)
        else:
            matches = _expand_glob(candidate)
            if not matches:
                LOGGER.warning("No files or directories matching %s", candidate)
            for match in matches:
                if match.is_dir():
                    found.extend(_walk_directory(match, types))
                elif not _is_hidden(match):
                    found.append(match)

    for raw in paths:
        _collect(Path(raw))

    seen: set[Path] = set()
    sources: List[CommandSource] = []
    for path in found:
        key = path.resolve()
        if key in seen:
            continue
        seen.add(key)
        sources.append(CommandSource(path))
    return sources
