"""Source file discovery for logref."""

from __future__ import annotations

from fnmatch import fnmatch
from typing import TYPE_CHECKING, cast

from gitignore_parser import parse_gitignore  # type: ignore[import-untyped]

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator
    from pathlib import Path


class SourceDirError(Exception):
    """Raised when the configured source directory cannot be scanned."""


def _should_include_file(
    path: Path,
    directory: Path,
    extensions: frozenset[str],
    gitignore_matches: Callable[[str], bool] | None,
    exclude_patterns: list[str] | None,
) -> bool:
    """Check if a file should be included based on all filtering rules."""
    if not path.is_file() or path.is_symlink():
        return False

    if path.suffix.lstrip(".") not in extensions:
        return False

    if not _is_within_root(path, directory):
        return False

    try:
        rel_path = path.relative_to(directory)
    except ValueError:
        return False

    rel_path_str = rel_path.as_posix()

    if gitignore_matches is not None and gitignore_matches(str(path)):
        return False

    has_excluded_match = exclude_patterns and any(
        fnmatch(rel_path_str, pat) for pat in exclude_patterns
    )
    return not has_excluded_match


def _is_within_root(path: Path, root: Path) -> bool:
    """Return True when the resolved path stays within the resolved root."""
    try:
        root_resolved = root.resolve()
        path_resolved = path.resolve()
    except OSError:
        return False

    try:
        path_resolved.relative_to(root_resolved)
    except ValueError:
        return False

    return True


def _build_gitignore_matcher(root: Path) -> Callable[[str], bool] | None:
    gitignore_path = root / ".gitignore"
    if gitignore_path.is_file() and not gitignore_path.is_symlink():
        return cast("Callable[[str], bool]", parse_gitignore(gitignore_path))
    return None


def check_source_dir(directory: Path) -> None:
    """Raise SourceDirError unless ``directory`` is an existing directory."""
    if not directory.exists():
        msg = f"Source directory does not exist: {directory}"
        raise SourceDirError(msg)
    if not directory.is_dir():
        msg = f"Source path is not a directory: {directory}"
        raise SourceDirError(msg)


def find_source_files(
    directory: Path,
    *,
    extensions: Iterable[str] = ("rs",),
    exclude_patterns: list[str] | None = None,
    respect_gitignore: bool = True,
) -> Iterator[Path]:
    """Find all source files with a configured extension under a directory.

    Args:
        directory: Directory to search
        extensions: File extensions (without the leading dot) to include
        exclude_patterns: Optional list of fnmatch patterns; files matching
            any pattern (relative to ``directory``) are excluded
        respect_gitignore: Skip files matched by ``directory/.gitignore``

    Yields:
        Path objects for each matching file, sorted lexicographically by
        relative path for deterministic ordering.

    Raises:
        SourceDirError: If ``directory`` does not exist or is not a directory.
    """
    check_source_dir(directory)

    wanted = frozenset(ext.lstrip(".") for ext in extensions)
    gitignore_matches = (
        _build_gitignore_matcher(directory) if respect_gitignore else None
    )

    matched_files = [
        path
        for path in directory.rglob("*")
        if _should_include_file(
            path,
            directory,
            wanted,
            gitignore_matches,
            exclude_patterns,
        )
    ]

    matched_files.sort(key=lambda p: p.relative_to(directory).as_posix())

    yield from matched_files


__all__ = [
    "SourceDirError",
    "_should_include_file",
    "check_source_dir",
    "find_source_files",
]
