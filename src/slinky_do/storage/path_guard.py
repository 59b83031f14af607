"""Containment checks for paths inside the vault root.

Every operation that writes, renames, moves or deletes a file calls
``ensure_within_root`` on each path it touches before doing any I/O.

Symbolic links are not resolved: a path that is nominally inside the root
but points elsewhere through a symlink is reported as inside. Link-target
containment is a known residual risk of this check.
"""
import logging
import os
from pathlib import Path
from typing import Union

from slinky_do.exceptions import PathEscapeError

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


def _normalize(path: PathLike) -> str:
    """Absolute path with ``.``/``..`` collapsed, without touching the disk."""
    return os.path.normpath(os.path.abspath(os.fspath(path)))


def is_within_root(candidate: PathLike, root: PathLike) -> bool:
    """Check whether ``candidate`` lies inside ``root`` (or is the root itself).

    Both paths are made absolute and normalized first. A sibling whose name
    merely extends the root's name (``/vault-other`` vs ``/vault``) is outside.

    Args:
        candidate: Path to check
        root: The containing directory

    Returns:
        True if the candidate equals the root or is below it
    """
    resolved_root = _normalize(root)
    resolved_candidate = _normalize(candidate)
    if resolved_candidate == resolved_root:
        return True
    # The filesystem root already ends with a separator
    prefix = resolved_root if resolved_root.endswith(os.sep) else resolved_root + os.sep
    return resolved_candidate.startswith(prefix)


def ensure_within_root(candidate: PathLike, root: PathLike) -> Path:
    """Return the normalized candidate, or raise if it escapes the root.

    Raises:
        PathEscapeError: If the candidate resolves outside ``root``
    """
    if not is_within_root(candidate, root):
        logger.warning("Rejected path outside vault root: %s", os.fspath(candidate))
        raise PathEscapeError(os.fspath(candidate), os.fspath(root))
    return Path(_normalize(candidate))


def resolve_in_root(root: PathLike, relative_path: PathLike) -> Path:
    """Join a caller-supplied relative path onto the root and guard the result.

    Absolute inputs are not re-rooted; they are checked as given.

    Raises:
        PathEscapeError: If the joined path resolves outside ``root``
    """
    return ensure_within_root(os.path.join(os.fspath(root), os.fspath(relative_path)), root)
