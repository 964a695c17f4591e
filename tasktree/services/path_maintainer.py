"""
Materialized path derivation for tasktree.

A task's path is the list of its ancestor ids, root first, excluding the
task itself; its depth is the length of that list. The path is a cache of
the parent_id chain, so it is re-derived on every write that sets
parent_id and rebased for every descendant when a subtree moves.

Stored form: "/" for a root task, "/<a>/<b>/" for a task under a -> b.
Every descendant of task X at path P has a stored path starting with
encode_path(P + [X]).
"""

from typing import List, Optional, Protocol, Sequence, Tuple
from uuid import UUID

from tasktree.logging_config import get_logger
from tasktree.services.errors import PathInconsistencyError

logger = get_logger(__name__)

PATH_SEPARATOR = "/"
ROOT_PATH = PATH_SEPARATOR


class HasPath(Protocol):
    """Anything carrying an id and a decoded ancestor path."""

    id: UUID
    path: List[UUID]


def encode_path(path: Sequence[UUID]) -> str:
    """
    Encode an ancestor list into its stored form.

    Args:
        path: Ancestor ids, root first

    Returns:
        Delimited path string, "/" for an empty path
    """
    return ROOT_PATH + "".join(f"{ancestor_id}{PATH_SEPARATOR}" for ancestor_id in path)


def decode_path(stored: Optional[str]) -> List[UUID]:
    """
    Decode a stored path string into an ancestor list.

    Args:
        stored: Delimited path string (None and "" are treated as root)

    Returns:
        Ancestor ids, root first

    Raises:
        PathInconsistencyError: If a segment is not a valid UUID
    """
    if not stored:
        return []
    try:
        return [UUID(segment) for segment in stored.split(PATH_SEPARATOR) if segment]
    except ValueError as e:
        raise PathInconsistencyError(f"Malformed stored path {stored!r}: {e}") from e


def derive_path(parent: Optional[HasPath]) -> Tuple[List[UUID], int]:
    """
    Compute (path, depth) for a task placed under the given parent.

    Args:
        parent: The resolved parent, or None for a root task

    Returns:
        Tuple of (path, depth)
    """
    if parent is None:
        return [], 0
    path = list(parent.path) + [parent.id]
    return path, len(parent.path) + 1


def subtree_prefix(task_id: UUID, path: Sequence[UUID]) -> str:
    """
    Stored path prefix shared by every descendant of a task.

    Args:
        task_id: The subtree root
        path: The subtree root's own ancestor list

    Returns:
        Stored prefix string
    """
    return encode_path(list(path) + [task_id])


def rebase_path(
    path: Sequence[UUID],
    old_prefix: Sequence[UUID],
    new_prefix: Sequence[UUID]
) -> List[UUID]:
    """
    Replace the leading old_prefix of a descendant's path with new_prefix.

    Args:
        path: The descendant's current ancestor list
        old_prefix: Ancestors up to and including the moved task, before the move
        new_prefix: Ancestors up to and including the moved task, after the move

    Returns:
        The rebased ancestor list

    Raises:
        PathInconsistencyError: If path does not start with old_prefix
    """
    old_prefix = list(old_prefix)
    path = list(path)
    if path[:len(old_prefix)] != old_prefix:
        logger.warning(
            f"Stale path while rebasing: path={encode_path(path)}, "
            f"expected prefix={encode_path(old_prefix)}"
        )
        raise PathInconsistencyError(
            f"Path {encode_path(path)} does not start with {encode_path(old_prefix)}"
        )
    return list(new_prefix) + path[len(old_prefix):]
