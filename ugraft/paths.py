"""Validation and queries for the directory a subtree lives in."""

from . import base, data, types
from .errors import InvalidPrefixError, NoSubtreeAtPrefixError, PrefixConflictError


def parse_prefix(text: str) -> types.Prefix:
    if not text:
        raise InvalidPrefixError(text, 'prefix cannot be empty')
    if text in ('.', '/', './'):
        raise InvalidPrefixError(text, 'prefix cannot be the repository root, use a subdirectory path')
    if text.startswith('/'):
        raise InvalidPrefixError(text, 'prefix must be relative to the repository root')

    prefix = text[:-1] if text.endswith('/') else text
    for part in prefix.split('/'):
        if part in ('', '.', '..'):
            raise InvalidPrefixError(text, f'invalid path component {part!r}')
        if part == data.REPO_DIR_NAME:
            raise InvalidPrefixError(text, f'prefix cannot contain {data.REPO_DIR_NAME!r}')
    return prefix


def check_prefix(prefix: types.Prefix) -> None:
    """Reject the root path, which every prefix operation disallows."""
    if not prefix:
        raise InvalidPrefixError(prefix, 'prefix cannot be the repository root')


def ancestors(path: types.Path) -> list[types.Path]:
    """`a/b/c` -> [`a`, `a/b`, `a/b/c`]"""
    parts = path.split('/')
    return ['/'.join(parts[:i]) for i in range(1, len(parts) + 1)]


def prefix_conflicts_with_file(tree: types.OID, prefix: types.Prefix) -> types.Path | None:
    check_prefix(prefix)
    for path in ancestors(prefix):
        entry = base.get_tree_entry(tree, path)
        if entry is None:
            return None
        if entry.type_ != 'tree':
            return path
    return None


def has_subtree_at_prefix(tree: types.OID, prefix: types.Prefix) -> bool:
    check_prefix(prefix)
    entry = base.get_tree_entry(tree, prefix)
    if entry is None:
        return False
    # an empty directory cannot be stored, so any tree entry has content
    return entry.type_ != 'tree' or entry.oid != base.empty_tree()


def validate_prefix_for_add(tree: types.OID, prefix: types.Prefix) -> None:
    conflict = prefix_conflicts_with_file(tree, prefix)
    if conflict is not None:
        raise PrefixConflictError(prefix, conflict)


def validate_prefix_exists(tree: types.OID, prefix: types.Prefix) -> None:
    if not has_subtree_at_prefix(tree, prefix):
        raise NoSubtreeAtPrefixError(prefix)
