"""Move tree content between the repository root and a prefix directory.

Trees are content addressed and canonical, so relocation never needs to
rewrite the entries themselves: moving a tree under `a/b` wraps it in one new
tree object per path component, and extracting `a/b` returns the tree object
already stored there. Conflict entries are leaves like any file and travel
with their directory untouched.

    extract_subtree(move_tree_to_prefix(t, p), p) == t
"""

import logging

from . import base, types
from .paths import check_prefix
from .types import Entry

logger = logging.getLogger(__name__)


def move_tree_to_prefix(tree: types.OID, prefix: types.Prefix) -> types.OID:
    check_prefix(prefix)
    empty = base.empty_tree()
    if tree == empty:
        # an empty directory has no representation
        return empty

    oid = tree
    for name in reversed(prefix.split('/')):
        oid = base.write_tree_entries({name: Entry('tree', oid)})
    return oid


def extract_subtree(tree: types.OID, prefix: types.Prefix) -> types.OID:
    check_prefix(prefix)
    entry = base.get_tree_entry(tree, prefix)
    if entry is None or entry.type_ != 'tree':
        # a file exactly at the prefix has no path relative to it
        return base.empty_tree()
    return entry.oid


def prefix_entry(tree: types.OID, prefix: types.Prefix) -> Entry | None:
    check_prefix(prefix)
    return base.get_tree_entry(tree, prefix)


def replace_subtree(tree: types.OID, prefix: types.Prefix, subtree: types.OID) -> types.OID:
    """Return `tree` with everything at `prefix` replaced by `subtree`."""
    check_prefix(prefix)
    empty = base.empty_tree()

    def rebuild(tree_oid, parts):
        entries = {name: Entry(type_, oid) for type_, oid, name in base.iter_tree_entries(tree_oid)}
        name = parts[0]
        if len(parts) == 1:
            new_oid = subtree
        else:
            existing = entries.get(name)
            child = existing.oid if existing is not None and existing.type_ == 'tree' else None
            new_oid = rebuild(child, parts[1:])

        if new_oid == empty:
            entries.pop(name, None)
        else:
            entries[name] = Entry('tree', new_oid)
        return base.write_tree_entries(entries)

    result = rebuild(tree, prefix.split('/'))
    logger.debug('replaced %s in %s with %s -> %s', prefix, tree, subtree, result)
    return result
