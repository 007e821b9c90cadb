"""Three-way merge of a commit into the subtree at a prefix.

The merge runs in the subtree's own frame: the prefix content of the current
head is extracted to the root, merged with the incoming tree against the
best base that can be found, and the result is put back under the prefix
with the rest of the current tree untouched. Conflicts are stored in the
result tree as conflict entries; the merge commit is written either way.
"""

import logging
from typing import NamedTuple

from . import base, config, data, diff, metadata, types
from .errors import NoCommonAncestorError
from .paths import check_prefix, validate_prefix_for_add
from .relocate import extract_subtree, replace_subtree
from .types import SubtreeMetadata

logger = logging.getLogger(__name__)


class MergeResult(NamedTuple):
    commit: types.OID
    tree: types.OID
    conflicts: list[types.Path]


def find_mainline_link(current_head: types.OID, incoming: types.OID) -> types.OID | None:
    """Nearest ancestor of `incoming` that projects a commit of `current_head`'s history."""
    mainline = set(base.iter_commits_and_parents({current_head}))
    for oid in base.iter_commits_and_parents({incoming}):
        link = metadata.parse(base.get_commit(oid).message).mainline
        if link is not None and link in mainline:
            return oid
    return None


def find_linked_base(current_head: types.OID, incoming: types.OID, prefix: types.Prefix) -> types.OID | None:
    """Nearest ancestor of `incoming` that `current_head` already merged into `prefix`.

    Commits of the host history name what they brought into the prefix with
    a split trailer; those commits and their ancestors share the subtree's
    frame with `incoming`.
    """
    linked = set()
    for oid in base.iter_commits_and_parents({current_head}):
        meta = metadata.parse(base.get_commit(oid).message)
        if meta.dir == prefix and meta.split is not None and data.object_exists(meta.split):
            linked.add(meta.split)
    if not linked:
        return None

    linked_history = set(base.iter_commits_and_parents(linked))
    for oid in base.iter_commits_and_parents({incoming}):
        if oid in linked_history:
            return oid
    return None


def find_base_tree(current_head: types.OID, incoming: types.OID, prefix: types.Prefix,
                   incoming_prefixed: bool = False) -> types.OID:
    """Base of the merge, in the subtree's own frame; the empty tree if there is none.

    A commit of the host history shares its frame with `current_head`, so the
    graph merge base is used and its prefix content extracted. A root-relative
    commit only shares a frame with earlier imports into the prefix, or with
    split commits projected from the host history.
    """
    if incoming_prefixed:
        try:
            merge_base = base.get_merge_base(current_head, incoming)
        except NoCommonAncestorError:
            merge_base = None
    else:
        merge_base = (find_linked_base(current_head, incoming, prefix) or
                      find_mainline_link(current_head, incoming))

    if merge_base is None:
        logger.debug('no base for %s and %s, merging against the empty tree', current_head, incoming)
        return base.empty_tree()

    logger.debug('merge base of %s and %s is %s', current_head, incoming, merge_base)
    tree = base.get_commit(merge_base).tree
    return extract_subtree(tree, prefix) if incoming_prefixed else tree


def merge_subtrees(t_base: types.OID, t_ours: types.OID, t_theirs: types.OID) -> tuple[types.OID, list[types.Path]]:
    if t_ours == t_theirs or t_theirs == t_base:
        merged = t_ours
    elif t_ours == t_base:
        merged = t_theirs
    else:
        merged = base.write_tree(diff.merge_trees(base.get_tree(t_base), base.get_tree(t_ours), base.get_tree(t_theirs)))
    conflicts = [path for path, entry in base.get_tree(merged).items() if entry.type_ == 'conflict']
    return merged, conflicts


def merge_into_prefix(current_head: types.OID, incoming: types.OID, prefix: types.Prefix, *,
                      message: str,
                      subtree_metadata: SubtreeMetadata = SubtreeMetadata(),
                      incoming_prefixed: bool = False,
                      signature: types.Signature | None = None,
                      legacy_trailers: bool = False) -> MergeResult:
    check_prefix(prefix)
    current = base.get_commit(current_head)
    validate_prefix_for_add(current.tree, prefix)
    incoming_commit = base.get_commit(incoming)

    t_ours = extract_subtree(current.tree, prefix)
    if t_ours == base.empty_tree():
        # nothing at the prefix yet, every incoming path is an addition
        t_base = t_ours
    else:
        t_base = find_base_tree(current_head, incoming, prefix, incoming_prefixed)
    t_theirs = extract_subtree(incoming_commit.tree, prefix) if incoming_prefixed else incoming_commit.tree

    merged, conflicts = merge_subtrees(t_base, t_ours, t_theirs)
    tree = replace_subtree(current.tree, prefix, merged)

    message = metadata.add_to_description(subtree_metadata._replace(dir=prefix), message, legacy=legacy_trailers)
    signature = signature or config.load_config().signature()
    oid = base.write_commit(tree, [current_head, incoming], message, author=signature)

    conflicts = [f'{prefix}/{path}' for path in conflicts]
    if conflicts:
        logger.warning('merge into %s left %d conflicts', prefix, len(conflicts))
    logger.info("merged %s into '%s' as %s", incoming, prefix, oid)
    return MergeResult(commit=oid, tree=tree, conflicts=conflicts)
