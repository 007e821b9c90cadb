import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, NamedTuple

from . import base, types
from .relocate import prefix_entry
from .paths import check_prefix

logger = logging.getLogger(__name__)


class FilteredCommit(NamedTuple):
    oid: types.OID
    commit: types.Commit
    touches: bool


def commit_touches_prefix(commit_: types.Commit, prefix: types.Prefix) -> bool:
    """True if the content at or under `prefix` differs from any parent's.

    A commit without parents is compared against the empty tree.
    """
    entry = prefix_entry(commit_.tree, prefix)
    if not commit_.parents:
        return entry is not None
    for parent in commit_.parents:
        if prefix_entry(base.get_commit(parent).tree, prefix) != entry:
            return True
    return False


def _classify(oid: types.OID, prefix: types.Prefix) -> FilteredCommit:
    commit_ = base.get_commit(oid)
    return FilteredCommit(oid, commit_, commit_touches_prefix(commit_, prefix))


def filter_by_prefix(ancestors: Iterable[types.OID], prefix: types.Prefix, jobs: int = 1) -> list[FilteredCommit]:
    check_prefix(prefix)
    ancestors = list(ancestors)
    if jobs > 1 and len(ancestors) > 1:
        # classification only reads objects, and map() keeps input order
        with ThreadPoolExecutor(max_workers=jobs) as executor:
            result = list(executor.map(lambda oid: _classify(oid, prefix), ancestors))
    else:
        result = [_classify(oid, prefix) for oid in ancestors]

    logger.debug('%d of %d commits touch %s', sum(c.touches for c in result), len(result), prefix)
    return result
