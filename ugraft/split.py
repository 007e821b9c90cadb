"""Rebuild the history of a prefix as a standalone, root-relative history.

Every commit of the walked range that changes the prefix gets a synthetic
counterpart: same author, committer and message, the extracted subtree as
its tree, and a mainline trailer pointing back at the original. Synthetic
parents are found through a mapping table that is filled in topological
order and thrown away at the end of the call. Nothing in a synthetic commit
depends on the wall clock, so splitting the same range twice yields the
same commit ids.
"""

import logging
from typing import Callable, Iterable, NamedTuple, TypeAlias

from . import base, config, metadata, types
from .errors import AmbiguousSplitBaseError, CyclicHistoryError, NoSyntheticHeadError
from .filter import filter_by_prefix
from .paths import check_prefix, validate_prefix_exists
from .relocate import extract_subtree, prefix_entry
from .types import SubtreeMetadata

logger = logging.getLogger(__name__)

SquashMessagePolicy: TypeAlias = Callable[[types.Prefix, list[tuple[types.OID, types.Commit]]], str]


def _subject(message: str) -> str:
    return message.strip().split('\n', 1)[0]


def latest_message(prefix: types.Prefix, commits: list[tuple[types.OID, types.Commit]]) -> str:
    if not commits:
        return f"Squashed '{prefix}/'"
    return commits[0][1].message


def count_summary(prefix: types.Prefix, commits: list[tuple[types.OID, types.Commit]]) -> str:
    noun = 'commit' if len(commits) == 1 else 'commits'
    lines = [f"Squashed '{prefix}/' from {len(commits)} {noun}", '']
    lines.extend(f'{oid[:10]} {_subject(commit_.message)}' for oid, commit_ in commits)
    return '\n'.join(lines).rstrip()


def concatenate(prefix: types.Prefix, commits: list[tuple[types.OID, types.Commit]]) -> str:
    return '\n\n'.join(commit_.message.strip() for _, commit_ in commits) or f"Squashed '{prefix}/'"


SQUASH_MESSAGE_POLICIES: dict[str, SquashMessagePolicy] = {
    'latest': latest_message,
    'summary': count_summary,
    'concatenate': concatenate,
}


class SplitResult(NamedTuple):
    head: types.OID
    commits: list[types.OID]  # synthetic commits written, parents first
    mapping: dict[types.OID, types.OID]
    rejoin: types.OID | None = None


def find_split_base(local_commit: types.OID, prefix: types.Prefix) -> tuple[dict[types.OID, types.OID], set[types.OID]]:
    """Seed mappings and walk boundaries from the nearest prior split or join.

    A commit naming `prefix` with a split link says that the split commit is
    already part of the synthetic history, and, with a mainline link too,
    that the mainline commit projects onto it. Both commits and their
    ancestors are left out of the walk.
    """
    found = metadata.find_nearest([local_commit], prefix)
    if not found:
        return {}, set()

    links = {(m.split, m.mainline) for _, m in found}
    if len(links) > 1:
        raise AmbiguousSplitBaseError(prefix, [oid for oid, _ in found])

    oid, meta = found[0]
    seeds = {}
    if meta.split:
        seeds[meta.split] = meta.split
        if meta.mainline:
            seeds[meta.mainline] = meta.split
        stops = set(seeds)
    else:
        stops = {meta.mainline}
    logger.debug('split base for %s from %s: seeds %s, stops %s', prefix, oid, seeds, stops)
    return seeds, stops


def walk_range(head: types.OID, prefix: types.Prefix, stops: Iterable[types.OID] = ()) -> list[types.OID]:
    """Commits from `head` back to the split base, parents before children.

    The walk does not enter `stops` or their ancestors, nor commits without
    content at `prefix`.
    """
    excluded = set(base.iter_commits_and_parents(set(stops)))
    in_range_cache = {}

    def in_range(oid):
        if oid not in in_range_cache:
            in_range_cache[oid] = (oid not in excluded and
                                   prefix_entry(base.get_commit(oid).tree, prefix) is not None)
        return in_range_cache[oid]

    order = []
    if not in_range(head):
        return order

    done = set()
    in_progress = {head}
    stack = [(head, iter(base.get_commit(head).parents))]
    while stack:
        oid, parents = stack[-1]
        for parent in parents:
            if parent in done or not in_range(parent):
                continue
            if parent in in_progress:
                raise CyclicHistoryError(parent)
            in_progress.add(parent)
            stack.append((parent, iter(base.get_commit(parent).parents)))
            break
        else:
            stack.pop()
            in_progress.discard(oid)
            done.add(oid)
            order.append(oid)
    return order


class _SyntheticHistory:
    """The mapping table of one split call and the commits built from it."""

    def __init__(self, prefix, empty_commits, seeds, tip, onto=None, annotate=None,
                 legacy_trailers=False, follow_joins=True):
        self.prefix = prefix
        self.tip = tip
        self.empty_commits = empty_commits
        self.onto = onto
        self.annotate = annotate
        self.legacy_trailers = legacy_trailers
        self.follow_joins = follow_joins
        self.mapping: dict[types.OID, types.OID] = dict(seeds)
        # what each processed commit resolves to in the synthetic history
        self.positions: dict[types.OID, tuple[types.OID, ...]] = {oid: (s,) for oid, s in seeds.items()}
        self.created: list[types.OID] = []
        self._trees: dict[types.OID, types.OID] = {}

    def _tree_of(self, synthetic):
        if synthetic not in self._trees:
            self._trees[synthetic] = base.get_commit(synthetic).tree
        return self._trees[synthetic]

    def _position(self, parent, child_metadata):
        if parent in self.positions:
            return self.positions[parent]
        if self.follow_joins and child_metadata.dir == self.prefix and child_metadata.split == parent:
            # a join names its synthetic parent, which maps to itself
            return parent,
        return ()

    def _resolve_parents(self, commit_, child_metadata):
        candidates = []
        for parent in commit_.parents:
            for synthetic in self._position(parent, child_metadata):
                if synthetic not in candidates:
                    candidates.append(synthetic)
        if not candidates and self.onto:
            candidates.append(self.onto)
        return self._independent(candidates)

    @staticmethod
    def _independent(candidates):
        if len(candidates) < 2:
            return candidates
        return [c for c in candidates
                if not any(other != c and base.is_ancestor_of(other, c) for other in candidates)]

    def add(self, item):
        oid, commit_, touches = item
        child_metadata = metadata.parse(commit_.message)
        parents = self._resolve_parents(commit_, child_metadata)

        # the tip always needs one synthetic commit, even where its branches join
        if not touches and self.empty_commits == 'skip' and parents and (len(parents) == 1 or oid != self.tip):
            logger.debug('skip %s, position %s', oid, parents)
            self.positions[oid] = tuple(parents)
            return

        if not touches and self.empty_commits == 'keep' and parents:
            tree = self._tree_of(parents[0])
        else:
            tree = extract_subtree(commit_.tree, self.prefix)

        is_join = child_metadata.dir == self.prefix
        if is_join and self.empty_commits == 'skip' and len(parents) == 1 and self._tree_of(parents[0]) == tree:
            logger.debug('reuse %s for %s', parents[0], oid)
            self.mapping[oid] = parents[0]
            self.positions[oid] = tuple(parents)
            return

        message = commit_.message
        if self.annotate:
            message = f'{self.annotate}{message}'
        message = metadata.add_to_description(SubtreeMetadata(mainline=oid), message,
                                              legacy=self.legacy_trailers)
        synthetic = base.write_commit(tree, parents, message,
                                      author=commit_.author, committer=commit_.committer)
        logger.debug('map %s -> %s (parents %s)', oid, synthetic, parents)
        self._trees[synthetic] = tree
        self.mapping[oid] = synthetic
        self.positions[oid] = (synthetic,)
        self.created.append(synthetic)

    def head(self, oid):
        position = self.positions.get(oid, ())
        if len(position) != 1:
            raise NoSyntheticHeadError(oid, list(position))
        return position[0]


def split(local_commit: types.OID, prefix: types.Prefix, *,
          empty_commits: types.EmptyCommitPolicy,
          squash: bool = False,
          ignore_prior_joins: bool = False,
          onto: types.OID | None = None,
          annotate: str | None = None,
          squash_message: SquashMessagePolicy | None = None,
          rejoin: bool = False,
          signature: types.Signature | None = None,
          legacy_trailers: bool = False,
          jobs: int = 1) -> SplitResult:
    check_prefix(prefix)
    if empty_commits not in ('keep', 'skip'):
        raise ValueError(f"empty_commits must be 'keep' or 'skip', not {empty_commits!r}")
    if squash and squash_message is None:
        raise ValueError('a squash split needs a squash_message policy')

    local = base.get_commit(local_commit)
    validate_prefix_exists(local.tree, prefix)
    if onto is not None:
        base.get_commit(onto)

    if ignore_prior_joins:
        seeds, stops = {}, set()
    else:
        seeds, stops = find_split_base(local_commit, prefix)
    filtered = filter_by_prefix(walk_range(local_commit, prefix, stops), prefix, jobs=jobs)

    if squash:
        touching = [(item.oid, item.commit) for item in reversed(filtered) if item.touches]
        message = metadata.add_to_description(SubtreeMetadata(mainline=local_commit),
                                              squash_message(prefix, touching),
                                              legacy=legacy_trailers)
        head = base.write_commit(extract_subtree(local.tree, prefix), [onto] if onto else [], message,
                                 author=local.author, committer=local.committer)
        created = [head]
        mapping = {local_commit: head}
    else:
        history = _SyntheticHistory(prefix, empty_commits, seeds, local_commit, onto=onto, annotate=annotate,
                                    legacy_trailers=legacy_trailers, follow_joins=not ignore_prior_joins)
        for item in filtered:
            history.add(item)
        head = history.head(local_commit)
        created = history.created
        mapping = history.mapping

    logger.info("split '%s' at %s: %d new commits, head %s", prefix, local_commit, len(created), head)

    rejoin_oid = None
    if rejoin:
        rejoin_oid = write_rejoin(local_commit, head, prefix, signature=signature, legacy_trailers=legacy_trailers)
    return SplitResult(head=head, commits=created, mapping=mapping, rejoin=rejoin_oid)


def write_rejoin(local_commit: types.OID, synthetic_head: types.OID, prefix: types.Prefix,
                 signature: types.Signature | None = None, legacy_trailers: bool = False) -> types.OID:
    signature = signature or config.load_config().signature()
    message = metadata.add_to_description(
        SubtreeMetadata(dir=prefix, mainline=local_commit, split=synthetic_head),
        f"Split '{prefix}/' into commit '{synthetic_head}'",
        legacy=legacy_trailers)
    tree = base.get_commit(local_commit).tree
    oid = base.write_commit(tree, [local_commit, synthetic_head], message, author=signature)
    logger.info('rejoined %s as %s', synthetic_head, oid)
    return oid
