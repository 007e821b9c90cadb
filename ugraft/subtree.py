"""Subtree operations on the current repository.

Each operation validates its inputs before writing anything, then writes
the new objects and finally moves HEAD (or a branch). They compose the
engines in `split` and `merge` with the refs of the repository and a
backend for the remote ones.
"""

import logging
from typing import NamedTuple

from . import base, data, metadata, types
from .config import Config, load_config
from .errors import NoHeadError, PrefixNotEmptyError, RemoteNotSupportedError
from .merge import MergeResult, merge_into_prefix
from .paths import has_subtree_at_prefix, validate_prefix_exists, validate_prefix_for_add
from .remote import SubtreeBackend, create_backend
from .split import SQUASH_MESSAGE_POLICIES, SplitResult
from .split import split as split_history
from .types import SubtreeMetadata

logger = logging.getLogger(__name__)


class PushResult(NamedTuple):
    split: SplitResult
    repository: str
    ref: str


def _require_head() -> types.OID:
    head = base.get_head()
    if head is None:
        raise NoHeadError()
    return head


def _backend(backend: SubtreeBackend | None, cfg: Config) -> SubtreeBackend:
    return backend if backend is not None else create_backend(cfg.backend)


def find_previous_squash(head: types.OID, prefix: types.Prefix) -> types.OID | None:
    """The latest squash commit for `prefix` reachable from `head`.

    A squash commit names the prefix and the commit it squashed, and its
    tree is exactly that commit's tree.
    """
    for oid in base.iter_commits_and_parents({head}):
        commit_ = base.get_commit(oid)
        meta = metadata.parse(commit_.message)
        if meta.dir != prefix or meta.split is None or meta.mainline is not None:
            continue
        if data.object_exists(meta.split) and base.get_commit(meta.split).tree == commit_.tree:
            return oid
    return None


def squash_incoming(head: types.OID, prefix: types.Prefix, incoming: types.OID, legacy_trailers: bool = False) -> types.OID:
    previous = find_previous_squash(head, prefix)
    incoming_commit = base.get_commit(incoming)
    message = metadata.add_to_description(SubtreeMetadata(dir=prefix, split=incoming),
                                          f"Squashed '{prefix}/' content from commit '{incoming[:10]}'",
                                          legacy=legacy_trailers)
    oid = base.write_commit(incoming_commit.tree, [previous] if previous else [], message,
                            author=incoming_commit.author, committer=incoming_commit.committer)
    logger.debug('squashed %s as %s on top of %s', incoming, oid, previous)
    return oid


def _validate_add(head: types.OID, prefix: types.Prefix) -> None:
    tree = base.get_commit(head).tree
    validate_prefix_for_add(tree, prefix)
    if has_subtree_at_prefix(tree, prefix):
        raise PrefixNotEmptyError(prefix)


def add(prefix: types.Prefix, commit: types.OID, *, squash: bool = False, message: str | None = None,
        signature: types.Signature | None = None, cfg: Config | None = None) -> MergeResult:
    cfg = cfg or load_config()
    head = _require_head()
    _validate_add(head, prefix)
    base.get_commit(commit)

    incoming = squash_incoming(head, prefix, commit, cfg.legacy_trailers) if squash else commit
    result = merge_into_prefix(
        head, incoming, prefix,
        message=message or f"Add '{prefix}/' from commit '{commit}'",
        subtree_metadata=SubtreeMetadata(mainline=head, split=incoming),
        signature=signature or cfg.signature(),
        legacy_trailers=cfg.legacy_trailers)
    base.reset(result.commit)
    return result


def merge(prefix: types.Prefix, commit: types.OID, *, squash: bool = False, message: str | None = None,
          incoming_prefixed: bool = False, signature: types.Signature | None = None,
          cfg: Config | None = None) -> MergeResult:
    cfg = cfg or load_config()
    head = _require_head()
    tree = base.get_commit(head).tree
    validate_prefix_for_add(tree, prefix)
    validate_prefix_exists(tree, prefix)
    base.get_commit(commit)

    incoming = squash_incoming(head, prefix, commit, cfg.legacy_trailers) if squash else commit
    # a commit of the host history carries no subtree history to link to
    link = SubtreeMetadata() if incoming_prefixed else SubtreeMetadata(split=incoming)
    result = merge_into_prefix(
        head, incoming, prefix,
        message=message or f"Merge commit '{commit}' into '{prefix}/'",
        subtree_metadata=link,
        incoming_prefixed=incoming_prefixed,
        signature=signature or cfg.signature(),
        legacy_trailers=cfg.legacy_trailers)
    base.reset(result.commit)
    return result


def fetch(repository: str, ref: str, *, backend: SubtreeBackend | None = None, cfg: Config | None = None) -> types.OID:
    cfg = cfg or load_config()
    return _backend(backend, cfg).fetch(repository, ref)


def add_from_repository(prefix: types.Prefix, repository: str, ref: str, *, squash: bool = False,
                        message: str | None = None, backend: SubtreeBackend | None = None,
                        signature: types.Signature | None = None, cfg: Config | None = None) -> MergeResult:
    cfg = cfg or load_config()
    _validate_add(_require_head(), prefix)
    fetched = fetch(repository, ref, backend=backend, cfg=cfg)
    return add(prefix, fetched, squash=squash, message=message, signature=signature, cfg=cfg)


def pull(prefix: types.Prefix, repository: str, ref: str, *, squash: bool = False, message: str | None = None,
         backend: SubtreeBackend | None = None, signature: types.Signature | None = None,
         cfg: Config | None = None) -> MergeResult:
    cfg = cfg or load_config()
    tree = base.get_commit(_require_head()).tree
    validate_prefix_for_add(tree, prefix)

    fetched = fetch(repository, ref, backend=backend, cfg=cfg)
    if not has_subtree_at_prefix(tree, prefix):
        return add(prefix, fetched, squash=squash, message=message, signature=signature, cfg=cfg)
    return merge(prefix, fetched, squash=squash,
                 message=message or f"Merge '{prefix}/' from {repository} {ref}",
                 signature=signature, cfg=cfg)


def split(prefix: types.Prefix, *, empty_commits: types.EmptyCommitPolicy, commit: types.OID | None = None,
          branch: str | None = None, rejoin: bool = False, squash: bool = False,
          onto: types.OID | None = None, annotate: str | None = None, ignore_prior_joins: bool = False,
          signature: types.Signature | None = None, jobs: int = 1, cfg: Config | None = None) -> SplitResult:
    cfg = cfg or load_config()
    local_commit = commit or _require_head()
    result = split_history(
        local_commit, prefix,
        empty_commits=empty_commits,
        squash=squash,
        ignore_prior_joins=ignore_prior_joins,
        onto=onto,
        annotate=annotate if annotate is not None else cfg.annotate,
        squash_message=SQUASH_MESSAGE_POLICIES[cfg.squash_message],
        rejoin=rejoin,
        signature=signature or (cfg.signature() if rejoin else None),
        legacy_trailers=cfg.legacy_trailers,
        jobs=jobs)

    if branch:
        base.create_branch(branch, result.head)
    if result.rejoin is not None:
        if commit is None or commit == base.get_head():
            base.reset(result.rejoin)
        else:
            logger.warning('rejoin %s was not checked out, %s is not HEAD', result.rejoin, commit)
    return result


def push(prefix: types.Prefix, repository: str, ref: str, *, empty_commits: types.EmptyCommitPolicy,
         commit: types.OID | None = None, force: bool = False, backend: SubtreeBackend | None = None,
         cfg: Config | None = None) -> PushResult:
    cfg = cfg or load_config()
    backend = _backend(backend, cfg)
    if not backend.supports_remote():
        raise RemoteNotSupportedError(backend.name)

    result = split(prefix, empty_commits=empty_commits, commit=commit, cfg=cfg)
    backend.push(repository, result.head, ref, force=force)
    return PushResult(split=result, repository=repository, ref=ref)
