"""Fetching and pushing subtree histories.

Backends are chosen once, by `create_backend`, and handed to the operations
that need a remote. The core engines never look at which one they got.

Architecture:
- SubtreeBackend: abstract capability interface
- LocalRepositoryBackend: another ugraft repository on the file system
- NoRemoteBackend: for setups without remotes, every operation fails
"""

import logging
import os
import string
from abc import ABC, abstractmethod

from . import base, data, types
from .errors import (ConfigError, PushRejectedError, RemoteNotFoundError, RemoteNotSupportedError,
                     RemoteRefNotFoundError)
from .types import RefValue

logger = logging.getLogger(__name__)

REMOTE_REFS_BASE = 'refs/heads/'


class SubtreeBackend(ABC):
    name: str

    @abstractmethod
    def fetch(self, repository: str, ref: str) -> types.OID:
        """Import `ref` of `repository` into the local store and return its commit."""
        ...

    @abstractmethod
    def push(self, repository: str, commit: types.OID, ref: str, force: bool = False) -> None:
        """Make `ref` of `repository` point at local `commit`.

        Without `force` only fast-forward updates are accepted.
        """
        ...

    @abstractmethod
    def supports_remote(self) -> bool:
        ...


class NoRemoteBackend(SubtreeBackend):
    name = 'none'

    def fetch(self, repository, ref):
        raise RemoteNotSupportedError(self.name)

    def push(self, repository, commit, ref, force=False):
        raise RemoteNotSupportedError(self.name)

    def supports_remote(self):
        return False


def qualify_ref(ref: str) -> str:
    return ref if ref.startswith('refs/') else f'{REMOTE_REFS_BASE}{ref}'


def _local_root() -> str:
    assert data.GIT_DIR is not None
    return os.path.dirname(data.GIT_DIR)


def _copy_objects(source: str, destination: str, oid: types.OID) -> int:
    """Copy everything reachable from commit `oid` that `destination` lacks."""
    destination_objects = f'{destination}/{data.REPO_DIR_NAME}/objects'
    with data.change_git_dir(source):
        missing = [(object_oid, *data.read_object(object_oid))
                   for object_oid in base.iter_objects_in_commits({oid})
                   if not os.path.exists(f'{destination_objects}/{object_oid}')]
    with data.change_git_dir(destination):
        for object_oid, type_, content in missing:
            written = data.hash_object(content, type_)
            assert written == object_oid, f'Object {object_oid} changed while copying'
    logger.debug('copied %d objects from %s to %s', len(missing), source, destination)
    return len(missing)


class LocalRepositoryBackend(SubtreeBackend):
    name = 'local'

    def _check_repository(self, repository):
        if not data.is_repository(repository):
            raise RemoteNotFoundError(repository)

    def _resolve_remote(self, repository, ref):
        with data.change_git_dir(repository):
            oid = data.get_ref(qualify_ref(ref)).value
            if oid is None and len(ref) == 40 and all(c in string.hexdigits for c in ref) and data.object_exists(ref):
                oid = ref
        if oid is None:
            raise RemoteRefNotFoundError(repository, ref)
        return oid

    def fetch(self, repository, ref):
        self._check_repository(repository)
        oid = self._resolve_remote(repository, ref)
        _copy_objects(repository, _local_root(), oid)
        data.update_ref('FETCH_HEAD', RefValue(symbolic=False, value=oid))
        logger.info('fetched %s %s: %s', repository, ref, oid)
        return oid

    def push(self, repository, commit, ref, force=False):
        self._check_repository(repository)
        qualified = qualify_ref(ref)
        _copy_objects(_local_root(), repository, commit)
        with data.change_git_dir(repository):
            current = data.get_ref(qualified).value
            if current and current != commit and not force and not base.is_ancestor_of(commit, current):
                raise PushRejectedError(repository, qualified, 'non-fast-forward')
            data.update_ref(qualified, RefValue(symbolic=False, value=commit))
        logger.info('pushed %s to %s %s', commit, repository, qualified)

    def supports_remote(self):
        return True


BACKENDS: dict[str, type[SubtreeBackend]] = {
    LocalRepositoryBackend.name: LocalRepositoryBackend,
    NoRemoteBackend.name: NoRemoteBackend,
}


def create_backend(name: str = LocalRepositoryBackend.name) -> SubtreeBackend:
    try:
        return BACKENDS[name]()
    except KeyError:
        raise ConfigError(f"Unknown backend {name!r}, expected one of: {', '.join(BACKENDS)}") from None
