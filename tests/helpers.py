"""Builders for commits and trees used across the test suite.

Everything here writes into whatever store `data.GIT_DIR` points at, so call
these from tests that use the `repo` fixture.
"""

from collections.abc import Iterable

from ugraft import base, data, metadata
from ugraft.types import OID, Entry, Signature, SubtreeMetadata

SIGNATURE = Signature(name='Ada Lovelace', email='ada@example.com', timestamp=1700000000, tz='+0000')


def blob(content: str) -> Entry:
    return Entry('blob', data.hash_object(content.encode()))


def tree(files: dict[str, str]) -> OID:
    return base.write_tree({path: blob(content) for path, content in files.items()})


def commit(files: dict[str, str], parents: Iterable[OID] = (), message: str = 'change',
           meta: SubtreeMetadata | None = None, offset: int = 0) -> OID:
    """Write a commit whose tree holds exactly `files`."""
    if meta is not None:
        message = metadata.add_to_description(meta, message)
    author = SIGNATURE._replace(timestamp=SIGNATURE.timestamp + offset)
    return base.write_commit(tree(files), list(parents), message, author=author)


def files_of(tree_oid: OID) -> dict[str, str]:
    return {path: data.get_object(entry.oid).decode()
            for path, entry in base.get_tree(tree_oid).items()
            if entry.type_ != 'conflict'}


def commit_files(oid: OID) -> dict[str, str]:
    return files_of(base.get_commit(oid).tree)
