import logging
import os
import re
import stat
import string
from collections import deque
from typing import Iterable

from . import data, diff
from . import types
from .errors import NoCommonAncestorError, TreeShapeError, UnknownRevisionError
from .types import Entry, RefValue

logger = logging.getLogger(__name__)

_SIGNATURE_RE = re.compile(r'^(?P<name>.*) <(?P<email>[^>]*)> (?P<timestamp>\d+) (?P<tz>[+-]\d{4})$')


def init():
    data.init()
    data.update_ref('HEAD', RefValue(symbolic=True, value='refs/heads/master'))


def get_head() -> types.OID | None:
    return data.get_ref('HEAD').value


def checkout(name):
    oid = get_oid(name)
    commit_ = get_commit(oid)
    read_tree(commit_.tree)

    if is_branch(name):
        HEAD = RefValue(symbolic=True, value=f'refs/heads/{name}')
    else:
        HEAD = RefValue(symbolic=False, value=oid)

    data.update_ref('HEAD', HEAD, deref=False)


def is_branch(name):
    return data.get_ref(f'refs/heads/{name}').value is not None


def _format_signature(role: str, signature: types.Signature) -> str:
    return f'{role} {signature.format()}\n'


def _parse_signature(value: str) -> types.Signature:
    match = _SIGNATURE_RE.match(value)
    assert match, f'Malformed signature {value!r}'
    return types.Signature(name=match['name'], email=match['email'],
                           timestamp=int(match['timestamp']), tz=match['tz'])


def get_commit(oid: types.OID) -> types.Commit:
    parents = []
    tree = author = committer = None
    commit_ = data.get_object(oid, 'commit').decode()
    # the header ends at the first empty line, everything after is the message
    header, _, body = commit_.partition('\n\n')
    for line in header.splitlines():
        key, value = line.split(' ', 1)
        if key == 'tree':
            tree = value
        elif key == 'parent':
            parents.append(value)
        elif key == 'author':
            author = _parse_signature(value)
        elif key == 'committer':
            committer = _parse_signature(value)
        else:
            raise AssertionError(f'Unknown field {key}')

    assert tree is not None, 'Expected tree to be defined'
    message = body[:-1] if body.endswith('\n') else body
    return types.Commit(tree=tree, parents=parents, message=message,
                        author=author, committer=committer)


def write_commit(tree: types.OID, parents: Iterable[types.OID], message: str,
                 author: types.Signature | None = None,
                 committer: types.Signature | None = None) -> types.OID:
    commit_ = f'tree {tree}\n'
    for parent in parents:
        commit_ += f'parent {parent}\n'
    if author is not None:
        commit_ += _format_signature('author', author)
    committer = committer or author
    if committer is not None:
        commit_ += _format_signature('committer', committer)

    commit_ += '\n'
    commit_ += f'{message}\n'

    return data.hash_object(commit_.encode(), 'commit')


def write_tree(tree_map: types.TreeMap) -> types.OID:
    tree_as_dict = {}
    for path, entry in tree_map.items():
        path = path.split('/')
        dirpath, filename = path[:-1], path[-1]
        current = tree_as_dict
        # Find the dict for the dictionary of this file
        for i, dirname in enumerate(dirpath):
            current = current.setdefault(dirname, {})
            if type(current) is not dict:
                raise TreeShapeError('/'.join(path[:i + 1]))
        if type(current.get(filename)) is dict:
            raise TreeShapeError('/'.join(path))
        current[filename] = entry

    def write_tree_recursive(tree_dict):
        entries = {}
        for name, value in tree_dict.items():
            if type(value) is dict:
                entries[name] = Entry('tree', write_tree_recursive(value))
            else:
                entries[name] = value
        return write_tree_entries(entries)

    return write_tree_recursive(tree_as_dict)


def write_tree_entries(entries: dict[str, Entry]) -> types.OID:
    tree = ''.join(f'{type_} {oid} {name}\n'
                   for name, oid, type_
                   in sorted((name, e.oid, e.type_) for name, e in entries.items()))
    return data.hash_object(tree.encode(), 'tree')


def empty_tree() -> types.OID:
    return write_tree_entries({})


def iter_tree_entries(oid) -> Iterable[tuple[types.EntryType, types.OID, str]]:
    if not oid:
        return
    tree = data.get_object(oid, 'tree')
    for entry in tree.decode().splitlines():
        type_, oid, name = entry.split(' ', 2)
        yield type_, oid, name


def get_tree(oid: types.OID, base_path: types.Path = '') -> types.TreeMap:
    result = {}
    for type_, oid, name in iter_tree_entries(oid):
        assert '/' not in name
        assert name not in ('..', '.')
        path = base_path + name
        if type_ in ('blob', 'exec', 'conflict'):
            result[path] = Entry(type_, oid)
        elif type_ == 'tree':
            result.update(get_tree(oid, f'{path}/'))
        else:
            raise AssertionError(f'Unknown tree entry {type_}')
    return result


def get_tree_entry(tree_oid: types.OID, path: types.Path) -> Entry | None:
    """Look up the entry stored at `path`, without flattening the tree."""
    entry = Entry('tree', tree_oid)
    for name in filter(None, path.split('/')):
        if entry.type_ != 'tree':
            return None
        for type_, oid, entry_name in iter_tree_entries(entry.oid):
            if entry_name == name:
                entry = Entry(type_, oid)
                break
        else:
            return None
    return entry


def get_working_tree() -> types.TreeMap:
    result = {}
    for root, _, filenames in os.walk('.'):
        for filename in filenames:
            path = os.path.relpath(f'{root}/{filename}')
            if is_ignored(path) or not os.path.isfile(path):
                continue
            with open(path, 'rb') as f:
                fixed_path = path.replace('\\', '/')  # window fix
                type_ = 'exec' if os.stat(path).st_mode & stat.S_IXUSR else 'blob'
                result[fixed_path] = Entry(type_, data.hash_object(f.read()))
    return result


def read_tree(tree_oid):
    _empty_current_directory()
    for path, entry in get_tree(tree_oid, base_path='./').items():
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'wb') as f:
            if entry.type_ == 'conflict':
                f.write(diff.render_conflict(diff.get_conflict(entry.oid)))
            else:
                f.write(data.get_object(entry.oid))
        if entry.type_ == 'exec':
            os.chmod(path, 0o755)


def _empty_current_directory():
    for root, dirnames, filenames in os.walk('.', topdown=False):
        for filename in filenames:
            path = os.path.relpath(f'{root}/{filename}')
            if is_ignored(path) or not os.path.isfile(path):
                continue
            os.remove(path)
        for dirname in dirnames:
            path = os.path.relpath(f'{root}/{dirname}')
            if is_ignored(path):
                continue
            try:
                os.rmdir(path)
            except (FileNotFoundError, OSError):
                pass  # ignored file in dir


def reset(oid):
    logger.debug('moving HEAD to %s', oid)
    data.update_ref('HEAD', RefValue(symbolic=False, value=oid))


def create_branch(name, oid):
    data.update_ref(f'refs/heads/{name}', RefValue(symbolic=False, value=oid))


def get_merge_base(oid1: types.OID, oid2: types.OID) -> types.OID:
    parents1 = set(iter_commits_and_parents({oid1}))

    for oid in iter_commits_and_parents({oid2}):
        if oid in parents1:
            return oid

    raise NoCommonAncestorError(oid1, oid2)


def is_ancestor_of(commit_, maybe_ancestor):
    return maybe_ancestor in iter_commits_and_parents({commit_})


def get_oid(name):
    if name == '@':
        name = 'HEAD'

    refs_to_try = [
        f'{name}',
        f'refs/{name}',
        f'refs/tags/{name}',
        f'refs/heads/{name}'
    ]
    for ref in refs_to_try:
        if oid := data.get_ref(ref).value:
            return oid

    is_hex = all(c in string.hexdigits for c in name)
    if len(name) == 40 and is_hex and data.object_exists(name):
        return name

    raise UnknownRevisionError(name)


def iter_commits_and_parents(oids):
    oids = deque(oids)
    visited = set()

    while oids:
        oid = oids.popleft()
        if not oid or oid in visited:
            continue
        visited.add(oid)
        yield oid

        commit_ = get_commit(oid)
        oids.extendleft(commit_.parents[:1])
        oids.extend(commit_.parents[1:])


def iter_objects_in_commits(oids):
    visited = set()

    def iter_objects_in_tree(source_tree_oid):
        visited.add(source_tree_oid)
        yield source_tree_oid
        for type_, oid_, _ in iter_tree_entries(source_tree_oid):
            if oid_ in visited:
                continue
            if type_ == 'tree':
                yield from iter_objects_in_tree(oid_)
            elif type_ == 'conflict':
                visited.add(oid_)
                yield oid_
                for _, side in diff.get_conflict(oid_):
                    if side is not None and side.oid not in visited:
                        visited.add(side.oid)
                        yield side.oid
            else:
                visited.add(oid_)
                yield oid_

    for oid in iter_commits_and_parents(oids):
        yield oid
        commit_ = get_commit(oid)
        if commit_.tree not in visited:
            yield from iter_objects_in_tree(commit_.tree)


def is_ignored(path):
    path = path.replace('\\', '/')
    return (
            (data.REPO_DIR_NAME in path.split('/')) or
            ('venv' in path.split('/')) or
            ('__pycache__' in path.split('/')) or
            ('.idea' in path.split('/')) or
            ('.git' in path.split('/'))
    )
