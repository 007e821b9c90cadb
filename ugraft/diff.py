import logging
import subprocess
from collections import defaultdict
from typing import Iterable
from typing_extensions import Unpack
from tempfile import NamedTemporaryFile as Temp

from . import types
from . import data
from .types import ConflictSide, Entry

logger = logging.getLogger(__name__)

FILE_TYPES = ('blob', 'exec')


def compare_trees(*trees: Unpack[types.TreeMap]) -> Iterable[tuple[types.Path, Unpack[list[Entry | None]]]]:
    entries = defaultdict(lambda: [None] * len(trees))
    for i, tree in enumerate(trees):
        for path, entry in tree.items():
            entries[path][i] = entry

    for path, path_entries in sorted(entries.items()):
        yield path, *path_entries


def merge_trees(t_base: types.TreeMap, t_head: types.TreeMap, t_other: types.TreeMap) -> types.TreeMap:
    """Three-way merge of flattened trees.

    Paths changed on one side only take that side. Paths changed on both
    sides are merged line by line when they are plain files; anything that
    does not merge cleanly becomes a `conflict` entry holding all three
    sides, so the result is always a complete tree. A file on one side where
    the other side has a directory becomes a conflict at the file's path; the
    directory's paths move to `<path>~ours` or `<path>~theirs`.
    """
    tree = {}
    for path, e_base, e_head, e_other in compare_trees(t_base, t_head, t_other):
        merged = merge_entries(e_base, e_head, e_other)
        if merged is None:
            continue
        if merged.type_ == 'conflict' and merged not in (e_head, e_other):
            logger.debug('conflict at %s', path)
        tree[path] = merged

    while collisions := file_directory_collisions(tree):
        path = collisions[0]
        if tree[path].type_ != 'conflict':
            sides = [ConflictSide('base', t_base.get(path)), ConflictSide('ours', t_head.get(path)),
                     ConflictSide('theirs', t_other.get(path))]
            tree[path] = Entry('conflict', write_conflict(sides))
        for inner in [p for p in tree if p.startswith(f'{path}/')]:
            side = 'theirs' if inner in t_other else 'ours'
            tree[f'{path}~{side}{inner[len(path):]}'] = tree.pop(inner)
        logger.debug('file and directory at %s', path)
    return tree


def file_directory_collisions(tree: types.TreeMap) -> list[types.Path]:
    """Paths of `tree` that are also the parent directory of other paths."""
    directories = set()
    for path in tree:
        parts = path.split('/')
        directories.update('/'.join(parts[:i]) for i in range(1, len(parts)))
    return sorted(path for path in tree if path in directories)


def merge_entries(e_base: Entry | None, e_head: Entry | None, e_other: Entry | None) -> Entry | None:
    if e_head == e_other:
        return e_head
    if e_base == e_head:
        return e_other
    if e_base == e_other:
        return e_head

    if _is_file(e_head) and _is_file(e_other) and (e_base is None or _is_file(e_base)):
        merged, clean = merge_blobs(e_base.oid if e_base else None, e_head.oid, e_other.oid)
        if clean:
            # a mode change on one side survives a content merge
            type_ = e_other.type_ if e_base is not None and e_head.type_ == e_base.type_ else e_head.type_
            return Entry(type_, data.hash_object(merged))

    sides = [ConflictSide('base', e_base), ConflictSide('ours', e_head), ConflictSide('theirs', e_other)]
    return Entry('conflict', write_conflict(sides))


def _is_file(entry: Entry | None) -> bool:
    return entry is not None and entry.type_ in FILE_TYPES


def merge_blobs(o_base: types.OID | None, o_head: types.OID, o_other: types.OID) -> tuple[bytes, bool]:
    with Temp() as f_base, Temp() as f_HEAD, Temp() as f_other:
        for oid, f in [(o_base, f_base), (o_head, f_HEAD), (o_other, f_other)]:
            if oid:
                f.write(data.get_object(oid))
                f.flush()

        with subprocess.Popen(
                [
                    'diff3', '-m',
                    '-L', 'ours', f_HEAD.name,
                    '-L', 'base', f_base.name,
                    '-L', 'theirs', f_other.name
                ], stdout=subprocess.PIPE, stderr=subprocess.PIPE
        ) as proc:
            output, errors = proc.communicate()

        # 1 means conflicts, 2 means diff3 gave up (binary content)
        if proc.returncode == 2:
            logger.debug('diff3 could not merge %s and %s: %s', o_head, o_other, errors.decode(errors='replace'))
        return output, proc.returncode == 0


def write_conflict(sides: Iterable[ConflictSide]) -> types.OID:
    lines = ''
    for label, entry in sides:
        if entry is None:
            lines += f'{label} - -\n'
        else:
            lines += f'{label} {entry.type_} {entry.oid}\n'
    return data.hash_object(lines.encode(), 'conflict')


def get_conflict(oid: types.OID) -> list[ConflictSide]:
    sides = []
    for line in data.get_object(oid, 'conflict').decode().splitlines():
        label, type_, side_oid = line.split(' ')
        entry = None if type_ == '-' else Entry(type_, side_oid)
        sides.append(ConflictSide(label, entry))
    return sides


def render_conflict(sides: list[ConflictSide]) -> bytes:
    """Render a conflict entry as a file with diff3 style markers."""
    by_label = {label: entry for label, entry in sides}

    def content(label):
        entry = by_label.get(label)
        if entry is None or entry.type_ not in FILE_TYPES:
            return b''
        blob = data.get_object(entry.oid)
        return blob if not blob or blob.endswith(b'\n') else blob + b'\n'

    return (b'<<<<<<< ours\n' + content('ours') +
            b'||||||| base\n' + content('base') +
            b'=======\n' + content('theirs') +
            b'>>>>>>> theirs\n')
