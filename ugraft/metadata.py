"""Subtree provenance stored as trailers in commit descriptions.

Nothing about a subtree is stored outside of commit messages, so the
metadata survives any rewrite that keeps descriptions intact. A description
carries its trailers in its last paragraph::

    Add vendor library

    ugraft-subtree-dir: vendor/lib
    ugraft-subtree-mainline: 9f2c...
    ugraft-subtree-split: 41d0...

The `git-subtree-*` spelling written by `git subtree` is recognized as well.
When both spellings name the same field, the native one wins.
"""

import logging
import re
from typing import Iterable

from . import base, types
from .errors import InvalidPrefixError
from .paths import parse_prefix
from .types import SubtreeMetadata

logger = logging.getLogger(__name__)

FIELDS = ('dir', 'mainline', 'split')
NATIVE_KEYS = {field: f'ugraft-subtree-{field}' for field in FIELDS}
LEGACY_KEYS = {field: f'git-subtree-{field}' for field in FIELDS}

_TRAILER_RE = re.compile(r'^(?P<key>[A-Za-z0-9][A-Za-z0-9-]*):\s*(?P<value>.*?)\s*$')
_OID_RE = re.compile(r'^[0-9a-fA-F]{40}([0-9a-fA-F]{24})?$')


def parse_trailers(description: str) -> list[tuple[str, str]]:
    """Key/value pairs of the trailer block, or [] if there is none.

    The trailer block is the last paragraph, and only when every line of it
    is a `Key: value` line or an indented continuation of one.
    """
    paragraphs = re.split(r'\n[ \t]*\n', description.strip('\n'))
    lines = paragraphs[-1].splitlines()

    trailers = []
    for line in lines:
        if line[:1] in (' ', '\t') and trailers:
            key, value = trailers[-1]
            trailers[-1] = (key, f'{value} {line.strip()}')
            continue
        match = _TRAILER_RE.match(line)
        if not match:
            return []
        trailers.append((match['key'], match['value']))
    return trailers


def _parse_value(field: str, value: str):
    if field == 'dir':
        try:
            return parse_prefix(value)
        except InvalidPrefixError:
            return None
    if _OID_RE.match(value):
        return value.lower()
    return None


def parse(description: str) -> SubtreeMetadata:
    native = {}
    legacy = {}
    for key, value in parse_trailers(description):
        key = key.lower()
        for field in FIELDS:
            if key == NATIVE_KEYS[field]:
                found = native
            elif key == LEGACY_KEYS[field]:
                found = legacy
            else:
                continue
            parsed = _parse_value(field, value)
            if parsed is None:
                logger.debug('ignoring malformed trailer %s: %s', key, value)
            else:
                found[field] = parsed

    return SubtreeMetadata(**{**legacy, **native})


def format_trailers(metadata: SubtreeMetadata, legacy: bool = False) -> str:
    keys = LEGACY_KEYS if legacy else NATIVE_KEYS
    return ''.join(f'{keys[field]}: {value}\n'
                   for field, value in zip(FIELDS, metadata)
                   if value is not None)


def add_to_description(metadata: SubtreeMetadata, description: str, legacy: bool = False) -> str:
    trailers = format_trailers(metadata, legacy=legacy)
    if not trailers:
        return description

    description = description.rstrip()
    if not description:
        return trailers
    return f'{description}\n\n{trailers}'


def has_metadata(description: str) -> bool:
    return not parse(description).is_empty()


def find_nearest(oids: Iterable[types.OID], prefix: types.Prefix) -> list[tuple[types.OID, SubtreeMetadata]]:
    """Metadata of the commits at the smallest distance that name `prefix`.

    `oids` are the starting commits; ancestors are visited breadth first
    and the search stops at the first generation with a match.
    """
    generation = list(dict.fromkeys(oids))
    visited = set(generation)
    while generation:
        found = []
        next_generation = []
        for oid in generation:
            commit_ = base.get_commit(oid)
            metadata = parse(commit_.message)
            if metadata.dir == prefix and (metadata.split or metadata.mainline):
                found.append((oid, metadata))
            for parent in commit_.parents:
                if parent not in visited:
                    visited.add(parent)
                    next_generation.append(parent)
        if found:
            return found
        generation = next_generation
    return []
