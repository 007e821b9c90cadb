import os
import hashlib
import logging
import tempfile
from contextlib import contextmanager

from ugraft import types
from ugraft.errors import ObjectNotFoundError, ObjectTypeError
from ugraft.types import RefValue

logger = logging.getLogger(__name__)

REPO_DIR_NAME = '.ugraft'
GIT_DIR: str | None = None


@contextmanager
def change_git_dir(new_dir):
    global GIT_DIR
    old_dir = GIT_DIR
    GIT_DIR = f'{new_dir}/{REPO_DIR_NAME}'
    try:
        yield
    finally:
        GIT_DIR = old_dir


def init():
    assert GIT_DIR is not None
    os.makedirs(GIT_DIR, exist_ok=True)
    os.makedirs(f'{GIT_DIR}/objects', exist_ok=True)


def is_repository(path) -> bool:
    return os.path.isdir(f'{path}/{REPO_DIR_NAME}/objects')


def hash_object(data: bytes, type_: types.ObjectType = 'blob') -> types.OID:
    obj = type_.encode() + b'\x00' + data
    oid = hashlib.sha1(obj).hexdigest()
    path = f'{GIT_DIR}/objects/{oid}'
    if os.path.exists(path):
        return oid
    # write then rename, so concurrent writers of the same object never
    # expose a partial file
    fd, tmp_path = tempfile.mkstemp(dir=f'{GIT_DIR}/objects', prefix='.tmp-')
    with os.fdopen(fd, 'wb') as out:
        out.write(obj)
    os.replace(tmp_path, path)
    logger.debug('wrote %s %s', type_, oid)
    return oid


def object_exists(oid: types.OID) -> bool:
    return os.path.isfile(f'{GIT_DIR}/objects/{oid}')


def read_object(oid: types.OID) -> tuple[types.ObjectType, bytes]:
    try:
        with open(f'{GIT_DIR}/objects/{oid}', 'rb') as f:
            obj = f.read()
    except FileNotFoundError:
        raise ObjectNotFoundError(oid) from None

    type_, _, content = obj.partition(b'\x00')
    return type_.decode(), content


def get_object(oid: types.OID, expected: types.ObjectType | None = 'blob') -> bytes:
    type_, content = read_object(oid)
    if expected is not None and type_ != expected:
        raise ObjectTypeError(oid, expected, type_)
    return content


def update_ref(ref, value: RefValue, deref=True):
    ref = _get_ref_internal(ref, deref)[0]

    assert value.value
    if value.symbolic:
        value = f'ref: {value.value}'
    else:
        value = value.value
    ref_path = f'{GIT_DIR}/{ref}'
    os.makedirs(os.path.dirname(ref_path), exist_ok=True)
    with open(ref_path, 'w') as f:
        f.write(value)


def get_ref(ref, deref=True) -> RefValue:
    return _get_ref_internal(ref, deref)[1]


def _get_ref_internal(ref: str, deref: bool) -> tuple[str, RefValue]:
    ref_path = f'{GIT_DIR}/{ref}'
    value = None
    if os.path.isfile(ref_path):
        with open(ref_path) as f:
            value = f.read().strip()

    symbolic = bool(value) and value.startswith('ref:')
    if symbolic:
        value = value.split(':', 1)[1].strip()
        if deref:
            return _get_ref_internal(value, deref=True)
    return ref, RefValue(symbolic=symbolic, value=value)
