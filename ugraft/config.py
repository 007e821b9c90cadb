"""Repository configuration loaded from .ugraft/config.toml.

    [user]
    name = "Ada"
    email = "ada@example.com"

    [subtree]
    annotate = "(split) "
    backend = "local"          # or "none"
    trailers = "native"        # or "legacy" for git-subtree-* keys
    squash_message = "summary" # or "latest", "concatenate"

UGRAFT_AUTHOR_NAME and UGRAFT_AUTHOR_EMAIL override the [user] table.
"""

import os
import time
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from . import data
from .errors import ConfigError
from .types import Signature

CONFIG_FILE_NAME = 'config.toml'
BACKENDS = ('local', 'none')
TRAILER_SPELLINGS = ('native', 'legacy')
SQUASH_MESSAGES = ('latest', 'summary', 'concatenate')


@dataclass(frozen=True)
class Config:
    user_name: str = 'ugraft'
    user_email: str = 'ugraft@localhost'
    annotate: str | None = None
    backend: str = 'local'
    trailers: str = 'native'
    squash_message: str = 'summary'

    @property
    def legacy_trailers(self) -> bool:
        return self.trailers == 'legacy'

    def signature(self, timestamp: int | None = None) -> Signature:
        if timestamp is None:
            timestamp = int(time.time())
        return Signature(self.user_name, self.user_email, timestamp, time.strftime('%z') or '+0000')


def config_path() -> Path | None:
    if data.GIT_DIR is None:
        return None
    return Path(data.GIT_DIR) / CONFIG_FILE_NAME


def _choice(table: dict, key: str, choices: tuple[str, ...], default: str, path: Path) -> str:
    value = table.get(key, default)
    if value not in choices:
        raise ConfigError(f"Invalid {key} {value!r} in {path}, expected one of: {', '.join(choices)}")
    return value


def load_config(path: Path | None = None, environ: Mapping[str, str] | None = None) -> Config:
    """Load the repository config.

    A missing file gives the defaults; a malformed one raises ConfigError.
    """
    environ = os.environ if environ is None else environ
    path = path if path is not None else config_path()

    raw = {}
    if path is not None and path.exists():
        try:
            raw = tomllib.loads(path.read_text(encoding='utf-8'))
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f'Malformed config {path}: {e}') from e

    user = raw.get('user', {})
    subtree = raw.get('subtree', {})
    if not isinstance(user, dict) or not isinstance(subtree, dict):
        raise ConfigError(f'Expected [user] and [subtree] tables in {path}')

    defaults = Config()
    return Config(
        user_name=environ.get('UGRAFT_AUTHOR_NAME') or user.get('name', defaults.user_name),
        user_email=environ.get('UGRAFT_AUTHOR_EMAIL') or user.get('email', defaults.user_email),
        annotate=subtree.get('annotate'),
        backend=_choice(subtree, 'backend', BACKENDS, defaults.backend, path),
        trailers=_choice(subtree, 'trailers', TRAILER_SPELLINGS, defaults.trailers, path),
        squash_message=_choice(subtree, 'squash_message', SQUASH_MESSAGES, defaults.squash_message, path),
    )
