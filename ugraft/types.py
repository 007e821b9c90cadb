from typing import TypeAlias, NamedTuple, Literal

Path: TypeAlias = str  # a slash separated path relative to the repository root
Prefix: TypeAlias = Path  # a Path that is never the root
OID: TypeAlias = str  # hash
ObjectType: TypeAlias = Literal['blob', 'tree', 'commit', 'conflict']
EntryType: TypeAlias = Literal['blob', 'exec', 'tree', 'conflict']
EmptyCommitPolicy: TypeAlias = Literal['keep', 'skip']


class Entry(NamedTuple):
    type_: EntryType
    oid: OID


TreeMap: TypeAlias = dict[Path, Entry]  # leaf entries only, keyed by full path


class ConflictSide(NamedTuple):
    label: str
    entry: Entry | None  # None when the side deleted the path


class Signature(NamedTuple):
    name: str
    email: str
    timestamp: int
    tz: str = '+0000'

    def format(self) -> str:
        return f'{self.name} <{self.email}> {self.timestamp} {self.tz}'


class Commit(NamedTuple):
    tree: OID
    parents: list[OID]
    message: str
    author: Signature | None = None
    committer: Signature | None = None


class RefValue(NamedTuple):
    symbolic: bool
    value: OID


class SubtreeMetadata(NamedTuple):
    dir: Prefix | None = None
    mainline: OID | None = None  # this commit is a projection of `mainline`
    split: OID | None = None  # this commit joins synthetic history `split`

    def is_empty(self) -> bool:
        return self.dir is None and self.mainline is None and self.split is None
