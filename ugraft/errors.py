"""Exceptions raised by ugraft.

Every failure is one of four kinds. Validation errors are raised before
anything is written. Structural errors abort an operation on a graph or
object store that cannot be interpreted. Backend errors come from remote
transports and are kept apart so callers can suggest a local fallback.
Configuration errors come from a malformed config file.
"""


class UgraftError(Exception):
    """Base class for every error raised by ugraft."""


class ValidationError(UgraftError):
    pass


class InvalidPrefixError(ValidationError):
    def __init__(self, prefix, reason):
        super().__init__(f"Invalid prefix path '{prefix}': {reason}")
        self.prefix = prefix
        self.reason = reason


class PrefixConflictError(ValidationError):
    def __init__(self, prefix, path):
        super().__init__(f"Cannot use prefix '{prefix}': a file exists at '{path}'")
        self.prefix = prefix
        self.path = path


class NoSubtreeAtPrefixError(ValidationError):
    def __init__(self, prefix):
        super().__init__(f"No subtree found at '{prefix}'")
        self.prefix = prefix


class PrefixNotEmptyError(ValidationError):
    def __init__(self, prefix):
        super().__init__(f"Prefix '{prefix}' already contains content")
        self.prefix = prefix


class UnknownRevisionError(ValidationError):
    def __init__(self, name):
        super().__init__(f'Unknown revision {name}')
        self.name = name


class NoHeadError(ValidationError):
    def __init__(self):
        super().__init__('Repository has no commits yet')


class StructuralError(UgraftError):
    pass


class NoCommonAncestorError(StructuralError):
    def __init__(self, oid1, oid2):
        super().__init__(f'No common ancestor between {oid1} and {oid2}')
        self.oids = (oid1, oid2)


class AmbiguousSplitBaseError(StructuralError):
    def __init__(self, prefix, candidates):
        listed = ', '.join(sorted(candidates))
        super().__init__(f"Ambiguous split base for '{prefix}': {listed}")
        self.prefix = prefix
        self.candidates = candidates


class CyclicHistoryError(StructuralError):
    def __init__(self, oid):
        super().__init__(f'Commit {oid} is its own ancestor')
        self.oid = oid


class NoSyntheticHeadError(StructuralError):
    def __init__(self, oid, candidates):
        listed = ', '.join(candidates) or 'none'
        super().__init__(f'Commit {oid} has no single synthetic counterpart: {listed}')
        self.oid = oid
        self.candidates = candidates


class ObjectNotFoundError(StructuralError):
    def __init__(self, oid):
        super().__init__(f'Object {oid} not found')
        self.oid = oid


class ObjectTypeError(StructuralError):
    def __init__(self, oid, expected, found):
        super().__init__(f'Expected {expected}, got {found} for object {oid}')
        self.oid = oid


class TreeShapeError(StructuralError):
    def __init__(self, path):
        super().__init__(f"Path '{path}' is both a file and a directory")
        self.path = path


class BackendError(UgraftError):
    hint = 'Use a local revision instead, e.g. `ugraft subtree merge PREFIX REV`.'


class RemoteNotSupportedError(BackendError):
    def __init__(self, backend):
        super().__init__(f'Remote operations are not supported by the {backend} backend')


class RemoteNotFoundError(BackendError):
    def __init__(self, repository):
        super().__init__(f'Remote repository not found: {repository}')
        self.repository = repository


class RemoteRefNotFoundError(BackendError):
    def __init__(self, repository, ref):
        super().__init__(f'Remote ref not found: {ref} in {repository}')
        self.repository = repository
        self.ref = ref


class PushRejectedError(BackendError):
    def __init__(self, repository, ref, reason):
        super().__init__(f"Push to '{repository}' rejected for {ref}: {reason}")
        self.repository = repository
        self.ref = ref


class ConfigError(UgraftError):
    pass
