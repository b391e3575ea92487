"""Error taxonomy shared by the service, adapters and entry points."""


class ErrataError(Exception):
    """Base class for all Errata errors."""


class MissingIdentifierError(ErrataError):
    """A required identifier (user id, card id) was not supplied by the caller."""


class RepositoryError(ErrataError):
    """The persistence layer failed; no analysis is run on partial data."""


class ConfigurationError(ErrataError):
    """The resolved configuration cannot build the requested backend."""


class NotFoundError(ErrataError):
    """The referenced record (e.g. a review session) does not exist."""
