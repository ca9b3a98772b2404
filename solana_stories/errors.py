"""Error taxonomy shared by the story pipeline and the HTTP layer.

Every error raised on purpose by the core derives from StoriesError, so the
FastAPI app can map the whole family to responses in one place.
"""

from __future__ import annotations


class StoriesError(RuntimeError):
    """Base class for all SolanaStories errors."""


class InitializationError(StoriesError):
    """Knowledge assets are missing or malformed. Fatal for generation."""


class NotInitializedError(StoriesError):
    """The knowledge base was read before initialize() succeeded."""


class GenerationError(StoriesError):
    """The language model could not be reached or returned an error."""


class ValidationError(StoriesError):
    """A request was malformed. Raised before any persistence side effect."""


class PersistenceError(StoriesError):
    """The conversation store could not be read or written."""


class NotFoundError(StoriesError):
    """A requested library record does not exist for the caller."""
