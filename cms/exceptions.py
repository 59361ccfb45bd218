"""Errors raised by the article store.

Malformed identifiers and missing rows are not errors: repository
methods report them as ``None``, an empty page, or a silent no-op.
"""


class ArticleStoreError(Exception):
    """Base class for article store failures."""


class ArticleCreationError(ArticleStoreError):
    """Raised when the database does not acknowledge an inserted article."""

    def __init__(self, message: str = "Article could not be created"):
        super().__init__(message)


class RegistryNotInitializedError(ArticleStoreError, RuntimeError):
    """Raised when the article registry is read before ``init()`` ran."""

    def __init__(self) -> None:
        super().__init__("Article repository has not been initialised; call init() first")
