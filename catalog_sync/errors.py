"""Exception types raised by the catalog sync operations."""
from __future__ import annotations

from typing import Optional


class CatalogSyncError(Exception):
    """Base class for every error raised by ``catalog_sync``."""


class SessionConfigurationError(CatalogSyncError):
    """Required connection settings are missing or invalid."""


# ---------------------------------------------------------------------------
# Taxonomy / user input errors
# ---------------------------------------------------------------------------

_RECONNECT_HINT = "If it was just added to the catalog, rerun the connect step to refresh the taxonomy."


class TaxonomyError(CatalogSyncError):
    """A category or tag name could not be resolved against the taxonomy."""


class CategoryNotFoundError(TaxonomyError):
    def __init__(self, category: str):
        self.category = category
        super().__init__(f"Tag category '{category}' does not exist. {_RECONNECT_HINT}")


class TagNotFoundError(TaxonomyError):
    def __init__(self, category: str, tag: str):
        self.category = category
        self.tag = tag
        super().__init__(f"Tag '{tag}' does not exist in category '{category}'. {_RECONNECT_HINT}")


class TooManyTagsError(TaxonomyError):
    def __init__(self, category: str, count: int):
        self.category = category
        self.count = count
        super().__init__(
            f"Category '{category}' is single-valued; {count} tags were requested but only one may be assigned."
        )


class CategoryAlreadyAssignedError(CatalogSyncError):
    """A single-valued category already carries a different tag (merge mode)."""

    def __init__(self, column: str, category: str, existing_tag: str, requested_tag: str):
        self.column = column
        self.category = category
        self.existing_tag = existing_tag
        self.requested_tag = requested_tag
        super().__init__(
            f"Column {column} already has '{existing_tag}' in single-valued category "
            f"'{category}'; refusing to assign '{requested_tag}' in merge mode "
            f"(use overwrite mode to replace it)."
        )


# ---------------------------------------------------------------------------
# Transport errors
# ---------------------------------------------------------------------------

class CatalogRequestError(CatalogSyncError):
    """The catalog service rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        self.status_code = status_code
        self.body = body
        if body:
            message = f"{message}\nResponse body: {body}"
        super().__init__(message)


class CatalogAuthenticationError(CatalogRequestError):
    """HTTP 401 from the catalog service."""

    def __init__(self, url: str):
        super().__init__(
            f"The catalog service at {url} rejected the credentials (401 Unauthorized). "
            "Check that CATALOG_AUTH_TOKEN is a valid, unexpired token, then rerun the connect step.",
            status_code=401,
        )
