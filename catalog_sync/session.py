"""Explicit session object: authenticated catalog client plus cached taxonomy.

Every operation takes a ``CatalogSession``. Build one with ``connect()``;
rebuilding the session is the only way to refresh the taxonomy.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from .client import CatalogClient
from .config import Settings, get_settings, make_token_provider
from .errors import SessionConfigurationError
from .models import INFORMATION_TYPE_CATEGORY, SENSITIVITY_CATEGORY, ClassifiedColumn
from .taxonomy import TaxonomyIndex

logger = logging.getLogger("catalog_sync.session")


@dataclass(frozen=True)
class CatalogSession:
    client: CatalogClient
    taxonomy: TaxonomyIndex
    settings: Settings

    def fetch_classified_columns(self, instance_id: str, database_name: str) -> List[ClassifiedColumn]:
        """Fetch a database's catalog columns with information type / label resolved from their tags."""
        columns = self.client.get_columns(instance_id, database_name)
        for column in columns:
            column.information_type = self.taxonomy.single_tag_name(
                column.current_tag_ids, INFORMATION_TYPE_CATEGORY)
            column.sensitivity_label = self.taxonomy.single_tag_name(
                column.current_tag_ids, SENSITIVITY_CATEGORY)
        return columns


def connect(
    settings: Optional[Settings] = None,
    client: Optional[CatalogClient] = None,
) -> CatalogSession:
    """Validate settings, authenticate, and load the taxonomy.

    Raises ``SessionConfigurationError`` before any network call when the
    server URL or credentials are missing.
    """
    settings = settings or get_settings()

    if client is None:
        if not settings.catalog_server_url:
            raise SessionConfigurationError(
                "Missing required setting CATALOG_SERVER_URL (e.g. http://catalog-host:15156)."
            )
        try:
            token_provider = make_token_provider(settings)
        except ValueError as exc:
            raise SessionConfigurationError(str(exc)) from exc
        client = CatalogClient(
            settings.catalog_server_url,
            token_provider,
            timeout=settings.catalog_request_timeout,
        )

    logger.info("Connecting to catalog %s", client.server_url)
    categories = client.get_tag_categories()
    free_text = client.get_free_text_attributes()
    taxonomy = TaxonomyIndex.build(categories, free_text)
    logger.info(
        "Loaded taxonomy: %d tag categories, %d free-text attributes",
        len(taxonomy.category_names), len(free_text),
    )
    return CatalogSession(client=client, taxonomy=taxonomy, settings=settings)
