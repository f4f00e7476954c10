#!/usr/bin/env python3
"""Bulk classification: one tag set applied to many columns.

The whole request is validated against the taxonomy before the first
network call. Columns are then sent in consecutive batches of at most
``MAX_BULK_BATCH_SIZE`` identifiers, one PATCH per batch, strictly in order.

A failing batch stops the run without rolling back earlier batches. Each
batch fully replaces the columns' tags, so re-running the same operation is
safe.
"""
from __future__ import annotations

import logging
from typing import Iterator, List, Mapping, Sequence, Set

from .client import CatalogClient
from .config import DEFAULT_BULK_BATCH_SIZE
from .errors import TooManyTagsError
from .models import ClassifiedColumn, TagId
from .session import CatalogSession
from .taxonomy import TaxonomyIndex

logger = logging.getLogger("catalog_sync.bulk")

MAX_BULK_BATCH_SIZE = DEFAULT_BULK_BATCH_SIZE


def resolve_bulk_tag_ids(
    index: TaxonomyIndex,
    categories: Mapping[str, Sequence[str]],
) -> Set[TagId]:
    """Resolve ``{category: [tag, ...]}`` to one id set, validating everything first."""
    tag_ids: Set[TagId] = set()
    for category_name, tag_names in categories.items():
        category = index.category(category_name)
        if not category.is_multi_valued and len(tag_names) > 1:
            raise TooManyTagsError(category.name, len(tag_names))
        for name in tag_names:
            tag_ids.add(index.tag_id(category, name))
    return tag_ids


def partition(items: Sequence, batch_size: int) -> Iterator[Sequence]:
    """Yield consecutive slices of at most ``batch_size`` items."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")
    for start in range(0, len(items), batch_size):
        yield items[start:start + batch_size]


def apply_bulk(
    client: CatalogClient,
    columns: Sequence[ClassifiedColumn],
    tag_ids: Set[TagId],
    batch_size: int = MAX_BULK_BATCH_SIZE,
) -> int:
    """Send the bulk writes; returns the number of batches submitted."""
    if batch_size > MAX_BULK_BATCH_SIZE:
        raise ValueError(f"batch_size may not exceed {MAX_BULK_BATCH_SIZE}, got {batch_size}")
    if not columns or not tag_ids:
        logger.info("Nothing to classify (%d columns, %d tags) – skipping", len(columns), len(tag_ids))
        return 0

    columns = list(columns)
    total = (len(columns) + batch_size - 1) // batch_size
    submitted = 0
    for number, batch in enumerate(partition(columns, batch_size), start=1):
        logger.info("  Bulk batch %d/%d: %d columns", number, total, len(batch))
        client.bulk_classify([column.identifier() for column in batch], tag_ids)
        submitted += 1
    return submitted


def update_columns_bulk(
    session: CatalogSession,
    columns: Sequence[ClassifiedColumn],
    categories: Mapping[str, Sequence[str]],
    batch_size: int | None = None,
) -> int:
    """Validate ``categories`` against the taxonomy, then bulk-apply them to ``columns``."""
    tag_ids = resolve_bulk_tag_ids(session.taxonomy, categories)
    size = batch_size if batch_size is not None else session.settings.catalog_bulk_batch_size
    logger.info(
        "Bulk classifying %d columns with %d tags across %d categories",
        len(columns), len(tag_ids), len(categories),
    )
    return apply_bulk(session.client, columns, tag_ids, batch_size=size)


def columns_for_tables(
    columns: Sequence[ClassifiedColumn],
    schema_name: str | None = None,
    table_name: str | None = None,
    column_names: Sequence[str] | None = None,
) -> List[ClassifiedColumn]:
    """Filter fetched columns down to a schema / table / column selection."""
    wanted = set(column_names or [])
    return [
        column for column in columns
        if (schema_name is None or column.schema_name == schema_name)
        and (table_name is None or column.table_name == table_name)
        and (not wanted or column.column_name in wanted)
    ]
