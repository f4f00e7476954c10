#!/usr/bin/env python3
"""Per-column tag assignment.

``reconcile`` computes a column's new full tag-id set for one category:

  * multi-valued categories: merge adds the requested tags, overwrite first
    clears the category's existing tags
  * single-valued categories: exactly one tag; merge refuses to replace a
    different existing tag, overwrite replaces it

The catalog write is a full replacement (``PUT /columns/{id}/tags``), so the
result always carries the ids of every other category untouched.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from .errors import (
    CatalogRequestError,
    CatalogSyncError,
    CategoryAlreadyAssignedError,
    TaxonomyError,
    TooManyTagsError,
)
from .models import ClassifiedColumn, TagReconciliation, TagUpdateSummary, UpdateMode
from .session import CatalogSession
from .taxonomy import TaxonomyIndex

logger = logging.getLogger("catalog_sync.tags")


def reconcile(
    index: TaxonomyIndex,
    column: ClassifiedColumn,
    category_name: str,
    tag_names: Sequence[str],
    mode: UpdateMode = UpdateMode.MERGE,
) -> TagReconciliation:
    """Return the column's new tag set after assigning ``tag_names`` in ``category_name``.

    Raises ``CategoryNotFoundError``, ``TagNotFoundError``, ``TooManyTagsError``
    or ``CategoryAlreadyAssignedError``; nothing is applied when any is raised.
    """
    category = index.category(category_name)
    category_ids = index.category_tag_ids(category)
    current = frozenset(column.current_tag_ids)
    working = set(current)

    if category.is_multi_valued:
        requested = [index.tag_id(category, name) for name in tag_names]
        if mode is UpdateMode.OVERWRITE:
            working -= category_ids
        working.update(requested)
    else:
        if len(tag_names) > 1:
            raise TooManyTagsError(category.name, len(tag_names))
        if not tag_names:
            raise TaxonomyError(f"Category '{category.name}' is single-valued; exactly one tag must be requested.")
        new_id = index.tag_id(category, tag_names[0])
        existing = working & category_ids
        if existing and new_id not in existing and mode is UpdateMode.MERGE:
            raise CategoryAlreadyAssignedError(
                column.display_name,
                category.name,
                ", ".join(sorted(index.tag_name(tid) for tid in existing)),
                tag_names[0],
            )
        working -= existing
        working.add(new_id)

    result = frozenset(working)
    return TagReconciliation(tag_ids=result, changed=result != current)


# ---------------------------------------------------------------------------
# Catalog writes
# ---------------------------------------------------------------------------

def update_column_tags(
    session: CatalogSession,
    column: ClassifiedColumn,
    category_name: str,
    tag_names: Sequence[str],
    mode: UpdateMode = UpdateMode.MERGE,
    read_current: bool = True,
) -> TagReconciliation:
    """Reconcile one column and write its new tag set when it changed.

    With ``read_current`` the column's tags are re-read from the catalog
    first, so a stale ``current_tag_ids`` cannot drop other categories.
    """
    if not column.column_id:
        raise CatalogSyncError(f"Column {column.display_name} has no catalog column id")

    if read_current:
        column.current_tag_ids = session.client.get_column_tags(column.column_id)

    outcome = reconcile(session.taxonomy, column, category_name, tag_names, mode)
    if not outcome.changed:
        logger.debug("  %s: tags already up to date", column.display_name)
        return outcome

    session.client.set_column_tags(column.column_id, outcome.tag_ids)
    column.current_tag_ids = outcome.tag_ids
    logger.info("  %s: %s -> %s", column.display_name, category_name, ", ".join(tag_names) or "(cleared)")
    return outcome


def update_columns_tags(
    session: CatalogSession,
    columns: Iterable[ClassifiedColumn],
    category_name: str,
    tag_names: Sequence[str],
    mode: UpdateMode = UpdateMode.MERGE,
    read_current: bool = True,
) -> TagUpdateSummary:
    """Apply ``update_column_tags`` to many columns.

    An unknown category aborts the whole call up front, and catalog transport
    errors end it. Unknown tags and single-valued conflicts are recorded in
    the summary and the loop moves on.
    """
    session.taxonomy.category(category_name)

    summary = TagUpdateSummary()
    for column in columns:
        try:
            outcome = update_column_tags(session, column, category_name, tag_names, mode, read_current)
        except CatalogRequestError:
            raise
        except CatalogSyncError as exc:
            logger.error("  %s: %s", column.display_name, exc)
            summary.failed += 1
            summary.errors.append(f"{column.display_name}: {exc}")
            continue
        if outcome.changed:
            summary.updated += 1
        else:
            summary.unchanged += 1

    logger.info(
        "Tag update results: %d updated, %d unchanged, %d failed",
        summary.updated, summary.unchanged, summary.failed,
    )
    return summary


def requested_tag_names(raw: Optional[Iterable[str]]) -> list:
    """Normalise tag names from user input (strip, drop blanks, keep order, de-duplicate)."""
    seen = []
    for name in raw or []:
        name = name.strip()
        if name and name not in seen:
            seen.append(name)
    return seen
