"""In-memory lookup over the catalog taxonomy.

Built once per session from ``GET /taxonomy/tag-categories`` and read-only
afterwards. Tag-name maps are built lazily, one category at a time.
"""
from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from .errors import CategoryNotFoundError, TagNotFoundError
from .models import FreeTextAttribute, Tag, TagCategory, TagId

logger = logging.getLogger("catalog_sync.taxonomy")


class TaxonomyIndex:
    """Category name -> category, and (per category) tag name -> tag id."""

    def __init__(
        self,
        categories: Dict[str, TagCategory],
        free_text_attributes: Tuple[FreeTextAttribute, ...] = (),
    ):
        self._categories = categories
        self._free_text_attributes = free_text_attributes
        self._tag_maps: Dict[int, Dict[str, TagId]] = {}
        self._tags_by_id: Dict[TagId, Tuple[TagCategory, Tag]] = {
            tag.id: (category, tag)
            for category in categories.values()
            for tag in category.tags
        }

    @classmethod
    def build(
        cls,
        categories: Iterable[TagCategory],
        free_text_attributes: Iterable[FreeTextAttribute] = (),
    ) -> "TaxonomyIndex":
        by_name: Dict[str, TagCategory] = {}
        for category in categories:
            if category.name in by_name:
                logger.warning("Duplicate tag category '%s' in taxonomy – keeping the first", category.name)
                continue
            by_name[category.name] = category
        logger.debug("Taxonomy index built with %d categories", len(by_name))
        return cls(by_name, tuple(free_text_attributes))

    # -- categories --------------------------------------------------------

    @property
    def category_names(self) -> Tuple[str, ...]:
        return tuple(self._categories)

    @property
    def free_text_attributes(self) -> Tuple[FreeTextAttribute, ...]:
        return self._free_text_attributes

    def category(self, name: str) -> TagCategory:
        try:
            return self._categories[name]
        except KeyError:
            raise CategoryNotFoundError(name) from None

    def has_category(self, name: str) -> bool:
        return name in self._categories

    def category_tag_ids(self, category: TagCategory) -> FrozenSet[TagId]:
        return frozenset(self._tag_map(category).values())

    # -- tags --------------------------------------------------------------

    def _tag_map(self, category: TagCategory) -> Dict[str, TagId]:
        tag_map = self._tag_maps.get(category.id)
        if tag_map is None:
            tag_map = {tag.name: tag.id for tag in category.tags}
            self._tag_maps[category.id] = tag_map
        return tag_map

    def tag_id(self, category: TagCategory, tag_name: str) -> TagId:
        try:
            return self._tag_map(category)[tag_name]
        except KeyError:
            raise TagNotFoundError(category.name, tag_name) from None

    def tag_by_id(self, tag_id: TagId) -> Optional[Tuple[TagCategory, Tag]]:
        """Return ``(category, tag)`` for a tag id, or None when unknown."""
        return self._tags_by_id.get(tag_id)

    def tag_name(self, tag_id: TagId) -> str:
        found = self._tags_by_id.get(tag_id)
        return found[1].name if found else str(tag_id)

    def single_tag_name(self, tag_ids: Iterable[TagId], category_name: str) -> Optional[str]:
        """Name of the (first) tag of ``category_name`` among ``tag_ids``, if any."""
        if category_name not in self._categories:
            return None
        category = self._categories[category_name]
        names = sorted(
            self._tags_by_id[tid][1].name
            for tid in tag_ids
            if tid in self._tags_by_id and self._tags_by_id[tid][0].id == category.id
        )
        return names[0] if names else None
