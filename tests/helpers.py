"""Sample taxonomy, columns and sessions shared by the test modules."""
from __future__ import annotations

from typing import Iterable
from unittest.mock import MagicMock

from catalog_sync.config import Settings
from catalog_sync.models import ClassifiedColumn, FreeTextAttribute, TagCategory
from catalog_sync.session import CatalogSession
from catalog_sync.taxonomy import TaxonomyIndex

# Catalog API payloads, as returned by GET /taxonomy/tag-categories
TAG_CATEGORIES_PAYLOAD = [
    {
        "id": 1,
        "name": "Sensitivity",
        "isMultiValued": False,
        "tags": [
            {"id": 10, "name": "Public"},
            {"id": 11, "name": "General"},
            {"id": 12, "name": "Confidential"},
            {"id": 13, "name": "Highly Confidential"},
        ],
    },
    {
        "id": 2,
        "name": "Information Type",
        "isMultiValued": True,
        "tags": [
            {"id": 20, "name": "GDPR"},
            {"id": 21, "name": "HIPAA"},
            {"id": 22, "name": "Contact Info"},
            {"id": 23, "name": "Financial"},
        ],
    },
    {
        "id": 3,
        "name": "Owner",
        "isMultiValued": True,
        "tags": [
            {"id": 30, "name": "Finance"},
            {"id": 31, "name": "HR"},
        ],
    },
    {
        "id": 4,
        "name": "Treatment Intent",
        "isMultiValued": False,
        "tags": [
            {"id": 40, "name": "Mask"},
            {"id": 41, "name": "Static"},
        ],
    },
]

FREE_TEXT_PAYLOAD = [{"id": 100, "name": "Notes"}]

SENSITIVITY = {"Public": 10, "General": 11, "Confidential": 12, "Highly Confidential": 13}
INFO_TYPE = {"GDPR": 20, "HIPAA": 21, "Contact Info": 22, "Financial": 23}
OWNER = {"Finance": 30, "HR": 31}


def build_categories():
    return [TagCategory.from_api(item) for item in TAG_CATEGORIES_PAYLOAD]


def build_index() -> TaxonomyIndex:
    return TaxonomyIndex.build(
        build_categories(),
        [FreeTextAttribute.from_api(item) for item in FREE_TEXT_PAYLOAD],
    )


def make_column(
    column_name: str = "Email",
    tag_ids: Iterable[int] = (),
    table_name: str = "Customers",
    schema_name: str = "dbo",
    column_id: str | None = None,
    information_type: str | None = None,
    sensitivity_label: str | None = None,
) -> ClassifiedColumn:
    return ClassifiedColumn(
        instance_id="sql01",
        database_name="Sales",
        schema_name=schema_name,
        table_name=table_name,
        column_name=column_name,
        column_id=column_id if column_id is not None else f"{table_name}.{column_name}",
        current_tag_ids=frozenset(tag_ids),
        information_type=information_type,
        sensitivity_label=sensitivity_label,
    )


def make_settings(**overrides) -> Settings:
    values = {
        "CATALOG_SERVER_URL": "http://catalog.test:15156",
        "CATALOG_AUTH_TOKEN": "test-token",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_session(client=None, settings: Settings | None = None) -> CatalogSession:
    return CatalogSession(
        client=client or MagicMock(),
        taxonomy=build_index(),
        settings=settings or make_settings(),
    )
