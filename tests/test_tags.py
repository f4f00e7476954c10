"""Tests for per-column tag reconciliation and the catalog write-back."""
from __future__ import annotations

import unittest
from unittest.mock import MagicMock

from catalog_sync.errors import (
    CatalogAuthenticationError,
    CategoryAlreadyAssignedError,
    CategoryNotFoundError,
    TagNotFoundError,
    TaxonomyError,
    TooManyTagsError,
)
from catalog_sync.models import UpdateMode
from catalog_sync.tags import reconcile, requested_tag_names, update_column_tags, update_columns_tags

from helpers import INFO_TYPE, OWNER, SENSITIVITY, build_index, make_column, make_session


# ============================================================================
# Multi-valued categories
# ============================================================================

class TestMultiValued(unittest.TestCase):

    def setUp(self):
        self.index = build_index()

    def test_merge_adds_to_existing(self):
        column = make_column(tag_ids={INFO_TYPE["GDPR"]})
        outcome = reconcile(self.index, column, "Information Type", ["HIPAA"], UpdateMode.MERGE)
        self.assertEqual(outcome.tag_ids, {INFO_TYPE["GDPR"], INFO_TYPE["HIPAA"]})
        self.assertTrue(outcome.changed)

    def test_merge_never_removes_existing_tags(self):
        existing = {INFO_TYPE["GDPR"], INFO_TYPE["Financial"]}
        for requested in ([], ["HIPAA"], ["GDPR"], ["Contact Info", "HIPAA"]):
            column = make_column(tag_ids=existing)
            outcome = reconcile(self.index, column, "Information Type", requested, UpdateMode.MERGE)
            self.assertTrue(existing <= outcome.tag_ids, f"merge with {requested} dropped a tag")

    def test_overwrite_replaces_category_tags(self):
        column = make_column(tag_ids={INFO_TYPE["GDPR"], INFO_TYPE["Financial"]})
        outcome = reconcile(self.index, column, "Information Type", ["HIPAA"], UpdateMode.OVERWRITE)
        self.assertEqual(outcome.tag_ids, {INFO_TYPE["HIPAA"]})

    def test_overwrite_with_no_tags_clears_category(self):
        column = make_column(tag_ids={INFO_TYPE["GDPR"], SENSITIVITY["Public"]})
        outcome = reconcile(self.index, column, "Information Type", [], UpdateMode.OVERWRITE)
        self.assertEqual(outcome.tag_ids, {SENSITIVITY["Public"]})
        self.assertTrue(outcome.changed)

    def test_nothing_requested_nothing_existing_is_noop(self):
        column = make_column(tag_ids={SENSITIVITY["Public"]})
        for mode in UpdateMode:
            outcome = reconcile(self.index, column, "Information Type", [], mode)
            self.assertFalse(outcome.changed)
            self.assertEqual(outcome.tag_ids, {SENSITIVITY["Public"]})

    def test_already_present_is_noop(self):
        column = make_column(tag_ids={INFO_TYPE["GDPR"]})
        outcome = reconcile(self.index, column, "Information Type", ["GDPR"], UpdateMode.MERGE)
        self.assertFalse(outcome.changed)

    def test_unknown_tag_aborts_without_partial_application(self):
        column = make_column(tag_ids={INFO_TYPE["GDPR"]})
        with self.assertRaises(TagNotFoundError):
            reconcile(self.index, column, "Information Type", ["HIPAA", "PCI"], UpdateMode.OVERWRITE)
        self.assertEqual(column.current_tag_ids, {INFO_TYPE["GDPR"]})

    def test_unrelated_categories_preserved(self):
        column = make_column(tag_ids={SENSITIVITY["Confidential"], OWNER["HR"], INFO_TYPE["GDPR"]})
        outcome = reconcile(self.index, column, "Information Type", ["HIPAA"], UpdateMode.OVERWRITE)
        self.assertEqual(outcome.tag_ids, {SENSITIVITY["Confidential"], OWNER["HR"], INFO_TYPE["HIPAA"]})


# ============================================================================
# Single-valued categories
# ============================================================================

class TestSingleValued(unittest.TestCase):

    def setUp(self):
        self.index = build_index()

    def test_merge_conflict_names_column(self):
        column = make_column(tag_ids={SENSITIVITY["Public"]})
        with self.assertRaises(CategoryAlreadyAssignedError) as ctx:
            reconcile(self.index, column, "Sensitivity", ["Confidential"], UpdateMode.MERGE)
        message = str(ctx.exception)
        self.assertIn("Sales.dbo.Customers.Email", message)
        self.assertIn("Public", message)
        self.assertEqual(ctx.exception.column, "Sales.dbo.Customers.Email")

    def test_overwrite_replaces_tag(self):
        column = make_column(tag_ids={SENSITIVITY["Public"], OWNER["Finance"]})
        outcome = reconcile(self.index, column, "Sensitivity", ["Confidential"], UpdateMode.OVERWRITE)
        self.assertNotIn(SENSITIVITY["Public"], outcome.tag_ids)
        self.assertIn(SENSITIVITY["Confidential"], outcome.tag_ids)
        self.assertIn(OWNER["Finance"], outcome.tag_ids)
        self.assertTrue(outcome.changed)

    def test_same_tag_is_noop(self):
        column = make_column(tag_ids={SENSITIVITY["Public"]})
        for mode in UpdateMode:
            outcome = reconcile(self.index, column, "Sensitivity", ["Public"], mode)
            self.assertFalse(outcome.changed)

    def test_assign_when_empty(self):
        column = make_column(tag_ids={INFO_TYPE["GDPR"]})
        outcome = reconcile(self.index, column, "Sensitivity", ["General"], UpdateMode.MERGE)
        self.assertEqual(outcome.tag_ids, {INFO_TYPE["GDPR"], SENSITIVITY["General"]})

    def test_too_many_tags(self):
        column = make_column()
        with self.assertRaises(TooManyTagsError):
            reconcile(self.index, column, "Sensitivity", ["Public", "General"], UpdateMode.OVERWRITE)

    def test_no_tags_rejected(self):
        with self.assertRaises(TaxonomyError):
            reconcile(self.index, make_column(), "Sensitivity", [], UpdateMode.OVERWRITE)

    def test_unknown_tag(self):
        with self.assertRaises(TagNotFoundError):
            reconcile(self.index, make_column(), "Sensitivity", ["Secret"], UpdateMode.MERGE)

    def test_exactly_one_category_tag_after_success(self):
        category = self.index.category("Sensitivity")
        category_ids = self.index.category_tag_ids(category)
        for start in [set(), {SENSITIVITY["Public"]}, {SENSITIVITY["General"], OWNER["HR"]}]:
            for name in SENSITIVITY:
                column = make_column(tag_ids=start)
                outcome = reconcile(self.index, column, "Sensitivity", [name], UpdateMode.OVERWRITE)
                self.assertEqual(len(outcome.tag_ids & category_ids), 1)

    def test_overwrite_is_idempotent(self):
        column = make_column(tag_ids={SENSITIVITY["Public"], INFO_TYPE["GDPR"]})
        first = reconcile(self.index, column, "Sensitivity", ["Confidential"], UpdateMode.OVERWRITE)
        column.current_tag_ids = first.tag_ids
        second = reconcile(self.index, column, "Sensitivity", ["Confidential"], UpdateMode.OVERWRITE)
        self.assertEqual(first.tag_ids, second.tag_ids)
        self.assertFalse(second.changed)

    def test_unknown_category(self):
        with self.assertRaises(CategoryNotFoundError):
            reconcile(self.index, make_column(), "Retention", ["1 year"], UpdateMode.MERGE)


# ============================================================================
# Catalog write-back
# ============================================================================

class TestUpdateColumnTags(unittest.TestCase):

    def setUp(self):
        self.client = MagicMock()
        self.session = make_session(self.client)

    def test_reads_current_tags_and_writes_full_set(self):
        self.client.get_column_tags.return_value = frozenset({SENSITIVITY["Public"], OWNER["HR"]})
        column = make_column(column_id="col-1")

        outcome = update_column_tags(self.session, column, "Information Type", ["GDPR"])

        self.client.get_column_tags.assert_called_once_with("col-1")
        self.client.set_column_tags.assert_called_once_with(
            "col-1", frozenset({SENSITIVITY["Public"], OWNER["HR"], INFO_TYPE["GDPR"]})
        )
        self.assertEqual(column.current_tag_ids, outcome.tag_ids)

    def test_no_write_when_unchanged(self):
        self.client.get_column_tags.return_value = frozenset({SENSITIVITY["Public"]})
        update_column_tags(self.session, make_column(), "Sensitivity", ["Public"], UpdateMode.MERGE)
        self.client.set_column_tags.assert_not_called()

    def test_many_columns_continue_after_conflict(self):
        columns = [
            make_column("A", tag_ids={SENSITIVITY["Public"]}),
            make_column("B", tag_ids=set()),
            make_column("C", tag_ids={SENSITIVITY["Confidential"]}),
        ]
        summary = update_columns_tags(
            self.session, columns, "Sensitivity", ["Confidential"], UpdateMode.MERGE, read_current=False,
        )
        self.assertEqual(summary.updated, 1)
        self.assertEqual(summary.unchanged, 1)
        self.assertEqual(summary.failed, 1)
        self.assertIn("Sales.dbo.Customers.A", summary.errors[0])
        self.client.set_column_tags.assert_called_once()

    def test_unknown_category_aborts_before_any_call(self):
        with self.assertRaises(CategoryNotFoundError):
            update_columns_tags(self.session, [make_column()], "Retention", ["x"])
        self.client.get_column_tags.assert_not_called()
        self.client.set_column_tags.assert_not_called()

    def test_transport_failure_is_terminal(self):
        self.client.set_column_tags.side_effect = CatalogAuthenticationError("http://catalog.test")
        columns = [make_column("A"), make_column("B")]
        with self.assertRaises(CatalogAuthenticationError):
            update_columns_tags(self.session, columns, "Owner", ["HR"], read_current=False)
        self.assertEqual(self.client.set_column_tags.call_count, 1)


class TestRequestedTagNames(unittest.TestCase):

    def test_normalises(self):
        self.assertEqual(requested_tag_names([" GDPR ", "", "HIPAA", "GDPR"]), ["GDPR", "HIPAA"])
        self.assertEqual(requested_tag_names(None), [])


if __name__ == "__main__":
    unittest.main(verbosity=2)
