"""Tests for session construction and classified-column fetching."""
from __future__ import annotations

import unittest
from unittest.mock import MagicMock, patch

from catalog_sync.errors import SessionConfigurationError
from catalog_sync.models import FreeTextAttribute
from catalog_sync.session import connect

from helpers import (
    FREE_TEXT_PAYLOAD,
    INFO_TYPE,
    OWNER,
    SENSITIVITY,
    build_categories,
    make_column,
    make_session,
    make_settings,
)


class TestConnect(unittest.TestCase):

    @patch("catalog_sync.session.CatalogClient")
    def test_missing_server_url_fails_before_network(self, mock_client_cls):
        with self.assertRaises(SessionConfigurationError) as ctx:
            connect(make_settings(CATALOG_SERVER_URL=None))
        self.assertIn("CATALOG_SERVER_URL", str(ctx.exception))
        mock_client_cls.assert_not_called()

    @patch("catalog_sync.session.CatalogClient")
    def test_missing_credentials_fails_before_network(self, mock_client_cls):
        settings = make_settings(
            CATALOG_AUTH_TOKEN=None,
            AZURE_TENANT_ID=None,
            AZURE_CLIENT_ID=None,
            AZURE_CLIENT_SECRET=None,
        )
        with self.assertRaises(SessionConfigurationError):
            connect(settings)
        mock_client_cls.assert_not_called()

    @patch("catalog_sync.session.CatalogClient")
    def test_builds_client_and_loads_taxonomy(self, mock_client_cls):
        client = mock_client_cls.return_value
        client.get_tag_categories.return_value = build_categories()
        client.get_free_text_attributes.return_value = [FreeTextAttribute.from_api(p) for p in FREE_TEXT_PAYLOAD]

        session = connect(make_settings(CATALOG_REQUEST_TIMEOUT=15))

        args, kwargs = mock_client_cls.call_args
        self.assertEqual(args[0], "http://catalog.test:15156")
        self.assertEqual(args[1](), "test-token")
        self.assertEqual(kwargs["timeout"], 15)
        self.assertIs(session.client, client)
        self.assertEqual(session.taxonomy.category("Sensitivity").id, 1)
        self.assertEqual(len(session.taxonomy.free_text_attributes), 1)

    def test_uses_supplied_client(self):
        client = MagicMock()
        client.get_tag_categories.return_value = build_categories()
        client.get_free_text_attributes.return_value = []
        session = connect(make_settings(), client=client)
        self.assertIs(session.client, client)
        self.assertTrue(session.taxonomy.has_category("Owner"))


class TestFetchClassifiedColumns(unittest.TestCase):

    def test_classification_derived_from_tags(self):
        client = MagicMock()
        client.get_columns.return_value = [
            make_column("Email", tag_ids={INFO_TYPE["Contact Info"], SENSITIVITY["Confidential"], OWNER["HR"]}),
            make_column("Notes", tag_ids={OWNER["Finance"]}),
            make_column("Ssn", tag_ids={INFO_TYPE["HIPAA"], INFO_TYPE["GDPR"]}),
        ]
        session = make_session(client)

        email, notes, ssn = session.fetch_classified_columns("sql01", "Sales")

        client.get_columns.assert_called_once_with("sql01", "Sales")
        self.assertEqual((email.information_type, email.sensitivity_label), ("Contact Info", "Confidential"))
        self.assertEqual((notes.information_type, notes.sensitivity_label), (None, None))
        # multi-valued: first name in sort order
        self.assertEqual(ssn.information_type, "GDPR")


if __name__ == "__main__":
    unittest.main(verbosity=2)
