"""Catalog column-classification reconciliation and live SQL Server sync.

Keeps column tags in the catalog service consistent with the taxonomy, and
replays the catalog's information types / sensitivity labels into live
databases (native sensitivity classification or extended properties).

Modules:
    config       – Settings, credentials, ODBC connection strings, retry, logging
    client       – Catalog REST API client
    session      – Authenticated session + cached taxonomy (``connect()``)
    taxonomy     – Category / tag name lookup
    tags         – Per-column tag reconciliation (merge / overwrite)
    bulk         – Batched bulk classification
    identifiers  – Built-in information type / label GUIDs, T-SQL escaping
    live_db      – Live database capability detection and synchronization
    poller       – Scan trigger + status polling
    cli          – ``catalog-sync`` command line
"""
