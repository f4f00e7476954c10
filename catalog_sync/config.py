#!/usr/bin/env python3
"""Shared configuration, authentication, and retry helpers.

Reads settings from the environment (or a local ``.env``) and provides:
- Catalog bearer tokens, either static or via an Entra ID service principal
- ODBC connection strings for the live SQL Server databases
- Exponential-backoff retry decorator
- Logging setup

References:
- azure-identity SPN auth: https://learn.microsoft.com/en-us/python/api/azure-identity/azure.identity.clientsecretcredential
- ODBC Driver 18 keywords: https://learn.microsoft.com/en-us/sql/connect/odbc/dsn-connection-string-attribute
"""
from __future__ import annotations

import functools
import logging
import time
from typing import Any, Callable, Dict, TypeVar

from azure.identity import ClientSecretCredential
from pydantic import Field
from pydantic_settings import BaseSettings

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

LOG_FORMAT = "%(asctime)s  %(name)-28s  %(levelname)-7s  %(message)s"
logger = logging.getLogger("catalog_sync")


def configure_logging(verbose: bool = False) -> None:
    """(Re)configure the root logger for command-line use."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
        force=True,
    )
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

DEFAULT_BULK_BATCH_SIZE = 20000


class Settings(BaseSettings):  # noqa: D101
    # Catalog service
    catalog_server_url: str | None = Field(
        default=None, alias="CATALOG_SERVER_URL")
    catalog_auth_token: str | None = Field(
        default=None, alias="CATALOG_AUTH_TOKEN")
    catalog_token_scope: str | None = Field(
        default=None, alias="CATALOG_TOKEN_SCOPE")
    catalog_request_timeout: int = Field(
        default=60, alias="CATALOG_REQUEST_TIMEOUT")
    catalog_bulk_batch_size: int = Field(
        default=DEFAULT_BULK_BATCH_SIZE, alias="CATALOG_BULK_BATCH_SIZE")

    # Azure Service Principal (catalog behind Entra ID, or SQL SPN auth)
    azure_tenant_id: str | None = Field(
        default=None, alias="AZURE_TENANT_ID")
    azure_client_id: str | None = Field(
        default=None, alias="AZURE_CLIENT_ID")
    azure_client_secret: str | None = Field(
        default=None, alias="AZURE_CLIENT_SECRET")

    # Live SQL Server connections
    sql_odbc_driver: str = Field(
        default="ODBC Driver 18 for SQL Server", alias="SQL_ODBC_DRIVER")
    sql_username: str | None = Field(default=None, alias="SQL_USERNAME")
    sql_password: str | None = Field(default=None, alias="SQL_PASSWORD")
    sql_trusted_connection: bool = Field(
        default=False, alias="SQL_TRUSTED_CONNECTION")
    # "sql" | "trusted" | "service_principal"; derived when unset
    sql_authentication: str | None = Field(
        default=None, alias="SQL_AUTHENTICATION")
    sql_trust_server_certificate: bool = Field(
        default=False, alias="SQL_TRUST_SERVER_CERTIFICATE")

    model_config = {
        "extra": "ignore",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "populate_by_name": True,
    }

    @property
    def uses_service_principal(self) -> bool:
        return bool(self.azure_tenant_id and self.azure_client_id and self.azure_client_secret)

    def dict_safe(self) -> Dict[str, Any]:  # noqa: D401
        """Settings as a dict without secrets (for reports and debug logs)."""
        return self.model_dump(exclude={
            "catalog_auth_token",
            "azure_client_secret",
            "sql_password",
        })


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:  # noqa: D401
    """Return a cached Settings instance (singleton)."""
    return Settings()


# ---------------------------------------------------------------------------
# Credential helpers
# ---------------------------------------------------------------------------

def get_spn_credential(settings: Settings) -> ClientSecretCredential:
    """Service Principal credential for the catalog and SQL endpoints."""
    return ClientSecretCredential(
        tenant_id=settings.azure_tenant_id,
        client_id=settings.azure_client_id,
        client_secret=settings.azure_client_secret,
    )


def make_token_provider(settings: Settings) -> Callable[[], str]:
    """Return a zero-argument callable producing the catalog bearer token.

    A static ``CATALOG_AUTH_TOKEN`` wins. Otherwise an SPN token is acquired
    for ``CATALOG_TOKEN_SCOPE`` on every call (azure-identity caches it).
    """
    if settings.catalog_auth_token:
        token = settings.catalog_auth_token
        return lambda: token

    if settings.uses_service_principal and settings.catalog_token_scope:
        credential = get_spn_credential(settings)
        scope = settings.catalog_token_scope

        def _spn_token() -> str:
            return credential.get_token(scope).token

        return _spn_token

    raise ValueError(
        "No catalog credentials configured. Set CATALOG_AUTH_TOKEN, or "
        "AZURE_TENANT_ID / AZURE_CLIENT_ID / AZURE_CLIENT_SECRET together "
        "with CATALOG_TOKEN_SCOPE."
    )


def build_odbc_connection_string(
    settings: Settings,
    server: str,
    database: str,
) -> str:
    """Build an ODBC connection string for one live database."""
    auth = settings.sql_authentication
    if not auth:
        if settings.sql_trusted_connection:
            auth = "trusted"
        elif settings.sql_username:
            auth = "sql"
        elif settings.uses_service_principal:
            auth = "service_principal"
        else:
            auth = "trusted"

    parts = [
        f"DRIVER={{{settings.sql_odbc_driver}}};",
        f"SERVER={server};",
        f"DATABASE={database};",
    ]
    if auth == "trusted":
        parts.append("Trusted_Connection=yes;")
    elif auth == "sql":
        parts.append(f"UID={settings.sql_username};")
        parts.append(f"PWD={settings.sql_password};")
    elif auth == "service_principal":
        parts.append("Authentication=ActiveDirectoryServicePrincipal;")
        parts.append(f"UID={settings.azure_client_id}@{settings.azure_tenant_id};")
        parts.append(f"PWD={settings.azure_client_secret};")
    else:
        raise ValueError(f"Unknown SQL_AUTHENTICATION mode: {auth!r}")

    parts.append("Encrypt=yes;")
    parts.append(
        "TrustServerCertificate=yes;" if settings.sql_trust_server_certificate
        else "TrustServerCertificate=no;"
    )
    return "".join(parts)


# ---------------------------------------------------------------------------
# Retry decorator with exponential back-off
# ---------------------------------------------------------------------------

T = TypeVar("T")

RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)


def retry(
    max_attempts: int = 4,
    backoff_base: float = 2.0,
    retryable_status_codes: tuple[int, ...] = RETRYABLE_STATUS_CODES,
) -> Callable:
    """Decorator: retries a function that returns a ``requests.Response`` or
    raises on transient HTTP errors.

    Works for both ``requests`` calls and raw functions that may raise.
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            last_exc = None
            result = None
            for attempt in range(1, max_attempts + 1):
                try:
                    result = func(*args, **kwargs)
                    if hasattr(result, "status_code"):
                        if result.status_code in retryable_status_codes and attempt < max_attempts:
                            wait = backoff_base ** attempt
                            logger.warning(
                                "Attempt %d/%d for %s returned %s – retrying in %.1fs",
                                attempt, max_attempts, func.__name__,
                                result.status_code, wait,
                            )
                            time.sleep(wait)
                            continue
                    return result
                except Exception as exc:
                    last_exc = exc
                    # Don't retry on non-transient HTTP errors (400, 401, 403, 404)
                    response = getattr(exc, "response", None)
                    if response is not None and response.status_code not in retryable_status_codes:
                        raise
                    if attempt == max_attempts:
                        raise
                    wait = backoff_base ** attempt
                    logger.warning(
                        "Attempt %d/%d for %s raised %s – retrying in %.1fs",
                        attempt, max_attempts, func.__name__, exc, wait,
                    )
                    time.sleep(wait)
            if last_exc:
                raise last_exc
            return result

        return wrapper

    return decorator
