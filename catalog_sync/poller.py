#!/usr/bin/env python3
"""Wait for asynchronous catalog operations (scans) to finish."""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from .client import CatalogClient
from .config import RETRYABLE_STATUS_CODES
from .errors import CatalogRequestError
from .models import OperationStatus
from .session import CatalogSession

logger = logging.getLogger("catalog_sync.poller")

POLL_INTERVAL_SECONDS = 1.0
_TERMINAL = {
    OperationStatus.SUCCEEDED.value: OperationStatus.SUCCEEDED,
    OperationStatus.FAILED.value: OperationStatus.FAILED,
}


def wait_for_operation(
    client: CatalogClient,
    handle: str,
    timeout_seconds: float,
    poll_interval: float = POLL_INTERVAL_SECONDS,
    cancel_event: Optional[threading.Event] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Optional[Callable[[float], None]] = None,
) -> OperationStatus:
    """Poll ``handle`` until it succeeds, fails, the deadline passes, or the caller cancels.

    Returns SUCCEEDED / FAILED as soon as either is reported, TIMEOUT once
    ``start + timeout_seconds`` is reached (whatever the last status), and
    CANCELLED when ``cancel_event`` is set. A status request the catalog
    rejects outright (4xx) raises ``CatalogRequestError``.
    """
    deadline = clock() + timeout_seconds
    polls = 0

    while True:
        if cancel_event is not None and cancel_event.is_set():
            logger.info("  Wait for %s cancelled after %d polls", handle, polls)
            return OperationStatus.CANCELLED

        polls += 1
        try:
            status = client.get_operation_status(handle)
        except CatalogRequestError as exc:
            # 4xx (including 401) ends the wait; 429/5xx and connection failures are polled through
            if exc.status_code is not None and exc.status_code not in RETRYABLE_STATUS_CODES:
                raise
            logger.warning("  Could not check operation status: %s", exc)
            status = "Unknown"
        else:
            logger.debug("  Operation status: %s", status)

        if status in _TERMINAL:
            logger.info("  Operation finished: %s (%d polls)", status, polls)
            return _TERMINAL[status]

        if clock() >= deadline:
            logger.warning("  Operation timed out after %.0fs (last status: %s)", timeout_seconds, status)
            return OperationStatus.TIMEOUT

        if sleep is not None:
            sleep(poll_interval)
        elif cancel_event is not None:
            cancel_event.wait(poll_interval)
        else:
            time.sleep(poll_interval)


def run_scan(
    session: CatalogSession,
    instance_id: str,
    database_name: Optional[str] = None,
    wait: bool = True,
    timeout_seconds: float = 600,
    cancel_event: Optional[threading.Event] = None,
) -> Optional[OperationStatus]:
    """Trigger an instance or database scan and optionally wait for it.

    Returns None when ``wait`` is False.
    """
    if database_name:
        logger.info("=== Triggering scan of %s/%s ===", instance_id, database_name)
        handle = session.client.start_database_scan(instance_id, database_name)
    else:
        logger.info("=== Triggering scan of instance %s ===", instance_id)
        handle = session.client.start_instance_scan(instance_id)
    logger.info("  Scan accepted: %s", handle)

    if not wait:
        return None
    return wait_for_operation(session.client, handle, timeout_seconds, cancel_event=cancel_event)
