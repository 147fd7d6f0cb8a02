"""Shared load/commit steps for services that mutate snapshots"""

import logging
from dataclasses import replace

from parental_guard.domain.exceptions import ConcurrentModificationError
from parental_guard.domain.ports import Storage
from parental_guard.domain.verdicts import Outcome, Verdict, rejected
from parental_guard.infrastructure.observability.metrics import storage_conflict_counter

logger = logging.getLogger(__name__)


def account_missing(account_id: str) -> Verdict:
    return rejected(Outcome.ACCOUNT_NOT_FOUND, f"Account {account_id} not found")


def commit(storage: Storage, verdict: Verdict) -> Verdict:
    """
    Persist the snapshot of an applied verdict.

    A compare-and-swap failure becomes a CONFLICT verdict; the caller retries
    the whole operation against a fresh snapshot.
    """
    if not verdict.applied:
        return verdict
    try:
        saved = storage.save(verdict.snapshot)
    except ConcurrentModificationError as e:
        storage_conflict_counter.inc()
        logger.warning("Snapshot save conflict", extra={"account_id": verdict.snapshot.id, "error": str(e)})
        return rejected(Outcome.CONFLICT, str(e), transaction=verdict.transaction)
    return replace(verdict, snapshot=saved)
