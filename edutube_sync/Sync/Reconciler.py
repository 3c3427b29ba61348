# Reconciler.py
#########################################
# Course Reconciler
# Merges the course store's catalog into the local mirror and pushes local edits back.
#
# The course store is authoritative: a pull replaces the mirror with the remote listing.
# Records whose remote write has not settled yet are "dirty" and keep their local copy
# through a pull; records confirmed or deleted while a pull was in flight are treated the
# same way, since that pull's listing predates them. A failed push drops the marker, so
# the next pull brings the mirror back in line with the store. Records the store never
# confirmed (no id yet) survive every pull until push_pending creates them remotely.
####
import uuid
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Set
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from ..courses_api.client import CourseStoreClient
from ..courses_api.exceptions import (
    APIResponseError, CourseAPIError, NetworkUnavailable, NotFound, Unauthorized, ValidationFailed
)
from ..courses_api.schemas import CourseRecord
from ..DB.Local_Mirror import LocalMirror, MirrorStorageError
from ..Metrics.metrics_logger import log_counter, log_gauge, timeit
#
#######################################################################################################################
#
# Functions:

@dataclass
class MergeSummary:
    """What one pull did to the mirror, by identity key."""
    added: List[str] = field(default_factory=list)
    changed: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    kept_local: List[str] = field(default_factory=list)
    kept_pending: List[str] = field(default_factory=list)
    suppressed: List[str] = field(default_factory=list)
    remote_count: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.changed or self.removed)


@dataclass
class SyncStatus:
    local_count: int
    remote_count: Optional[int]
    in_sync: bool
    error: Optional[str] = None


def _comparable(record: CourseRecord) -> dict:
    return record.model_dump(mode='json', exclude={'local_ref'})


class CourseReconciler:
    def __init__(self, client: CourseStoreClient, mirror: LocalMirror, protect_in_flight_edits: bool = True):
        self.client = client
        self.mirror = mirror
        self.protect_in_flight_edits = protect_in_flight_edits

        # Logical clock ordering remote confirmations against pull start points
        self._seq = 0
        self._dirty: Counter = Counter()
        self._pending_deletes: Counter = Counter()
        self._confirmed_at: Dict[str, int] = {}
        self._deleted_at: Dict[str, int] = {}
        self._active_pulls: List[int] = []

        self.last_summary: Optional[MergeSummary] = None
        self.last_remote_count: Optional[int] = None
        # Size the mirror should have after the latest pull that reached the store
        self.last_expected_count: Optional[int] = None
        self.last_error: Optional[Exception] = None

    # --- In-flight markers ---
    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq

    def _mark_dirty(self, key: Optional[str]):
        if key:
            self._dirty[key] += 1

    def _clear_dirty(self, key: Optional[str]):
        if key and self._dirty[key] > 0:
            self._dirty[key] -= 1
            if self._dirty[key] == 0:
                del self._dirty[key]

    @property
    def dirty_keys(self) -> Set[str]:
        return set(self._dirty)

    @property
    def pending_deletes(self) -> Set[str]:
        return set(self._pending_deletes)

    def _is_protected(self, key: str, pull_start: int) -> bool:
        if not self.protect_in_flight_edits:
            return False
        return key in self._dirty or self._confirmed_at.get(key, 0) > pull_start

    def _is_suppressed(self, key: str, pull_start: int) -> bool:
        if not self.protect_in_flight_edits:
            return False
        return key in self._pending_deletes or self._deleted_at.get(key, 0) > pull_start

    def _prune_markers(self, threshold: int):
        """Forgets confirmations and deletions every in-flight pull's listing already reflects."""
        self._confirmed_at = {k: seq for k, seq in self._confirmed_at.items() if seq > threshold}
        self._deleted_at = {k: seq for k, seq in self._deleted_at.items() if seq > threshold}

    # --- Pull ---
    def _merge(self, remote: List[CourseRecord], local: List[CourseRecord], pull_start: int):
        summary = MergeSummary(remote_count=len(remote))
        local_by_key = {r.identity_key(): r for r in local if r.identity_key()}

        remote_by_key: Dict[str, CourseRecord] = {}
        for record in remote:
            key = record.identity_key()
            if key is None:
                logger.warning(f"Remote course '{record.title}' has no id; ignoring it.")
                continue
            remote_by_key[key] = record

        merged: List[CourseRecord] = []
        for key, record in remote_by_key.items():
            if self._is_suppressed(key, pull_start):
                summary.suppressed.append(key)
                continue
            local_record = local_by_key.get(key)
            if local_record is not None and self._is_protected(key, pull_start):
                merged.append(local_record)
                summary.kept_local.append(key)
                continue
            merged.append(record)
            if local_record is None:
                summary.added.append(key)
            elif _comparable(local_record) != _comparable(record):
                summary.changed.append(key)

        for key, local_record in local_by_key.items():
            if key in remote_by_key:
                continue
            if local_record.is_pending:
                # Never reached the store, so the listing cannot speak for it
                merged.append(local_record)
                summary.kept_pending.append(key)
            elif self._is_protected(key, pull_start):
                merged.append(local_record)
                summary.kept_local.append(key)
            else:
                summary.removed.append(key)
        return merged, summary

    @timeit(metric_name="reconciler_pull_duration_seconds")
    async def pull_and_merge(self) -> List[CourseRecord]:
        """
        Pulls the remote catalog into the mirror and returns the mirrored collection.

        A remote failure leaves the mirror untouched and returns the local snapshot.
        A local write failure is logged and the snapshot from before the pull returned.
        """
        pull_start = self._seq
        self._active_pulls.append(pull_start)
        self.last_expected_count = None
        try:
            try:
                remote = await self.client.list_courses()
            except CourseAPIError as e:
                self.last_error = e
                logger.warning(f"Pull from the course store failed, keeping the local mirror: {e}")
                log_counter("reconciler_pulls_total", labels={"status": "remote_failure"})
                return self.mirror.read_all()

            self.last_remote_count = len(remote)
            local = self.mirror.read_all()
            merged, summary = self._merge(remote, local, pull_start)
            self.last_expected_count = len(merged)
            try:
                self.mirror.write_all(merged)
            except MirrorStorageError as e:
                self.last_error = e
                logger.error(f"Could not write the pulled catalog to the local mirror: {e}")
                log_counter("reconciler_pulls_total", labels={"status": "local_failure"})
                return local

            self.last_error = None
            self.last_summary = summary
            log_counter("reconciler_pulls_total", labels={"status": "success"})
            log_gauge("reconciler_remote_count", summary.remote_count)
            if summary.has_changes or summary.kept_local or summary.suppressed or summary.kept_pending:
                logger.info(
                    f"Pulled {summary.remote_count} courses: {len(summary.added)} added, "
                    f"{len(summary.changed)} changed, {len(summary.removed)} removed, "
                    f"{len(summary.kept_local)} kept local, {len(summary.suppressed)} pending deletion, "
                    f"{len(summary.kept_pending)} awaiting creation."
                )
            else:
                logger.debug(f"Pulled {summary.remote_count} courses, mirror already current.")
            return merged
        finally:
            self._active_pulls.remove(pull_start)
            self._prune_markers(min(self._active_pulls + [pull_start]))

    # --- Push ---
    async def push(self, record: CourseRecord, token: Optional[str] = None) -> Optional[CourseRecord]:
        """
        Sends one record to the course store and mirrors the confirmed version.

        A record without an id is created; the confirmed record replaces its pending entry.
        Network and server failures are logged and give None, leaving the mirror ahead of
        the store until the next pull. Unauthorized, ValidationFailed and NotFound propagate.
        """
        if record.is_pending and not record.local_ref:
            record = record.model_copy(update={'local_ref': uuid.uuid4().hex})
        key = record.identity_key()
        self._mark_dirty(key)
        try:
            try:
                if record.is_pending:
                    confirmed = await self.client.create_course(record, token=token)
                    stored = self.mirror.upsert_one(confirmed, pending_ref=record.local_ref)
                else:
                    confirmed = await self.client.update_course(record.id, record, token=token)
                    stored = self.mirror.upsert_one(confirmed)
            except (NetworkUnavailable, APIResponseError) as e:
                self.last_error = e
                logger.warning(f"Push of course '{record.title}' ({key}) failed, it will be corrected on the next pull: {e}")
                log_counter("reconciler_pushes_total", labels={"status": "failure"})
                return None
            self._confirmed_at[stored.identity_key()] = self._next_seq()
            log_counter("reconciler_pushes_total", labels={"status": "success"})
            return stored
        finally:
            self._clear_dirty(key)

    async def save(self, record: CourseRecord, token: Optional[str] = None) -> Optional[CourseRecord]:
        """Stages the record in the mirror straight away, then pushes it."""
        if record.is_pending and not record.local_ref:
            record = record.model_copy(update={'local_ref': uuid.uuid4().hex})
        key = record.identity_key()
        self._mark_dirty(key)
        try:
            self.mirror.upsert_one(record)
            return await self.push(record, token=token)
        finally:
            self._clear_dirty(key)

    async def push_pending(self, token: Optional[str] = None) -> List[CourseRecord]:
        """
        Creates every mirrored record the course store has not confirmed yet and returns
        the confirmed versions. Records with a push already in flight are left to it.

        A failed create leaves the record pending for the next attempt. A missing or
        rejected credential stops the pass; a rejected record is skipped.
        """
        confirmed: List[CourseRecord] = []
        pending = [r for r in self.mirror.read_all() if r.is_pending and r.identity_key() not in self._dirty]
        if not pending:
            return confirmed
        logger.info(f"Pushing {len(pending)} locally created course(s) to the course store.")
        for record in pending:
            try:
                stored = await self.push(record, token=token)
            except Unauthorized as e:
                self.last_error = e
                logger.warning(f"Cannot push locally created courses without a valid credential: {e}")
                break
            except ValidationFailed as e:
                self.last_error = e
                logger.warning(f"Course store rejected locally created course '{record.title}', it stays local: {e}")
                continue
            if stored is not None:
                confirmed.append(stored)
        log_counter("reconciler_pending_pushed_total", value=len(confirmed))
        return confirmed

    async def delete_push(self, course_id: str, token: Optional[str] = None) -> bool:
        """
        Removes the course locally, then from the course store.

        A course already gone remotely counts as deleted. On a network or server failure
        the local removal stands and False is returned. Unauthorized propagates.
        """
        self._pending_deletes[course_id] += 1
        try:
            self.mirror.remove_one(course_id)
            try:
                await self.client.delete_course(course_id, token=token)
            except NotFound:
                logger.info(f"Course {course_id} was already gone from the course store.")
            except (NetworkUnavailable, APIResponseError) as e:
                self.last_error = e
                logger.warning(f"Remote delete of course {course_id} failed; local removal stands: {e}")
                log_counter("reconciler_deletes_total", labels={"status": "failure"})
                return False
            self._deleted_at[course_id] = self._next_seq()
            log_counter("reconciler_deletes_total", labels={"status": "success"})
            return True
        finally:
            self._pending_deletes[course_id] -= 1
            if self._pending_deletes[course_id] <= 0:
                del self._pending_deletes[course_id]

    async def verify_sync(self) -> SyncStatus:
        """Compares the mirror's course count with the course store's."""
        local_count = len(self.mirror.read_all())
        try:
            remote_count = await self.client.count_courses()
        except CourseAPIError as e:
            logger.warning(f"Could not verify sync, course store unavailable: {e}")
            return SyncStatus(local_count=local_count, remote_count=None, in_sync=False, error=str(e))
        in_sync = local_count == remote_count
        if not in_sync:
            logger.warning(f"Mirror holds {local_count} courses but the course store has {remote_count}.")
        return SyncStatus(local_count=local_count, remote_count=remote_count, in_sync=in_sync)

#
# End of Reconciler.py
#######################################################################################################################
