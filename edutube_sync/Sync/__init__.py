# edutube_sync/Sync/__init__.py
from .Reconciler import CourseReconciler, MergeSummary, SyncStatus
from .Poller import CoursePoller, DEFAULT_POLL_INTERVAL_MS
from .Sync_Context import SyncContext, build_sync_context

__all__ = [
    "CourseReconciler", "MergeSummary", "SyncStatus",
    "CoursePoller", "DEFAULT_POLL_INTERVAL_MS",
    "SyncContext", "build_sync_context",
]
