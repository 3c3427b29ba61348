# Sync_Context.py
#########################################
# Wires one course store client, local mirror, reconciler and poller together for a session.
####
from dataclasses import dataclass
from typing import Optional, Dict, Any
#
# 3rd-Party Imports
import httpx
from loguru import logger
#
# Local Imports
from .Poller import CoursePoller
from .Reconciler import CourseReconciler
from ..config import (
    DEFAULT_CLIENT_ID, get_api_timeout, get_api_token, get_mirror_db_path, get_poll_interval_ms,
    get_quota_bytes, get_setting, load_settings
)
from ..courses_api.client import CourseStoreClient
from ..DB.Local_Mirror import LocalMirror
#
#######################################################################################################################
#
# Functions:

@dataclass
class SyncContext:
    client: CourseStoreClient
    mirror: LocalMirror
    reconciler: CourseReconciler
    poller: CoursePoller
    settings: Dict[str, Any]

    async def close(self):
        await self.poller.aclose()
        await self.client.close()
        self.mirror.close_connection()

    async def __aenter__(self) -> "SyncContext":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


def build_sync_context(
    settings: Optional[Dict[str, Any]] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    client_id: Optional[str] = None,
) -> SyncContext:
    """Builds every sync component from `settings` (the loaded configuration by default)."""
    settings = settings if settings is not None else load_settings()

    client = CourseStoreClient(
        base_url=get_setting("api", "base_url", "http://localhost:5000", settings),
        token=get_api_token(settings),
        timeout=get_api_timeout(settings),
        transport=transport,
        courses_endpoint=get_setting("api", "courses_endpoint", "/api/courses", settings),
    )
    mirror = LocalMirror(
        get_mirror_db_path(settings),
        client_id=client_id or get_setting("sync", "client_id", DEFAULT_CLIENT_ID, settings),
        quota_bytes=get_quota_bytes(settings),
        mirror_legacy_keys=bool(get_setting("sync", "mirror_legacy_keys", False, settings)),
    )
    reconciler = CourseReconciler(
        client,
        mirror,
        protect_in_flight_edits=bool(get_setting("sync", "protect_in_flight_edits", True, settings)),
    )
    poller = CoursePoller(reconciler, interval_ms=get_poll_interval_ms(settings))
    logger.debug(f"Sync context ready for {client.base_url} with mirror {mirror.db_path_str}")
    return SyncContext(client=client, mirror=mirror, reconciler=reconciler, poller=poller, settings=settings)

#
# End of Sync_Context.py
#######################################################################################################################
