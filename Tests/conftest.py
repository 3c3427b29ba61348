# Tests/conftest.py
# Shared fixtures: client, mirror and reconciler wired to the fake course store.
#
# Imports
import uuid
#
# Third-Party Imports
import httpx
import pytest
import pytest_asyncio
#
# Local Imports
from edutube_sync.courses_api.client import CourseStoreClient
from edutube_sync.DB.Local_Mirror import LocalMirror
from edutube_sync.Sync.Reconciler import CourseReconciler
from course_store_fake import BASE_URL, TEST_TOKEN, FakeCourseStore
#
########################################################################################################################
#
# Fixtures:

@pytest.fixture
def store():
    return FakeCourseStore()


@pytest.fixture
def transport(store):
    return httpx.MockTransport(store.handler)


@pytest_asyncio.fixture
async def client(transport):
    course_client = CourseStoreClient(BASE_URL, token=TEST_TOKEN, transport=transport)
    yield course_client
    await course_client.close()


@pytest.fixture
def mirror(tmp_path):
    local_mirror = LocalMirror(tmp_path / "mirror.db", client_id=f"test_client_{uuid.uuid4().hex[:8]}")
    yield local_mirror
    local_mirror.close_connection()


@pytest.fixture
def reconciler(client, mirror):
    return CourseReconciler(client, mirror)
