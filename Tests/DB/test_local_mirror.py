# test_local_mirror.py
#
# Imports
import json
import uuid
#
# Third-Party Imports
import pytest
#
# Local Imports
from edutube_sync.courses_api.schemas import CourseRecord
from edutube_sync.DB.Local_Mirror import (
    CANONICAL_KEY, LEGACY_KEYS, InputError, LocalMirror, StorageQuotaExceeded
)
#
########################################################################################################################
#
# Helper Functions:

def make_course(course_id, title=None, **fields):
    return CourseRecord(id=course_id, title=title or f"Course {course_id}", **fields)


def legacy_json(*records):
    return json.dumps([r.to_storage() for r in records])


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "mirror.db"


def open_mirror(db_path, **kwargs):
    return LocalMirror(db_path, client_id=f"test_client_{uuid.uuid4().hex[:8]}", **kwargs)


# --- Initialization ---

def test_client_id_is_required(db_path):
    with pytest.raises(ValueError):
        LocalMirror(db_path, client_id="")


def test_fresh_mirror_reads_empty(mirror):
    assert mirror.read_all() == []
    assert mirror.get_raw_slot(CANONICAL_KEY) is None


# --- write_all / read_all ---

def test_write_all_then_read_all(mirror):
    records = [make_course("c1"), make_course("c2", category={"_id": "cat-web", "name": "Web"})]

    mirror.write_all(records)

    assert mirror.read_all() == records


def test_write_all_stores_category_embedded(mirror):
    mirror.write_all([make_course("c1", category={"_id": "cat-web", "name": "Web"})])

    stored = json.loads(mirror.get_raw_slot(CANONICAL_KEY))
    assert stored[0]["category"] == {"_id": "cat-web", "name": "Web"}


def test_write_all_only_touches_canonical_slot_by_default(mirror):
    mirror.write_all([make_course("c1")])

    for legacy_key in LEGACY_KEYS:
        assert mirror.get_raw_slot(legacy_key) is None


def test_write_all_fans_out_identically_when_mirroring_legacy_keys(db_path):
    mirror = open_mirror(db_path, mirror_legacy_keys=True)
    mirror.write_all([make_course("c1"), make_course("c2")])

    contents = {key: mirror.get_raw_slot(key) for key in mirror.slot_keys}
    assert set(contents) == {CANONICAL_KEY, *LEGACY_KEYS}
    assert len(set(contents.values())) == 1
    mirror.close_connection()


def test_write_all_dedupes_identities_keeping_later_copy(mirror):
    mirror.write_all([make_course("c1", "First"), make_course("c2"), make_course("c1", "Second")])

    records = mirror.read_all()
    assert [r.id for r in records] == ["c1", "c2"]
    assert records[0].title == "Second"


def test_write_all_drops_records_without_identity(mirror):
    mirror.write_all([CourseRecord(title="Nobody"), make_course("c1")])

    assert [r.id for r in mirror.read_all()] == ["c1"]


# --- upsert_one ---

def test_upsert_one_replaces_by_id_in_place(mirror):
    mirror.write_all([make_course("c1"), make_course("c2"), make_course("c3")])

    mirror.upsert_one(make_course("c2", "Renamed"))

    records = mirror.read_all()
    assert [r.id for r in records] == ["c1", "c2", "c3"]
    assert records[1].title == "Renamed"


def test_upsert_one_appends_unknown_id(mirror):
    mirror.write_all([make_course("c1")])

    mirror.upsert_one(make_course("c2"))

    assert [r.id for r in mirror.read_all()] == ["c1", "c2"]


def test_upsert_one_never_matches_by_field_equality(mirror):
    mirror.write_all([make_course("c1", "Same Title")])

    mirror.upsert_one(make_course("c2", "Same Title"))

    assert [r.id for r in mirror.read_all()] == ["c1", "c2"]


def test_upsert_one_confirmed_record_replaces_pending_entry(mirror):
    pending = CourseRecord.new_pending(title="Draft")
    mirror.upsert_one(pending)
    assert mirror.read_all()[0].is_pending

    stored = mirror.upsert_one(make_course("c-new", "Draft"), pending_ref=pending.local_ref)

    records = mirror.read_all()
    assert len(records) == 1
    assert records[0].id == "c-new"
    assert stored.local_ref == pending.local_ref


def test_upsert_one_rejects_record_without_identity(mirror):
    with pytest.raises(InputError):
        mirror.upsert_one(CourseRecord(title="Anonymous"))


def test_upsert_one_rejects_pending_copy_of_persisted_course(mirror):
    pending = CourseRecord.new_pending(title="Draft")
    mirror.upsert_one(make_course("c-new", "Draft"), pending_ref=pending.local_ref)

    with pytest.raises(InputError):
        mirror.upsert_one(pending)
    assert len(mirror.read_all()) == 1


# --- remove_one ---

def test_remove_one(mirror):
    mirror.write_all([make_course("c1"), make_course("c2")])

    assert mirror.remove_one("c1") is True
    assert mirror.remove_one("c1") is False
    assert [r.id for r in mirror.read_all()] == ["c2"]


def test_remove_one_pending_by_identity_key(mirror):
    pending = CourseRecord.new_pending(title="Draft")
    mirror.upsert_one(pending)

    assert mirror.remove_one(pending.identity_key()) is True
    assert mirror.read_all() == []


# --- Corruption ---

@pytest.mark.parametrize("raw", ["{not json", json.dumps({"a": 1}), json.dumps([{"_id": "x"}])])
def test_corrupt_slot_reads_as_empty(mirror, raw):
    mirror.put_raw_slot(CANONICAL_KEY, raw)

    assert mirror.read_all() == []
    report = mirror.slot_report()[CANONICAL_KEY]
    assert report["found"] is True
    assert report["error"]


def test_write_all_repairs_corrupt_slot(mirror):
    mirror.put_raw_slot(CANONICAL_KEY, "{not json")

    mirror.write_all([make_course("c1")])

    assert [r.id for r in mirror.read_all()] == ["c1"]


# --- Quota ---

def test_quota_exceeded_leaves_previous_content(db_path):
    mirror = open_mirror(db_path, quota_bytes=600)
    mirror.write_all([make_course("c1", "Small")])

    big = [make_course(f"c{i}", description="x" * 200) for i in range(20)]
    with pytest.raises(StorageQuotaExceeded) as exc_info:
        mirror.write_all(big)

    assert exc_info.value.quota_bytes == 600
    assert exc_info.value.required_bytes > 600
    assert [r.id for r in mirror.read_all()] == ["c1"]
    mirror.close_connection()


def test_quota_applies_to_upsert(db_path):
    mirror = open_mirror(db_path, quota_bytes=400)
    mirror.write_all([make_course("c1", "Small")])

    with pytest.raises(StorageQuotaExceeded):
        mirror.upsert_one(make_course("c2", description="y" * 500))

    assert [r.id for r in mirror.read_all()] == ["c1"]
    mirror.close_connection()


def test_total_bytes_counts_every_slot(db_path):
    mirror = open_mirror(db_path, mirror_legacy_keys=True)
    assert mirror.total_bytes() == 0

    mirror.write_all([make_course("c1", "Small")])

    payload = mirror.get_raw_slot(CANONICAL_KEY)
    expected = sum(len(key.encode("utf-8")) + len(payload.encode("utf-8")) for key in (CANONICAL_KEY, *LEGACY_KEYS))
    assert mirror.total_bytes() == expected
    mirror.close_connection()


def test_rewrite_fits_a_quota_of_exactly_the_current_size(db_path):
    sizing = open_mirror(db_path)
    sizing.write_all([make_course("c1", "Small")])
    used = sizing.total_bytes()
    sizing.close_connection()

    mirror = open_mirror(db_path, quota_bytes=used)
    mirror.write_all([make_course("c1", "Small")])

    assert mirror.total_bytes() == used
    mirror.close_connection()


def test_invalid_quota_rejected(db_path):
    with pytest.raises(ValueError):
        open_mirror(db_path, quota_bytes=0)


# --- Slot report ---

def test_slot_report_lists_every_key(mirror):
    mirror.write_all([make_course("c1", "Alpha"), make_course("c2", "Beta")])

    report = mirror.slot_report()

    assert set(report) == {CANONICAL_KEY, *LEGACY_KEYS}
    assert report[CANONICAL_KEY] == {"found": True, "count": 2, "titles": ["Alpha", "Beta"], "error": None}
    assert report["adminCourses"]["found"] is False


# --- Legacy migration ---

def test_legacy_key_migrates_into_canonical_slot(mirror):
    mirror.put_raw_slot("courses_data", legacy_json(make_course("c1"), make_course("c2")))

    assert mirror.migrate_legacy_keys() == "courses_data"

    assert [r.id for r in mirror.read_all()] == ["c1", "c2"]
    assert mirror.get_raw_slot("courses_data") is None
    assert mirror.migrated_from() == "courses_data"


def test_legacy_migration_runs_when_mirror_opens(db_path):
    seeding = open_mirror(db_path)
    seeding.put_raw_slot("adminCourses", legacy_json(make_course("c7")))
    seeding.close_connection()

    reopened = open_mirror(db_path)

    assert [r.id for r in reopened.read_all()] == ["c7"]
    assert reopened.migrated_from() == "adminCourses"
    reopened.close_connection()


def test_legacy_migration_prefers_first_readable_key(mirror):
    mirror.put_raw_slot("adminCourses", "{broken")
    mirror.put_raw_slot("courses_data", legacy_json(make_course("from-courses-data")))
    mirror.put_raw_slot("user_courses", legacy_json(make_course("from-user-courses")))

    assert mirror.migrate_legacy_keys() == "courses_data"
    assert [r.id for r in mirror.read_all()] == ["from-courses-data"]


def test_legacy_migration_skipped_when_canonical_present(mirror):
    mirror.write_all([make_course("canonical")])
    mirror.put_raw_slot("adminCourses", legacy_json(make_course("legacy")))

    assert mirror.migrate_legacy_keys() is None
    assert [r.id for r in mirror.read_all()] == ["canonical"]


def test_legacy_bare_category_ids_become_embedded(mirror):
    raw = json.dumps([{"_id": "c1", "title": "Legacy", "category": "cat-web"}])
    mirror.put_raw_slot("user_courses", raw)

    mirror.migrate_legacy_keys()

    record = mirror.read_all()[0]
    assert record.category.id == "cat-web"
    assert json.loads(mirror.get_raw_slot(CANONICAL_KEY))[0]["category"] == {"_id": "cat-web", "name": ""}


def test_legacy_keys_kept_when_mirrored(db_path):
    mirror = open_mirror(db_path, mirror_legacy_keys=True)
    mirror.put_raw_slot("adminCourses", legacy_json(make_course("c1")))

    mirror.migrate_legacy_keys()

    for key in mirror.slot_keys:
        assert [r.id for r in LocalMirror._parse_records(mirror.get_raw_slot(key), key)] == ["c1"]
    mirror.close_connection()
