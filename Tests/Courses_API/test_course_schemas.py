# test_course_schemas.py
#
# Imports
import pytest
#
# Third-Party Imports
from pydantic import ValidationError
#
# Local Imports
from edutube_sync.courses_api.schemas import CourseCategory, CourseRecord, normalize_category
from edutube_sync.courses_api.utils import course_to_payload, partial_to_payload, remember_category_names
#
########################################################################################################################
#
# Tests:

def test_bare_category_id_takes_name_from_directory():
    category = normalize_category("cat-ops", {"cat-ops": "DevOps"})
    assert category == CourseCategory(id="cat-ops", name="DevOps")


def test_unknown_bare_category_id_gets_empty_name():
    assert normalize_category("cat-unknown", {}) == CourseCategory(id="cat-unknown", name="")


def test_embedded_category_accepts_either_id_key():
    assert normalize_category({"_id": "c1", "name": "Design"}).id == "c1"
    assert normalize_category({"id": "c2", "name": "Music"}).id == "c2"


def test_name_only_category_uses_name_as_id():
    assert normalize_category({"name": "Design"}) == CourseCategory(id="Design", name="Design")


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_empty_category_is_none(raw):
    assert normalize_category(raw) is None


def test_category_without_id_or_name_is_rejected():
    with pytest.raises(ValidationError):
        CourseRecord.model_validate({"title": "Bad", "category": {"slug": "x"}})


def test_record_validation_uses_category_directory_context():
    record = CourseRecord.model_validate(
        {"_id": "c-1", "title": "T", "category": "cat-data"},
        context={"category_names": {"cat-data": "Data Science"}},
    )
    assert record.category.name == "Data Science"


def test_record_reads_wire_aliases():
    record = CourseRecord.model_validate({
        "_id": "abc",
        "title": "Aliases",
        "totalStudents": 40,
        "videoUrl": "https://video.test/1",
        "createdAt": "2024-03-01T10:00:00.000Z",
        "modules": [{"_id": "m1", "title": "Intro", "lessons": [{"_id": "l1", "title": "Hello", "duration": "5m"}]}],
    })
    assert record.id == "abc"
    assert record.total_students == 40
    assert record.video_url == "https://video.test/1"
    assert record.created_at.year == 2024
    assert record.modules[0].lessons[0].duration == "5m"


def test_blank_id_means_pending():
    record = CourseRecord.model_validate({"_id": "  ", "title": "Pending"})
    assert record.id is None
    assert record.is_pending
    assert record.identity_key() is None


def test_new_pending_has_local_identity_and_no_id():
    record = CourseRecord.new_pending(title="Fresh", id="should-be-dropped")
    assert record.id is None
    assert record.local_ref
    assert record.identity_key() == f"local:{record.local_ref}"


@pytest.mark.parametrize("field, value", [("rating", 6), ("rating", -1), ("total_students", -3), ("level", "expert")])
def test_out_of_range_fields_are_rejected(field, value):
    with pytest.raises(ValidationError):
        CourseRecord(title="Invalid", **{field: value})


def test_storage_form_keeps_embedded_category_and_wire_names():
    record = CourseRecord(id="c-9", title="Stored", category={"_id": "cat-web", "name": "Web"}, total_students=3)
    stored = record.to_storage()
    assert stored["_id"] == "c-9"
    assert stored["category"] == {"_id": "cat-web", "name": "Web"}
    assert stored["totalStudents"] == 3
    assert CourseRecord.model_validate(stored) == record


def test_missing_required_fields():
    record = CourseRecord(title="Only title", instructor="Someone")
    assert record.missing_required_fields() == ["description", "thumbnail", "category", "level"]


def test_course_payload_sends_category_as_id():
    record = CourseRecord(id="c-1", local_ref="ref", title="P", category={"_id": "cat-ops", "name": "DevOps"})
    payload = course_to_payload(record)
    assert payload["category"] == "cat-ops"
    assert "_id" not in payload
    assert "_localRef" not in payload


def test_partial_payload_maps_snake_case_to_wire_names():
    payload = partial_to_payload({
        "title": "X", "total_students": 5, "_localRef": "r", "id": "ignored",
        "category": {"_id": "cat-web", "name": "Web"},
    })
    assert payload == {"title": "X", "totalStudents": 5, "category": "cat-web"}


def test_remember_category_names_only_learns_embedded_pairs():
    directory = remember_category_names(
        [{"category": {"_id": "a", "name": "Alpha"}}, {"category": "b"}, {"category": None}], {}
    )
    assert directory == {"a": "Alpha"}
