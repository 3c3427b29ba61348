# test_course_view.py
#
# Imports
import pytest
#
# Local Imports
from edutube_sync.courses_api.schemas import CourseRecord
from edutube_sync.Presentation.course_view import (
    PLACEHOLDER_THUMBNAIL, UNCATEGORIZED, filter_views, project, project_all
)
#
########################################################################################################################
#
# Tests:

def make_record(**fields):
    fields.setdefault("title", "Course")
    return CourseRecord(**fields)


def test_project_renames_id_and_counts():
    record = make_record(
        id="c-1",
        total_students=250,
        modules=[
            {"title": "M1", "lessons": [{"title": "L1"}, {"title": "L2"}]},
            {"title": "M2", "lessons": [{"title": "L3"}]},
            {"title": "M3"},
        ],
    )

    view = project(record)

    assert view.id == "c-1"
    assert view.lessons_count == 3
    assert view.students_count == 250


def test_project_category_display():
    assert project(make_record(category={"_id": "cat-ops", "name": "DevOps"})).category == "DevOps"
    assert project(make_record(category="cat-unknown")).category == UNCATEGORIZED
    assert project(make_record()).category == UNCATEGORIZED


def test_project_placeholder_thumbnail():
    assert project(make_record()).thumbnail == PLACEHOLDER_THUMBNAIL
    assert project(make_record(thumbnail="https://img.test/a.png")).thumbnail == "https://img.test/a.png"


def test_project_pending_record_has_no_id():
    assert project(CourseRecord.new_pending(title="Draft")).id is None


def test_project_is_pure():
    record = make_record(id="c-1", category={"_id": "cat-web", "name": "Web"})
    before = record.model_dump()

    project(record)

    assert record.model_dump() == before


@pytest.fixture
def catalog():
    return project_all([
        make_record(id="1", title="Intro to Python", description="Start coding", level="beginner",
                    category={"_id": "cat-web", "name": "Web Development"}),
        make_record(id="2", title="Docker in Practice", description="Containers for DevOps teams",
                    level="intermediate"),
        make_record(id="3", title="Kubernetes", description="Orchestration", level="advanced",
                    category={"_id": "cat-ops", "name": "DevOps"}),
    ])


def test_filter_search_matches_title_or_description(catalog):
    assert [v.id for v in filter_views(catalog, search="PYTHON")] == ["1"]
    assert [v.id for v in filter_views(catalog, search="orchestr")] == ["3"]


def test_filter_category_by_name_with_text_fallback(catalog):
    # Course 2 has no category, so its description mentioning DevOps counts
    assert [v.id for v in filter_views(catalog, category="devops")] == ["2", "3"]
    assert [v.id for v in filter_views(catalog, category="Web Development")] == ["1"]


def test_filter_level_is_exact(catalog):
    assert [v.id for v in filter_views(catalog, level="advanced")] == ["3"]
    assert filter_views(catalog, level="Advanced") == []


def test_filters_combine(catalog):
    assert [v.id for v in filter_views(catalog, search="o", category="devops", level="intermediate")] == ["2"]


def test_no_filters_returns_everything(catalog):
    assert filter_views(catalog) == catalog
