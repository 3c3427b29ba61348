# course_view.py
# Description: Projects course records into the flat view models the catalog screens render.
#
# Imports
from typing import List, Optional, Iterable
#
# 3rd-party Libraries
from pydantic import BaseModel, ConfigDict
#
# Local Imports
from ..courses_api.schemas import CourseRecord
#
#######################################################################################################################
#
# Functions:

PLACEHOLDER_THUMBNAIL = "https://placehold.co/640x360/eee/999?text=Course+Image"
UNCATEGORIZED = "Uncategorized"
UNKNOWN_INSTRUCTOR = "Unknown Instructor"
DEFAULT_LEVEL = "beginner"


class CourseView(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    title: str
    description: str = ""
    instructor: str = UNKNOWN_INSTRUCTOR
    thumbnail: str = PLACEHOLDER_THUMBNAIL
    category: str = UNCATEGORIZED
    category_id: Optional[str] = None
    level: str = DEFAULT_LEVEL
    rating: float = 0
    duration: Optional[str] = None
    students_count: int = 0
    lessons_count: int = 0
    video_url: Optional[str] = None
    featured: bool = False

    @property
    def has_category(self) -> bool:
        return self.category_id is not None and self.category != UNCATEGORIZED


def project(record: CourseRecord) -> CourseView:
    """Pure projection of one record; never touches storage or the network."""
    category_name = record.category.name if record.category and record.category.name else UNCATEGORIZED
    return CourseView(
        id=record.id,
        title=record.title,
        description=record.description or "",
        instructor=record.instructor or UNKNOWN_INSTRUCTOR,
        thumbnail=record.thumbnail or PLACEHOLDER_THUMBNAIL,
        category=category_name,
        category_id=record.category.id if record.category else None,
        level=record.level or DEFAULT_LEVEL,
        rating=record.rating,
        duration=record.duration,
        students_count=record.total_students,
        lessons_count=sum(len(module.lessons) for module in record.modules),
        video_url=record.video_url,
        featured=record.featured,
    )


def project_all(records: Iterable[CourseRecord]) -> List[CourseView]:
    return [project(record) for record in records]


def _contains(haystack: Optional[str], needle: str) -> bool:
    return bool(haystack) and needle in haystack.lower()


def filter_views(
    views: Iterable[CourseView],
    search: Optional[str] = None,
    category: Optional[str] = None,
    level: Optional[str] = None,
) -> List[CourseView]:
    """
    The catalog page filter. `search` matches title or description, ignoring case.
    `category` matches the category name ignoring case; a course without a category
    matches when its title or description mentions it. `level` matches exactly.
    """
    result = list(views)
    if search:
        needle = search.lower()
        result = [v for v in result if _contains(v.title, needle) or _contains(v.description, needle)]
    if category:
        needle = category.lower()
        result = [
            v for v in result
            if (v.category.lower() == needle if v.has_category
                else _contains(v.title, needle) or _contains(v.description, needle))
        ]
    if level:
        result = [v for v in result if v.level == level]
    return result

#
# End of course_view.py
#######################################################################################################################
