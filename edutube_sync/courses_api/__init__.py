# edutube_sync/courses_api/__init__.py
from .client import CourseStoreClient, NO_STORE_HEADERS
from .exceptions import (
    CourseAPIError, NetworkUnavailable, Unauthorized,
    NotFound, ValidationFailed, APIResponseError
)
from .schemas import (
    CourseRecord, CourseCategory, CourseModule, Lesson,
    CourseLevel, COURSE_LEVELS, REQUIRED_CREATE_FIELDS, normalize_category
)

__all__ = [
    "CourseStoreClient", "NO_STORE_HEADERS",
    "CourseAPIError", "NetworkUnavailable", "Unauthorized",
    "NotFound", "ValidationFailed", "APIResponseError",
    "CourseRecord", "CourseCategory", "CourseModule", "Lesson",
    "CourseLevel", "COURSE_LEVELS", "REQUIRED_CREATE_FIELDS", "normalize_category"
]
