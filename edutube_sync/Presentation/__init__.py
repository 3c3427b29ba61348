# edutube_sync/Presentation/__init__.py
from .course_view import CourseView, project, project_all, filter_views, PLACEHOLDER_THUMBNAIL, UNCATEGORIZED

__all__ = ["CourseView", "project", "project_all", "filter_views", "PLACEHOLDER_THUMBNAIL", "UNCATEGORIZED"]
