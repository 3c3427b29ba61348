# edutube_sync/courses_api/utils.py
#
#
# Imports
from typing import Dict, Any, Optional, Mapping, Union
#
# 3rd-party Libraries
from loguru import logger
from pydantic import BaseModel
#
# Local Imports
from .schemas import CourseCategory, CourseRecord
#
#######################################################################################################################
#
# Functions:

# Client-only keys that must never be sent to the course store
CLIENT_ONLY_KEYS = ('_localRef', 'local_ref')

# snake_case field names accepted in partial updates, mapped to their wire names
_WIRE_NAMES = {
    'total_students': 'totalStudents',
    'video_url': 'videoUrl',
    'created_at': 'createdAt',
    'updated_at': 'updatedAt',
}


def category_to_wire(category: Any) -> Any:
    """
    The course store keeps category as a reference, so the wire form is the category id
    (falling back to the name for name-only categories).
    """
    if isinstance(category, CourseCategory):
        return category.id or category.name
    if isinstance(category, Mapping):
        return category.get('_id') or category.get('id') or category.get('name')
    return category


def course_to_payload(record: CourseRecord) -> Dict[str, Any]:
    """
    Converts a CourseRecord into the JSON body for a create/update request.
    Drops client-only keys and the identity (identity travels in the URL).
    """
    payload = record.model_dump(mode='json', by_alias=True, exclude_none=True, exclude={'id', 'local_ref'})
    if record.category is not None:
        payload['category'] = category_to_wire(record.category)
    return payload


def partial_to_payload(partial: Union[CourseRecord, BaseModel, Mapping[str, Any]]) -> Dict[str, Any]:
    """Normalizes a partial update (record or plain mapping) into a wire payload."""
    if isinstance(partial, CourseRecord):
        return course_to_payload(partial)
    if isinstance(partial, BaseModel):
        partial = partial.model_dump(mode='json', by_alias=True, exclude_none=True)

    payload: Dict[str, Any] = {}
    for key, value in partial.items():
        if key in CLIENT_ONLY_KEYS or key in ('_id', 'id'):
            continue
        wire_key = _WIRE_NAMES.get(key, key)
        if wire_key == 'category':
            value = category_to_wire(value)
        elif isinstance(value, BaseModel):
            value = value.model_dump(mode='json', by_alias=True, exclude_none=True)
        payload[wire_key] = value
    if not payload:
        logger.warning("Partial course update produced an empty payload.")
    return payload


def remember_category_names(raw_records: Any, directory: Dict[str, str]) -> Dict[str, str]:
    """
    Records the id -> name pairs of every embedded (populated) category in `raw_records`
    into `directory`, so later bare-id references can be given their name.
    """
    if isinstance(raw_records, Mapping):
        raw_records = [raw_records]
    for raw in raw_records or []:
        category: Optional[Any] = raw.get('category') if isinstance(raw, Mapping) else getattr(raw, 'category', None)
        if isinstance(category, CourseCategory):
            category_id, name = category.id, category.name
        elif isinstance(category, Mapping):
            category_id, name = category.get('_id') or category.get('id'), category.get('name')
        else:
            continue
        if category_id and name:
            directory[str(category_id)] = str(name)
    return directory

#
# End of utils.py
#######################################################################################################################
