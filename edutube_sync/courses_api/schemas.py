# edutube_sync/courses_api/schemas.py
import uuid
from datetime import datetime
from typing import List, Optional, Dict, Any, Literal, Mapping

from pydantic import (
    AliasChoices, BaseModel, ConfigDict, Field, ValidationInfo, field_validator
)

# Enum-like Literals from the course store schema
CourseLevel = Literal['beginner', 'intermediate', 'advanced']
COURSE_LEVELS = ('beginner', 'intermediate', 'advanced')

# Fields the course store refuses to create a course without (400 otherwise)
REQUIRED_CREATE_FIELDS = ('title', 'description', 'instructor', 'thumbnail', 'category', 'level')


def _id_field(wire_name: str = '_id'):
    return Field(
        default=None,
        validation_alias=AliasChoices(wire_name, 'id'),
        serialization_alias=wire_name,
    )


def _blank_identity_to_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class CourseCategory(BaseModel):
    """The embedded {id, name} category pair. The only form categories are stored in."""
    model_config = ConfigDict(populate_by_name=True, extra='ignore', frozen=True)

    id: str = Field(validation_alias=AliasChoices('_id', 'id'), serialization_alias='_id')
    name: str = ""


def normalize_category(raw: Any, category_names: Optional[Mapping[str, str]] = None) -> Optional[CourseCategory]:
    """
    Collapses the two category shapes the course store emits into a CourseCategory.

    A bare id string (unpopulated reference) takes its name from `category_names`,
    the directory of names seen so far in embedded form; an unknown id gets an empty name.
    An object needs at least an id or a name; a name-only object uses the name as id.
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    names = category_names or {}
    if isinstance(raw, CourseCategory):
        if not raw.name and raw.id in names:
            return CourseCategory(id=raw.id, name=names[raw.id])
        return raw
    if isinstance(raw, str):
        category_id = raw.strip()
        return CourseCategory(id=category_id, name=names.get(category_id, ""))
    if isinstance(raw, Mapping):
        category_id = _blank_identity_to_none(raw.get('_id') or raw.get('id'))
        name = str(raw.get('name') or "").strip()
        if not category_id and not name:
            raise ValueError("category object needs an '_id' or a 'name'")
        category_id = category_id or name
        return CourseCategory(id=category_id, name=name or names.get(category_id, ""))
    raise ValueError(f"unsupported category value of type {type(raw).__name__}")


class Lesson(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    id: Optional[str] = _id_field()
    title: str
    description: Optional[str] = None
    duration: str = ""
    video_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices('videoUrl', 'video_url'), serialization_alias='videoUrl'
    )

    @field_validator('id', mode='before')
    @classmethod
    def normalize_id(cls, value: Any) -> Optional[str]:
        return _blank_identity_to_none(value)


class CourseModule(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    id: Optional[str] = _id_field()
    title: str
    lessons: List[Lesson] = Field(default_factory=list)

    @field_validator('id', mode='before')
    @classmethod
    def normalize_id(cls, value: Any) -> Optional[str]:
        return _blank_identity_to_none(value)


class CourseRecord(BaseModel):
    """
    A course as held by the course store and mirrored locally.

    `id` is assigned by the course store; a record without one is pending creation and
    is identified locally by `local_ref`, which never leaves the client.
    """
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    id: Optional[str] = _id_field()
    local_ref: Optional[str] = Field(
        default=None, validation_alias=AliasChoices('_localRef', 'local_ref'), serialization_alias='_localRef'
    )
    title: str
    description: str = ""
    instructor: str = ""
    thumbnail: Optional[str] = None
    category: Optional[CourseCategory] = None
    level: Optional[CourseLevel] = None
    rating: float = Field(default=0.0, ge=0, le=5)
    total_students: int = Field(
        default=0, ge=0, validation_alias=AliasChoices('totalStudents', 'total_students'),
        serialization_alias='totalStudents'
    )
    featured: bool = False
    video_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices('videoUrl', 'video_url'), serialization_alias='videoUrl'
    )
    duration: Optional[str] = None
    created_at: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices('createdAt', 'created_at'), serialization_alias='createdAt'
    )
    updated_at: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices('updatedAt', 'updated_at'), serialization_alias='updatedAt'
    )
    modules: List[CourseModule] = Field(default_factory=list)

    @field_validator('id', 'local_ref', mode='before')
    @classmethod
    def normalize_ids(cls, value: Any) -> Optional[str]:
        return _blank_identity_to_none(value)

    @field_validator('category', mode='before')
    @classmethod
    def normalize_category_value(cls, value: Any, info: ValidationInfo) -> Optional[CourseCategory]:
        names = (info.context or {}).get('category_names')
        return normalize_category(value, names)

    @classmethod
    def new_pending(cls, **fields: Any) -> "CourseRecord":
        """Builds a client-originated record with a fresh local identity and no store id."""
        fields.pop('id', None)
        fields.setdefault('local_ref', uuid.uuid4().hex)
        return cls(**fields)

    @property
    def is_pending(self) -> bool:
        return not self.id

    def identity_key(self) -> Optional[str]:
        """The key records are matched on: the store id, else the local pending ref."""
        if self.id:
            return self.id
        if self.local_ref:
            return f"local:{self.local_ref}"
        return None

    def to_storage(self) -> Dict[str, Any]:
        """JSON-ready dict in the store's wire shape, as kept in the local mirror."""
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)

    def missing_required_fields(self) -> List[str]:
        missing = []
        for name in REQUIRED_CREATE_FIELDS:
            value = getattr(self, name)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(name)
        return missing

#
# End of edutube_sync/courses_api/schemas.py
########################################################################################################################
