from pydantic import BaseModel, EmailStr, Field, computed_field
from datetime import datetime
from typing import Optional, List

from models import RecurrenceType, TodoStatus, UserRole
from todos.lifecycle import lifecycle_state


# User schemas
class User(BaseModel):
    id: int
    email: EmailStr
    role: UserRole

    class Config:
        from_attributes = True


class EmailRemindersUpdate(BaseModel):
    enabled: bool


class EmailReminders(BaseModel):
    email_reminders_enabled: bool

    class Config:
        from_attributes = True


# Label schemas
class LabelBase(BaseModel):
    name: str
    color: str


class LabelCreate(LabelBase):
    pass


class LabelUpdate(LabelBase):
    pass


class Label(LabelBase):
    id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TodoLabelsUpdate(BaseModel):
    label_ids: List[int] = Field(default_factory=list)


# Subtask schemas
class SubtaskCreate(BaseModel):
    title: str


class SubtaskUpdate(BaseModel):
    title: str


class Subtask(BaseModel):
    id: int
    todo_id: int
    title: str
    is_complete: bool
    order: int

    class Config:
        from_attributes = True


# Todo schemas
class TodoBase(BaseModel):
    title: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    assignee_id: Optional[int] = None


class TodoCreate(TodoBase):
    label_ids: List[int] = Field(default_factory=list)


class TodoUpdate(TodoBase):
    """Full replacement: omitted optional fields are cleared."""
    pass


class AssigneeUpdate(BaseModel):
    assignee_id: Optional[int] = None


class RecurrenceUpdate(BaseModel):
    recurrence_type: RecurrenceType


class Todo(TodoBase):
    id: int
    status: TodoStatus
    recurrence_type: RecurrenceType
    created_by_id: int
    archived_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    label_ids: List[int] = Field(default_factory=list)
    subtasks: List[Subtask] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @computed_field
    @property
    def state(self) -> str:
        return lifecycle_state(self)

    class Config:
        from_attributes = True


class ToggleResponse(BaseModel):
    todo: Todo
    successor: Optional[Todo] = None


# Activity schemas
class Activity(BaseModel):
    """
    One audit row. ``field``/``old_value``/``new_value`` are null for event-only
    actions (CREATED, ARCHIVED, RESTORED, TRASHED); description changes never
    carry their values.
    """
    id: int
    todo_id: int
    actor_id: int
    actor_email: Optional[str] = None
    action: str
    field: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Comment schemas
class CommentCreate(BaseModel):
    content: str


class Comment(BaseModel):
    id: int
    todo_id: int
    content: str
    author_id: int
    author_email: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Notification schemas
class Notification(BaseModel):
    id: int
    type: str
    message: str
    todo_id: Optional[int] = None
    is_read: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UnreadCount(BaseModel):
    count: int


class MarkAllReadResult(BaseModel):
    updated: int


# Template schemas
class TemplateBase(BaseModel):
    name: str
    description: Optional[str] = None


class TemplateCreate(TemplateBase):
    label_ids: List[int] = Field(default_factory=list)
    subtasks: List[str] = Field(default_factory=list)


class TemplateUpdate(TemplateCreate):
    pass


class TemplateSubtask(BaseModel):
    id: int
    title: str
    order: int

    class Config:
        from_attributes = True


class Template(TemplateBase):
    id: int
    created_by_id: int
    label_ids: List[int] = Field(default_factory=list)
    subtasks: List[TemplateSubtask] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TodoFromTemplate(BaseModel):
    title: Optional[str] = None
    due_date: Optional[datetime] = None


# Misc
class SuccessResponse(BaseModel):
    success: bool = True


class ReminderRunResult(BaseModel):
    success: bool = True
    dueSoonSent: int
    overdueSent: int
