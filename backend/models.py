from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from database import Base


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class TodoStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


class RecurrenceType(str, enum.Enum):
    NONE = "NONE"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class ActivityAction(str, enum.Enum):
    CREATED = "CREATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    ASSIGNEE_CHANGED = "ASSIGNEE_CHANGED"
    DUE_DATE_CHANGED = "DUE_DATE_CHANGED"
    DESCRIPTION_CHANGED = "DESCRIPTION_CHANGED"
    LABELS_CHANGED = "LABELS_CHANGED"
    ARCHIVED = "ARCHIVED"
    RESTORED = "RESTORED"
    TRASHED = "TRASHED"
    PURGED = "PURGED"


class NotificationType(str, enum.Enum):
    TODO_COMMENTED = "TODO_COMMENTED"
    TODO_ASSIGNED = "TODO_ASSIGNED"


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    users = relationship("User", back_populates="tenant")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False)
    role = Column(Enum(UserRole, name="user_role", native_enum=False), nullable=False, default=UserRole.MEMBER)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False, index=True)
    email_reminders_enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    tenant = relationship("Tenant", back_populates="users")
    created_todos = relationship("Todo", foreign_keys="Todo.created_by_id", back_populates="created_by")
    assigned_todos = relationship("Todo", foreign_keys="Todo.assignee_id", back_populates="assignee")


class Todo(Base):
    __tablename__ = "todos"
    __table_args__ = (
        Index("ix_todos_tenant_status", "tenant_id", "status"),
        Index("ix_todos_tenant_due_date", "tenant_id", "due_date"),
        Index("ix_todos_tenant_assignee", "tenant_id", "assignee_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    status = Column(Enum(TodoStatus, name="todo_status", native_enum=False), nullable=False, default=TodoStatus.PENDING)
    due_date = Column(DateTime(timezone=True), nullable=True)
    recurrence_type = Column(
        Enum(RecurrenceType, name="recurrence_type", native_enum=False),
        nullable=False,
        default=RecurrenceType.NONE,
    )
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    assignee_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Lifecycle markers: archived_at survives trashing so restore knows where to return
    archived_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Reminder bookkeeping (written by the scheduled reminder job)
    due_soon_reminder_sent_at = Column(DateTime(timezone=True), nullable=True)
    overdue_reminder_sent_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    created_by = relationship("User", foreign_keys=[created_by_id], back_populates="created_todos")
    assignee = relationship("User", foreign_keys=[assignee_id], back_populates="assigned_todos")
    subtasks = relationship(
        "Subtask",
        back_populates="todo",
        order_by="Subtask.order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    labels = relationship("TodoLabel", back_populates="todo", cascade="all, delete-orphan", passive_deletes=True)
    comments = relationship("Comment", back_populates="todo", cascade="all, delete-orphan", passive_deletes=True)
    activities = relationship("TodoActivity", back_populates="todo", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def label_ids(self):
        return [todo_label.label_id for todo_label in self.labels]


class TodoActivity(Base):
    __tablename__ = "todo_activities"

    id = Column(Integer, primary_key=True, index=True)
    todo_id = Column(Integer, ForeignKey("todos.id", ondelete="CASCADE"), nullable=False, index=True)
    actor_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)

    # action stored as VARCHAR(50); ActivityAction provides the known values
    action = Column(String(50), nullable=False)
    field = Column(String(50))
    old_value = Column(Text)
    new_value = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    todo = relationship("Todo", back_populates="activities")
    actor = relationship("User")

    @property
    def actor_email(self):
        return self.actor.email if self.actor is not None else None


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "is_read"),
        Index("ix_notifications_user_created", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)
    todo_id = Column(Integer, ForeignKey("todos.id", ondelete="SET NULL"), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User")


class Subtask(Base):
    __tablename__ = "subtasks"

    id = Column(Integer, primary_key=True, index=True)
    todo_id = Column(Integer, ForeignKey("todos.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    is_complete = Column(Boolean, nullable=False, default=False)
    order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    todo = relationship("Todo", back_populates="subtasks")


class Label(Base):
    __tablename__ = "labels"
    __table_args__ = (UniqueConstraint("tenant_id", "name", name="uq_labels_tenant_name"),)

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(30), nullable=False)
    color = Column(String(7), nullable=False)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    todos = relationship("TodoLabel", back_populates="label", cascade="all, delete-orphan", passive_deletes=True)


class TodoLabel(Base):
    __tablename__ = "todo_labels"

    todo_id = Column(Integer, ForeignKey("todos.id", ondelete="CASCADE"), primary_key=True)
    label_id = Column(Integer, ForeignKey("labels.id", ondelete="CASCADE"), primary_key=True, index=True)

    todo = relationship("Todo", back_populates="labels")
    label = relationship("Label", back_populates="todos")


class Comment(Base):
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, index=True)
    content = Column(Text, nullable=False)
    todo_id = Column(Integer, ForeignKey("todos.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    todo = relationship("Todo", back_populates="comments")
    author = relationship("User")

    @property
    def author_email(self):
        return self.author.email if self.author is not None else None


class TodoTemplate(Base):
    __tablename__ = "todo_templates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    created_by = relationship("User")
    subtasks = relationship(
        "TemplateSubtask",
        back_populates="template",
        order_by="TemplateSubtask.order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    labels = relationship("TemplateLabel", back_populates="template", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def label_ids(self):
        return [template_label.label_id for template_label in self.labels]


class TemplateSubtask(Base):
    __tablename__ = "template_subtasks"

    id = Column(Integer, primary_key=True, index=True)
    template_id = Column(Integer, ForeignKey("todo_templates.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    order = Column(Integer, nullable=False, default=0)

    template = relationship("TodoTemplate", back_populates="subtasks")


class TemplateLabel(Base):
    __tablename__ = "template_labels"

    template_id = Column(Integer, ForeignKey("todo_templates.id", ondelete="CASCADE"), primary_key=True)
    label_id = Column(Integer, ForeignKey("labels.id", ondelete="CASCADE"), primary_key=True)

    template = relationship("TodoTemplate", back_populates="labels")
    label = relationship("Label")
