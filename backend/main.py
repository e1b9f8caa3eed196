from fastapi import FastAPI, Depends, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import List, Optional
import logging
import uvicorn

from database import Base, engine, get_db
from config import AUTO_CREATE_SCHEMA, CORS_ORIGINS, LOG_LEVEL, PORT
import schemas
from auth.dependencies import get_request_context, require_cron_secret
from todos import comments, labels, lifecycle, notify, reminders, subtasks, templates, users
from todos.activity import get_todo_activities
from todos.context import RequestContext
from todos.errors import TodoEngineError

# Configure logging
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Todo API",
    description="Multi-tenant todos with recurrence, subtasks, labels, templates and an audit trail",
    version="1.0.0"
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============== Startup ==============

@app.on_event("startup")
def create_schema():
    if AUTO_CREATE_SCHEMA:
        logger.info("Creating missing database tables")
        Base.metadata.create_all(bind=engine)


# ============== Error handling ==============

@app.exception_handler(TodoEngineError)
async def todo_engine_error_handler(request: Request, exc: TodoEngineError):
    """Field-scoped errors become {"errors": {field: [msg]}}, everything else {"error": msg}."""
    if exc.field:
        content = {"errors": {exc.field: [exc.message]}}
    else:
        content = {"error": exc.message}

    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = {}
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(location) or "body"
        errors.setdefault(field, []).append(error.get("msg", "Invalid value"))

    logger.info(f"Request validation failed on {request.url.path}: {list(errors)}")
    return JSONResponse(status_code=422, content={"errors": errors})


def get_email_sender() -> reminders.EmailSender:
    return reminders.LoggingEmailSender()


@app.get("/health")
def health_check():
    return {"status": "healthy"}


# ============== Todos ==============

@app.get("/api/todos", response_model=List[schemas.Todo])
def list_todos(
    view: str = Query(lifecycle.ACTIVE),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """List todos in one placement: active (default), archived or trashed."""
    return lifecycle.list_todos(db, ctx, view)


@app.post("/api/todos", response_model=schemas.Todo, status_code=status.HTTP_201_CREATED)
def create_todo(
    todo: schemas.TodoCreate,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return lifecycle.create_todo(
        db,
        ctx,
        title=todo.title,
        description=todo.description,
        due_date=todo.due_date,
        assignee_id=todo.assignee_id,
        label_ids=todo.label_ids,
    )


@app.get("/api/todos/{todo_id}", response_model=schemas.Todo)
def get_todo(
    todo_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return lifecycle.get_todo(db, ctx, todo_id)


@app.put("/api/todos/{todo_id}", response_model=schemas.Todo)
def update_todo(
    todo_id: int,
    todo_update: schemas.TodoUpdate,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """Replace title, description, due date and assignee."""
    return lifecycle.update_todo(
        db,
        ctx,
        todo_id,
        title=todo_update.title,
        description=todo_update.description,
        due_date=todo_update.due_date,
        assignee_id=todo_update.assignee_id,
    )


@app.post("/api/todos/{todo_id}/toggle", response_model=schemas.ToggleResponse)
def toggle_todo(
    todo_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """Flip PENDING/COMPLETED. Completing a recurring todo returns its successor too."""
    result = lifecycle.toggle_todo(db, ctx, todo_id)
    return {"todo": result.todo, "successor": result.successor}


@app.put("/api/todos/{todo_id}/assignee", response_model=schemas.Todo)
def update_todo_assignee(
    todo_id: int,
    assignment: schemas.AssigneeUpdate,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return lifecycle.update_todo_assignee(db, ctx, todo_id, assignment.assignee_id)


@app.put("/api/todos/{todo_id}/recurrence", response_model=schemas.Todo)
def update_todo_recurrence(
    todo_id: int,
    recurrence: schemas.RecurrenceUpdate,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return lifecycle.update_todo_recurrence(db, ctx, todo_id, recurrence.recurrence_type)


@app.post("/api/todos/{todo_id}/archive", response_model=schemas.Todo)
def archive_todo(
    todo_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return lifecycle.archive_todo(db, ctx, todo_id)


@app.post("/api/todos/{todo_id}/unarchive", response_model=schemas.Todo)
def unarchive_todo(
    todo_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return lifecycle.unarchive_todo(db, ctx, todo_id)


@app.post("/api/todos/{todo_id}/trash", response_model=schemas.Todo)
def trash_todo(
    todo_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return lifecycle.trash_todo(db, ctx, todo_id)


@app.post("/api/todos/{todo_id}/restore", response_model=schemas.Todo)
def restore_todo(
    todo_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """Bring a todo back from the trash to where it was before."""
    return lifecycle.restore_todo(db, ctx, todo_id)


@app.delete("/api/todos/{todo_id}", response_model=schemas.SuccessResponse)
def purge_todo(
    todo_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """Permanently delete a trashed todo."""
    lifecycle.purge_todo(db, ctx, todo_id)
    return {"success": True}


@app.get("/api/todos/{todo_id}/activities", response_model=List[schemas.Activity])
def list_todo_activities(
    todo_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return get_todo_activities(db, ctx, todo_id)


# ============== Comments ==============

@app.get("/api/todos/{todo_id}/comments", response_model=List[schemas.Comment])
def list_comments(
    todo_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return comments.list_comments(db, ctx, todo_id)


@app.post("/api/todos/{todo_id}/comments", response_model=schemas.Comment, status_code=status.HTTP_201_CREATED)
def create_comment(
    todo_id: int,
    comment: schemas.CommentCreate,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return comments.create_comment(db, ctx, todo_id, comment.content)


# ============== Subtasks ==============

@app.get("/api/todos/{todo_id}/subtasks", response_model=List[schemas.Subtask])
def list_subtasks(
    todo_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return subtasks.list_subtasks(db, ctx, todo_id)


@app.post("/api/todos/{todo_id}/subtasks", response_model=schemas.Subtask, status_code=status.HTTP_201_CREATED)
def create_subtask(
    todo_id: int,
    subtask: schemas.SubtaskCreate,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return subtasks.create_subtask(db, ctx, todo_id, subtask.title)


@app.put("/api/subtasks/{subtask_id}", response_model=schemas.Subtask)
def update_subtask(
    subtask_id: int,
    subtask: schemas.SubtaskUpdate,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return subtasks.update_subtask(db, ctx, subtask_id, subtask.title)


@app.post("/api/subtasks/{subtask_id}/toggle", response_model=schemas.Subtask)
def toggle_subtask(
    subtask_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return subtasks.toggle_subtask(db, ctx, subtask_id)


@app.delete("/api/subtasks/{subtask_id}", response_model=schemas.SuccessResponse)
def delete_subtask(
    subtask_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    subtasks.delete_subtask(db, ctx, subtask_id)
    return {"success": True}


# ============== Labels ==============

@app.put("/api/todos/{todo_id}/labels", response_model=List[schemas.Label])
def set_todo_labels(
    todo_id: int,
    update: schemas.TodoLabelsUpdate,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return labels.set_todo_labels(db, ctx, todo_id, update.label_ids)


@app.post("/api/todos/{todo_id}/labels/{label_id}", response_model=schemas.SuccessResponse)
def add_label_to_todo(
    todo_id: int,
    label_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    labels.add_label_to_todo(db, ctx, todo_id, label_id)
    return {"success": True}


@app.delete("/api/todos/{todo_id}/labels/{label_id}", response_model=schemas.SuccessResponse)
def remove_label_from_todo(
    todo_id: int,
    label_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    labels.remove_label_from_todo(db, ctx, todo_id, label_id)
    return {"success": True}


@app.get("/api/labels", response_model=List[schemas.Label])
def list_labels(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return labels.list_labels(db, ctx)


@app.post("/api/labels", response_model=schemas.Label, status_code=status.HTTP_201_CREATED)
def create_label(
    label: schemas.LabelCreate,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """Add a label to the tenant catalogue (admins only)."""
    return labels.create_label(db, ctx, label.name, label.color)


@app.put("/api/labels/{label_id}", response_model=schemas.Label)
def update_label(
    label_id: int,
    label: schemas.LabelUpdate,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return labels.update_label(db, ctx, label_id, label.name, label.color)


@app.delete("/api/labels/{label_id}", response_model=schemas.SuccessResponse)
def delete_label(
    label_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    labels.delete_label(db, ctx, label_id)
    return {"success": True}


# ============== Templates ==============

@app.get("/api/templates", response_model=List[schemas.Template])
def list_templates(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return templates.list_templates(db, ctx)


@app.post("/api/templates", response_model=schemas.Template, status_code=status.HTTP_201_CREATED)
def create_template(
    template: schemas.TemplateCreate,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return templates.create_template(
        db,
        ctx,
        name=template.name,
        description=template.description,
        label_ids=template.label_ids,
        subtask_titles=template.subtasks,
    )


@app.get("/api/templates/{template_id}", response_model=schemas.Template)
def get_template(
    template_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return templates.get_template(db, ctx, template_id)


@app.put("/api/templates/{template_id}", response_model=schemas.Template)
def update_template(
    template_id: int,
    template: schemas.TemplateUpdate,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return templates.update_template(
        db,
        ctx,
        template_id,
        name=template.name,
        description=template.description,
        label_ids=template.label_ids,
        subtask_titles=template.subtasks,
    )


@app.delete("/api/templates/{template_id}", response_model=schemas.SuccessResponse)
def delete_template(
    template_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    templates.delete_template(db, ctx, template_id)
    return {"success": True}


@app.post("/api/templates/{template_id}/todos", response_model=schemas.Todo, status_code=status.HTTP_201_CREATED)
def create_todo_from_template(
    template_id: int,
    body: Optional[schemas.TodoFromTemplate] = None,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    body = body or schemas.TodoFromTemplate()
    return templates.create_todo_from_template(db, ctx, template_id, title=body.title, due_date=body.due_date)


# ============== Notifications ==============

@app.get("/api/notifications", response_model=List[schemas.Notification])
def list_notifications(
    limit: int = Query(20, ge=1, le=100),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return notify.get_notifications(db, ctx, limit)


@app.get("/api/notifications/unread-count", response_model=schemas.UnreadCount)
def get_unread_count(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return {"count": notify.get_unread_count(db, ctx)}


@app.post("/api/notifications/read-all", response_model=schemas.MarkAllReadResult)
def mark_all_notifications_read(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return {"updated": notify.mark_all_notifications_read(db, ctx)}


@app.post("/api/notifications/{notification_id}/read", response_model=schemas.SuccessResponse)
def mark_notification_read(
    notification_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    notify.mark_notification_read(db, ctx, notification_id)
    return {"success": True}


# ============== Users & settings ==============

@app.get("/api/users", response_model=List[schemas.User])
def list_users(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """Members of the caller's tenant (the assignable users)."""
    return users.list_tenant_users(db, ctx)


@app.put("/api/settings/email-reminders", response_model=schemas.EmailReminders)
def update_email_reminders(
    settings: schemas.EmailRemindersUpdate,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    return users.update_email_reminders(db, ctx, settings.enabled)


# ============== Scheduler ==============

@app.post("/api/cron/reminders", response_model=schemas.ReminderRunResult)
def run_reminders(
    _: None = Depends(require_cron_secret),
    sender: reminders.EmailSender = Depends(get_email_sender),
    db: Session = Depends(get_db)
):
    """Send due-soon and overdue reminder emails. Called by an external scheduler."""
    result = reminders.process_reminders(db, sender)
    return {"success": True, **result}


if __name__ == "__main__":
    logger.info(f"🚀 Todo API starting on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)
