"""
Request and response schemas for the SynergySphere API.

Request bodies accept the camelCase names the web client sends (``dueDate``,
``assigneeId``, ``ownerID``...) as well as the snake_case field names.
Update payloads forbid unknown keys, so a typo is a 400 instead of a
silently ignored field.
"""

import re
from datetime import date, datetime
from typing import Any, ClassVar, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

UserStatus = Literal["active", "inactive", "suspended"]
ProjectPriority = Literal["low", "medium", "high"]
ProjectStatus = Literal["waiting", "progress", "completed"]
AssignableRole = Literal["manager", "member"]
TaskPriority = Literal["low", "medium", "high", "urgent"]
TaskStatus = Literal["pending", "in_progress", "completed", "cancelled"]
InvitationResponse = Literal["accepted", "declined"]
TagType = Literal["project", "task"]

PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&#])")


def ok(data: Any = None, message: Optional[str] = None) -> dict:
    body = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return body


def fail(error: str, message: str, details: Any = None) -> dict:
    body = {"success": False, "error": error, "message": message}
    if details is not None:
        body["details"] = details
    return body


def _check_password(value: str) -> str:
    if not PASSWORD_PATTERN.match(value):
        raise ValueError(
            "Password must contain at least one uppercase letter, one lowercase letter, "
            "one number, and one special character"
        )
    return value


class RequestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid", str_strip_whitespace=True)


class UpdateModel(RequestModel):
    """Partial update: only the keys present in the payload are applied."""

    required_fields: ClassVar[tuple] = ()

    @model_validator(mode="after")
    def _reject_null_required(self):
        for name in self.required_fields:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


# Auth

class RegisterRequest(RequestModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=4, max_length=100)

    @field_validator("password")
    @classmethod
    def _strong_password(cls, value: str) -> str:
        return _check_password(value)


class LoginRequest(RequestModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshRequest(RequestModel):
    refresh_token: str = Field(..., alias="refreshToken", min_length=1)


class ForgotPasswordRequest(RequestModel):
    email: EmailStr


class ResetPasswordRequest(RequestModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., alias="newPassword", min_length=4, max_length=100)

    @field_validator("new_password")
    @classmethod
    def _strong_password(cls, value: str) -> str:
        return _check_password(value)


# Users

class UserUpdate(UpdateModel):
    required_fields: ClassVar[tuple] = ("name", "email")

    name: Optional[str] = Field(None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    profile_image: Optional[str] = Field(None, alias="profileImage", max_length=255)


class ChangePasswordRequest(RequestModel):
    current_password: str = Field(..., alias="currentPassword", min_length=1)
    new_password: str = Field(..., alias="newPassword", min_length=4, max_length=100)

    @field_validator("new_password")
    @classmethod
    def _strong_password(cls, value: str) -> str:
        return _check_password(value)


class UserStatusUpdate(RequestModel):
    status: UserStatus


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    profile_image: Optional[str] = None
    role: str
    status: str
    created_at: datetime
    last_login: Optional[datetime] = None


class UserPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: Optional[str] = None
    profile_image: Optional[str] = None
    created_at: datetime


# Projects

class ProjectCreate(RequestModel):
    owner_id: Optional[int] = Field(None, alias="ownerID", ge=1)
    manager_id: Optional[int] = Field(None, alias="managerID", ge=1)
    name: str = Field(..., min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    start_date: Optional[date] = Field(None, alias="startDate")
    deadline: date
    priority: ProjectPriority
    status: ProjectStatus
    profile_image: Optional[str] = Field(None, alias="profileImage", max_length=255)

    @field_validator("deadline")
    @classmethod
    def _deadline_in_future(cls, value: date) -> date:
        if value <= date.today():
            raise ValueError("Deadline must be in the future")
        return value


class ProjectUpdate(UpdateModel):
    required_fields: ClassVar[tuple] = ("name", "deadline", "priority", "status")

    name: Optional[str] = Field(None, min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    start_date: Optional[date] = Field(None, alias="startDate")
    deadline: Optional[date] = None
    priority: Optional[ProjectPriority] = None
    status: Optional[ProjectStatus] = None
    profile_image: Optional[str] = Field(None, alias="profileImage", max_length=255)
    manager_id: Optional[int] = Field(None, alias="managerID", ge=1)


class MemberAdd(RequestModel):
    user_id: Optional[int] = Field(None, alias="userId", ge=1)
    email: Optional[EmailStr] = None
    role: AssignableRole = "member"

    @model_validator(mode="after")
    def _user_or_email(self):
        if self.user_id is None and self.email is None:
            raise ValueError("Either userId or email must be provided")
        return self


class MemberRoleUpdate(RequestModel):
    role: AssignableRole


class TagOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    tag_type: str


class ProjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    manager_id: Optional[int] = None
    name: str
    description: Optional[str] = None
    priority: str
    status: str
    start_date: Optional[date] = None
    deadline: date
    profile_image: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ProjectSummary(ProjectOut):
    owner_name: Optional[str] = None
    member_role: Optional[str] = None
    member_count: int = 0
    task_count: int = 0


class ProjectDetail(ProjectOut):
    owner_name: Optional[str] = None
    manager_name: Optional[str] = None
    member_count: int = 0
    task_count: int = 0
    completed_tasks: int = 0
    user_role: Optional[str] = None
    tags: List[TagOut] = []


class MemberOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    name: str
    email: str
    profile_image: Optional[str] = None
    role: str
    joined_at: datetime


class ProjectStats(BaseModel):
    member_count: int
    task_count: int
    completed_tasks: int
    overdue_tasks: int
    tasks_by_status: dict


# Tasks

class TaskCreate(RequestModel):
    title: str = Field(..., min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    due_date: Optional[date] = Field(None, alias="dueDate")
    priority: TaskPriority = "medium"
    status: TaskStatus = "pending"
    assignee_id: Optional[int] = Field(None, alias="assigneeId", ge=1)
    tags: List[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def _tag_names(cls, value: List[str]) -> List[str]:
        cleaned = []
        for name in value:
            name = name.strip()
            if not 1 <= len(name) <= 50:
                raise ValueError("Each tag must be between 1 and 50 characters")
            if name not in cleaned:
                cleaned.append(name)
        return cleaned


class TaskUpdate(UpdateModel):
    required_fields: ClassVar[tuple] = ("title", "priority", "status")

    title: Optional[str] = Field(None, min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    due_date: Optional[date] = Field(None, alias="dueDate")
    priority: Optional[TaskPriority] = None
    status: Optional[TaskStatus] = None
    assignee_id: Optional[int] = Field(None, alias="assigneeId", ge=1)


class TaskStatusUpdate(RequestModel):
    status: TaskStatus


class TaskAssign(RequestModel):
    assignee_id: Optional[int] = Field(..., alias="assigneeId", ge=1)


class BulkTaskChanges(UpdateModel):
    required_fields: ClassVar[tuple] = ("status", "priority")

    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assignee_id: Optional[int] = Field(None, alias="assigneeId", ge=1)


class BulkTaskUpdate(RequestModel):
    task_ids: List[int] = Field(..., alias="taskIds", min_length=1)
    updates: BulkTaskChanges


class TaskOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: int
    project_name: Optional[str] = None
    created_by: Optional[int] = None
    title: str
    description: Optional[str] = None
    due_date: Optional[date] = None
    priority: str
    status: str
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    assignee_id: Optional[int] = None
    assignee_name: Optional[str] = None
    assignee_email: Optional[str] = None
    tags: List[TagOut] = []


# Invitations

class InvitationCreate(RequestModel):
    user_id: Optional[int] = Field(None, alias="userId", ge=1)
    email: Optional[EmailStr] = None

    @model_validator(mode="after")
    def _user_or_email(self):
        if self.user_id is None and self.email is None:
            raise ValueError("Either userId or email must be provided")
        return self


class InvitationRespond(RequestModel):
    response: InvitationResponse


class InvitationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sender_id: int
    recipient_id: int
    project_id: int
    status: str
    sent_at: datetime
    responded_at: Optional[datetime] = None
    sender_name: Optional[str] = None
    sender_email: Optional[str] = None
    recipient_name: Optional[str] = None
    recipient_email: Optional[str] = None
    project_name: Optional[str] = None


# Tags

class TagCreate(RequestModel):
    name: str = Field(..., alias="tagName", min_length=1, max_length=50)
    tag_type: TagType = Field(..., alias="tagType")


class TagUpdate(UpdateModel):
    required_fields: ClassVar[tuple] = ("name",)

    name: Optional[str] = Field(None, alias="tagName", min_length=1, max_length=50)


class TagLink(RequestModel):
    tag_id: int = Field(..., alias="tagId", ge=1)


class TagUsage(TagOut):
    project_usage_count: int = 0
    task_usage_count: int = 0
