"""
Relational schema.

Project membership and task assignment live in two separate tables:
``project_memberships`` carries the role a user holds in a project and
``task_assignments`` links at most one user to a task.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Text, Date, DateTime, ForeignKey, Enum,
    UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

USER_ROLES = ("user", "admin")
USER_STATUSES = ("active", "inactive", "suspended")
PROJECT_PRIORITIES = ("low", "medium", "high")
PROJECT_STATUSES = ("waiting", "progress", "completed")
MEMBER_ROLES = ("owner", "manager", "member")
TASK_PRIORITIES = ("low", "medium", "high", "urgent")
TASK_STATUSES = ("pending", "in_progress", "completed", "cancelled")
INVITATION_STATUSES = ("pending", "accepted", "declined")
TAG_TYPES = ("project", "task")


def utcnow() -> datetime:
    # naive UTC, SQLite does not keep offsets
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    email = Column(String(150), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    profile_image = Column(String(255), nullable=True)
    role = Column(Enum(*USER_ROLES, name="user_role"), default="user", nullable=False)
    status = Column(Enum(*USER_STATUSES, name="user_status"), default="active", nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    last_login = Column(DateTime, nullable=True)


class Project(Base):
    __tablename__ = "projects"
    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    manager_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    name = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=True)
    priority = Column(Enum(*PROJECT_PRIORITIES, name="project_priority"), default="medium", nullable=False)
    status = Column(Enum(*PROJECT_STATUSES, name="project_status"), default="waiting", nullable=False)
    start_date = Column(Date, nullable=True)
    deadline = Column(Date, nullable=False)
    profile_image = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class ProjectMembership(Base):
    __tablename__ = "project_memberships"
    id = Column(Integer, primary_key=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    role = Column(String(20), default="member", nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_membership_project_user"),
        CheckConstraint("role IN ('owner','manager','member')", name="ck_membership_role"),
    )


class Task(Base):
    __tablename__ = "tasks"
    id = Column(Integer, primary_key=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), index=True, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    due_date = Column(Date, nullable=True)
    priority = Column(Enum(*TASK_PRIORITIES, name="task_priority"), default="medium", nullable=False)
    status = Column(Enum(*TASK_STATUSES, name="task_status"), default="pending", nullable=False)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class TaskAssignment(Base):
    __tablename__ = "task_assignments"
    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), unique=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    assigned_at = Column(DateTime, default=utcnow, nullable=False)


class Invitation(Base):
    __tablename__ = "invitations"
    id = Column(Integer, primary_key=True)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    recipient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    status = Column(Enum(*INVITATION_STATUSES, name="invitation_status"), default="pending", nullable=False)
    sent_at = Column(DateTime, default=utcnow, nullable=False)
    responded_at = Column(DateTime, nullable=True)


class Tag(Base):
    __tablename__ = "tags"
    id = Column(Integer, primary_key=True)
    name = Column(String(50), nullable=False)
    tag_type = Column(Enum(*TAG_TYPES, name="tag_type"), nullable=False)
    __table_args__ = (UniqueConstraint("name", "tag_type", name="uq_tag_name_type"),)


class ProjectTagLink(Base):
    __tablename__ = "project_tag_links"
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True)
    tag_id = Column(Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)


class TaskTagLink(Base):
    __tablename__ = "task_tag_links"
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True)
    tag_id = Column(Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)
