"""Task persistence on top of the Django ORM.

Callers never see ORM exceptions: a missing row is ``TaskNotFound`` and any
other database failure is ``PersistenceError`` carrying a generic message.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import List

from django.core.management import call_command
from django.db import DatabaseError

from .exceptions import PersistenceError, TaskNotFound
from .models import Task, TaskStatus

logger = logging.getLogger(__name__)


class TaskStore:
    """Create/read/update/delete for Task rows.

    The store holds no state of its own; connections are pooled by Django per
    thread, so one instance may be shared between requests.
    """

    def create(self, *, title: str, due_date: date, description: str = "",
               status: str = TaskStatus.PENDING) -> Task:
        try:
            task = Task.objects.create(
                title=title,
                description=description,
                due_date=due_date,
                status=status,
            )
        except DatabaseError:
            logger.exception("Insert failed title=%r", title)
            raise PersistenceError("Failed to create task")
        logger.info("Task created id=%s", task.pk)
        return task

    def find_all(self) -> List[Task]:
        """Return every task, newest first. An empty table gives an empty list."""
        try:
            return list(Task.objects.order_by("-created_at", "-id"))
        except DatabaseError:
            logger.exception("Listing tasks failed")
            raise PersistenceError("Failed to fetch tasks")

    def find_by_id(self, task_id: int) -> Task:
        try:
            return Task.objects.get(pk=task_id)
        except Task.DoesNotExist:
            raise TaskNotFound()
        except DatabaseError:
            logger.exception("Lookup failed id=%s", task_id)
            raise PersistenceError("Failed to fetch task")

    def update(self, task: Task) -> Task:
        """Write every field of ``task`` back to its row (last writer wins)."""
        try:
            task.save()
        except DatabaseError:
            logger.exception("Update failed id=%s", task.pk)
            raise PersistenceError("Failed to update task")
        logger.info("Task updated id=%s status=%s", task.pk, task.status)
        return task

    def delete(self, task_id: int) -> None:
        # deleting an absent id is not an error
        try:
            deleted, _ = Task.objects.filter(pk=task_id).delete()
        except DatabaseError:
            logger.exception("Delete failed id=%s", task_id)
            raise PersistenceError("Failed to delete task")
        logger.info("Task delete id=%s rows=%s", task_id, deleted)

    def migrate(self) -> None:
        """Bring the database schema up to date with the Task model."""
        call_command("migrate", interactive=False, verbosity=0)
        logger.info("Schema migrated")
