# views.py
import re
from typing import Any, Dict

from django.http import JsonResponse
from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import Task
from .serializers import TaskInputSerializer, TaskSerializer, TaskUpdateSerializer
from .store import TaskStore

TASK_ID_PATTERN = re.compile(r"[0-9]+")
MAX_TASK_ID = 2 ** 32 - 1


def parse_task_id(raw: str) -> int:
    """Parse a path id as an unsigned 32-bit decimal. Raises ValidationError otherwise."""
    if not TASK_ID_PATTERN.fullmatch(raw or ""):
        raise ValidationError("Invalid task ID")
    task_id = int(raw)
    if task_id > MAX_TASK_ID:
        raise ValidationError("Invalid task ID")
    return task_id


def apply_changes(task: Task, changes: Dict[str, Any]) -> Task:
    """Overwrite the fields present in ``changes``; everything else is left as stored."""
    for field, value in changes.items():
        setattr(task, field, value)
    return task


class TaskListCreate(APIView):
    """
    GET  /api/v1/tasks   -> all tasks, newest first.
    POST /api/v1/tasks   -> validate the body and create a task (201).
    """

    store = TaskStore()

    def get(self, request):
        tasks = self.store.find_all()
        return Response(
            {"message": "Tasks retrieved successfully", "data": TaskSerializer(tasks, many=True).data},
            status=status.HTTP_200_OK,
        )

    def post(self, request):
        serializer = TaskInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        task = self.store.create(**serializer.validated_data)
        return Response(
            {"message": "Task created successfully", "data": TaskSerializer(task).data},
            status=status.HTTP_201_CREATED,
        )


class TaskDetail(APIView):
    """
    GET    /api/v1/tasks/<id>   -> one task.
    PUT    /api/v1/tasks/<id>   -> patch the non-empty fields of the body onto the task.
    DELETE /api/v1/tasks/<id>   -> remove the task; succeeds whether or not it existed.
    """

    store = TaskStore()

    def get(self, request, task_id):
        task = self.store.find_by_id(parse_task_id(task_id))
        return Response(
            {"message": "Task retrieved successfully", "data": TaskSerializer(task).data},
            status=status.HTTP_200_OK,
        )

    def put(self, request, task_id):
        # the task is loaded before the body is parsed, so a missing task is
        # reported as 404 even when the body is also invalid
        task = self.store.find_by_id(parse_task_id(task_id))

        serializer = TaskUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        task = self.store.update(apply_changes(task, serializer.validated_data))
        return Response(
            {"message": "Task updated successfully", "data": TaskSerializer(task).data},
            status=status.HTTP_200_OK,
        )

    def delete(self, request, task_id):
        self.store.delete(parse_task_id(task_id))
        return Response({"message": "Task deleted successfully"}, status=status.HTTP_200_OK)


class HealthCheck(APIView):
    """GET /health"""

    def get(self, request):
        return Response({"status": "ok"}, status=status.HTTP_200_OK)


def not_found(request, exception=None):
    """404 for paths that match no route, in the API's error shape."""
    return JsonResponse({"error": "Not found"}, status=404)
