from django.urls import re_path

from .views import TaskDetail, TaskListCreate

urlpatterns = [
    re_path(r"^tasks/?$", TaskListCreate.as_view(), name="task-list"),
    re_path(r"^tasks/(?P<task_id>[^/]+)/?$", TaskDetail.as_view(), name="task-detail"),
]
