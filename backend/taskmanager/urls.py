from django.urls import include, path, re_path

from tasks.views import HealthCheck

urlpatterns = [
    path("api/v1/", include("tasks.urls")),
    re_path(r"^health/?$", HealthCheck.as_view(), name="health"),
]

handler404 = "tasks.views.not_found"
