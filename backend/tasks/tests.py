import os
from datetime import date
from unittest import mock

from django.apps import apps
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.exceptions import ValidationError
from rest_framework.test import APITestCase

from taskmanager.config import env_bool, env_int, env_list, env_str

from .exceptions import PersistenceError, TaskNotFound, first_message
from .models import Task, TaskStatus
from .serializers import parse_due_date
from .store import TaskStore
from .views import parse_task_id

TASKS_URL = "/api/v1/tasks"


def task_url(task_id):
    return f"{TASKS_URL}/{task_id}"


class ValidationHelperTests(SimpleTestCase):
    def test_status_membership(self):
        for value in ("pending", "in-progress", "completed"):
            self.assertTrue(TaskStatus.is_valid(value))
        for value in ("done", "Pending", "in_progress", "", None):
            self.assertFalse(TaskStatus.is_valid(value))

    def test_parse_due_date_accepts_strict_form(self):
        self.assertEqual(parse_due_date("2025-01-15"), date(2025, 1, 15))
        self.assertEqual(parse_due_date("2024-02-29"), date(2024, 2, 29))

    def test_parse_due_date_rejects_loose_forms(self):
        for value in ("2025-1-5", "2025/01/15", "20250115", "2025-01-15T10:00:00", "2025-02-30", "", 20250115):
            with self.subTest(value=value):
                with self.assertRaises(ValidationError):
                    parse_due_date(value)

    def test_parse_task_id(self):
        self.assertEqual(parse_task_id("42"), 42)
        self.assertEqual(parse_task_id("0"), 0)
        self.assertEqual(parse_task_id("4294967295"), 4294967295)
        for raw in ("abc", "-1", "+1", "1.5", " 1", "4294967296", ""):
            with self.subTest(raw=raw):
                with self.assertRaises(ValidationError):
                    parse_task_id(raw)

    def test_first_message_flattens_field_errors(self):
        self.assertEqual(first_message({"title": ["too short"], "due_date": ["bad"]}), "too short")
        self.assertEqual(first_message(["one", "two"]), "one")
        self.assertEqual(first_message({"detail": "Task not found"}), "Task not found")
        self.assertEqual(first_message({}), "Invalid request")


class ConfigTests(SimpleTestCase):
    def test_defaults_when_unset_or_blank(self):
        with mock.patch.dict(os.environ, {"TM_BLANK": "  "}, clear=False):
            os.environ.pop("TM_MISSING", None)
            self.assertEqual(env_str("TM_MISSING", "x"), "x")
            self.assertEqual(env_str("TM_BLANK", "x"), "x")
            self.assertEqual(env_int("TM_BLANK", 8080), 8080)
            self.assertTrue(env_bool("TM_MISSING", True))
            self.assertEqual(env_list("TM_BLANK", ["*"]), ["*"])

    def test_parsed_values(self):
        env = {"TM_PORT": "9000", "TM_BAD_PORT": "eighty", "TM_DEBUG": "yes", "TM_HOSTS": "a.local, b.local c.local"}
        with mock.patch.dict(os.environ, env):
            self.assertEqual(env_int("TM_PORT", 8080), 9000)
            self.assertEqual(env_int("TM_BAD_PORT", 8080), 8080)
            self.assertTrue(env_bool("TM_DEBUG", False))
            self.assertEqual(env_list("TM_HOSTS", []), ["a.local", "b.local", "c.local"])


class TaskStoreTests(TestCase):
    def setUp(self):
        self.store = TaskStore()

    def test_create_assigns_id_and_timestamps(self):
        task = self.store.create(title="Write report", due_date=date(2025, 3, 1))
        self.assertIsNotNone(task.pk)
        self.assertEqual(task.status, TaskStatus.PENDING)
        self.assertEqual(task.description, "")
        self.assertIsNotNone(task.created_at)
        self.assertIsNotNone(task.updated_at)

    def test_find_all_empty(self):
        self.assertEqual(self.store.find_all(), [])

    def test_find_by_id_missing_raises_not_found(self):
        with self.assertRaises(TaskNotFound):
            self.store.find_by_id(999)

    def test_update_overwrites_row(self):
        task = self.store.create(title="Write report", due_date=date(2025, 3, 1))
        before = task.updated_at
        task.title = "Write final report"
        task.status = TaskStatus.COMPLETED
        self.store.update(task)

        stored = Task.objects.get(pk=task.pk)
        self.assertEqual(stored.title, "Write final report")
        self.assertEqual(stored.status, TaskStatus.COMPLETED)
        self.assertGreaterEqual(stored.updated_at, before)

    def test_delete_is_idempotent(self):
        task = self.store.create(title="Write report", due_date=date(2025, 3, 1))
        self.store.delete(task.pk)
        self.store.delete(task.pk)
        self.store.delete(12345)
        self.assertFalse(Task.objects.exists())

    def test_database_errors_become_persistence_errors(self):
        with mock.patch.object(Task.objects, "order_by", side_effect=DatabaseError("disk I/O error")):
            with self.assertRaises(PersistenceError) as ctx:
                self.store.find_all()
        self.assertEqual(str(ctx.exception.detail), "Failed to fetch tasks")

        with mock.patch.object(Task.objects, "get", side_effect=DatabaseError("disk I/O error")):
            with self.assertRaises(PersistenceError) as ctx:
                self.store.find_by_id(1)
        self.assertEqual(str(ctx.exception.detail), "Failed to fetch task")

    @mock.patch("tasks.store.call_command")
    def test_migrate_runs_django_migrations(self, run):
        self.store.migrate()
        run.assert_called_once_with("migrate", interactive=False, verbosity=0)


class CreateTaskTests(APITestCase):
    def test_create_with_defaults(self):
        response = self.client.post(TASKS_URL, {"title": "Buy milk", "due_date": "2025-01-15"}, format="json")

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["message"], "Task created successfully")
        data = body["data"]
        self.assertIsInstance(data["id"], int)
        self.assertEqual(data["title"], "Buy milk")
        self.assertEqual(data["description"], "")
        self.assertEqual(data["due_date"], "2025-01-15")
        self.assertEqual(data["status"], "pending")
        self.assertIn("created_at", data)
        self.assertIn("updated_at", data)

    def test_create_keeps_supplied_fields(self):
        payload = {
            "title": "Ship release",
            "description": "Tag and publish",
            "due_date": "2025-06-30",
            "status": "in-progress",
        }
        response = self.client.post(TASKS_URL, payload, format="json")

        self.assertEqual(response.status_code, 201)
        data = response.json()["data"]
        for field, value in payload.items():
            self.assertEqual(data[field], value)

    def test_empty_or_null_status_defaults_to_pending(self):
        for status in ("", None):
            with self.subTest(status=status):
                response = self.client.post(
                    TASKS_URL, {"title": "Buy milk", "due_date": "2025-01-15", "status": status}, format="json"
                )
                self.assertEqual(response.status_code, 201)
                self.assertEqual(response.json()["data"]["status"], "pending")

    def test_three_character_title_is_enough(self):
        response = self.client.post(TASKS_URL, {"title": "Gym", "due_date": "2025-01-15"}, format="json")
        self.assertEqual(response.status_code, 201)

    def test_short_or_missing_title_rejected(self):
        cases = [
            ({"title": "ab", "due_date": "2025-01-15"}, "title must be at least 3 characters"),
            ({"title": "", "due_date": "2025-01-15"}, "title is required"),
            ({"due_date": "2025-01-15"}, "title is required"),
        ]
        for payload, message in cases:
            with self.subTest(payload=payload):
                response = self.client.post(TASKS_URL, payload, format="json")
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json(), {"error": message})
        self.assertEqual(Task.objects.count(), 0)

    def test_missing_due_date_rejected(self):
        response = self.client.post(TASKS_URL, {"title": "Buy milk"}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "due_date is required"})

    def test_unparseable_due_date_rejected(self):
        for due_date in ("2025/01/15", "15-01-2025", "2025-1-5", "2025-02-30", "tomorrow"):
            with self.subTest(due_date=due_date):
                response = self.client.post(TASKS_URL, {"title": "Buy milk", "due_date": due_date}, format="json")
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json(), {"error": "Invalid due_date format. Use YYYY-MM-DD"})
        self.assertEqual(Task.objects.count(), 0)

    def test_unknown_status_rejected(self):
        for status in ("done", "Completed", "in_progress"):
            with self.subTest(status=status):
                response = self.client.post(
                    TASKS_URL, {"title": "Buy milk", "due_date": "2025-01-15", "status": status}, format="json"
                )
                self.assertEqual(response.status_code, 400)
                self.assertEqual(
                    response.json(),
                    {"error": "Invalid status. Must be: pending, in-progress, or completed"},
                )
        self.assertEqual(Task.objects.count(), 0)

    def test_malformed_json_gets_generic_error(self):
        response = self.client.post(TASKS_URL, data='{"title": "Buy milk",', content_type="application/json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Invalid JSON payload"})

    def test_non_string_fields_rejected(self):
        cases = [
            ({"title": 12345, "due_date": "2025-01-15"}, "title must be a string"),
            ({"title": "Buy milk", "description": 2, "due_date": "2025-01-15"}, "description must be a string"),
            ({"title": "Buy milk", "due_date": 20250115}, "due_date must be a string"),
            ({"title": "Buy milk", "due_date": "2025-01-15", "status": 1}, "status must be a string"),
            ({"title": True, "due_date": "2025-01-15"}, "title must be a string"),
        ]
        for payload, message in cases:
            with self.subTest(payload=payload):
                response = self.client.post(TASKS_URL, payload, format="json")
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json(), {"error": message})
        self.assertEqual(Task.objects.count(), 0)

    def test_body_read_as_json_whatever_content_type(self):
        response = self.client.post(
            TASKS_URL,
            data='{"title": "Buy milk", "due_date": "2025-01-15"}',
            content_type="application/x-www-form-urlencoded",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["data"]["title"], "Buy milk")

    def test_form_encoded_body_gets_generic_error(self):
        response = self.client.post(
            TASKS_URL,
            data="title=Buy+milk&due_date=2025-01-15",
            content_type="application/x-www-form-urlencoded",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Invalid JSON payload"})
        self.assertEqual(Task.objects.count(), 0)

    def test_store_failure_is_500_without_details(self):
        with mock.patch.object(Task.objects, "create", side_effect=DatabaseError("connection refused")):
            response = self.client.post(TASKS_URL, {"title": "Buy milk", "due_date": "2025-01-15"}, format="json")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Failed to create task"})


class ListAndGetTaskTests(APITestCase):
    def create(self, title, **extra):
        payload = {"title": title, "due_date": "2025-01-15", **extra}
        response = self.client.post(TASKS_URL, payload, format="json")
        self.assertEqual(response.status_code, 201)
        return response.json()["data"]

    def test_list_empty(self):
        response = self.client.get(TASKS_URL)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"message": "Tasks retrieved successfully", "data": []})

    def test_list_is_newest_first(self):
        a = self.create("Task A")
        b = self.create("Task B")
        c = self.create("Task C")

        response = self.client.get(TASKS_URL)
        self.assertEqual([t["id"] for t in response.json()["data"]], [c["id"], b["id"], a["id"]])

    def test_trailing_slash_is_accepted(self):
        self.create("Task A")
        response = self.client.get(TASKS_URL + "/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()["data"]), 1)

        response = self.client.get("/health/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_get_round_trip(self):
        created = self.create("Buy milk", description="2 litres", status="in-progress")

        response = self.client.get(task_url(created["id"]))
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["message"], "Task retrieved successfully")
        self.assertEqual(body["data"], created)

    def test_get_missing_task(self):
        response = self.client.get(task_url(999))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "Task not found"})

    def test_get_id_zero_is_not_found(self):
        response = self.client.get(task_url(0))
        self.assertEqual(response.status_code, 404)

    def test_get_invalid_id(self):
        for raw in ("abc", "-1", "1.5", "4294967296"):
            with self.subTest(raw=raw):
                response = self.client.get(task_url(raw))
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json(), {"error": "Invalid task ID"})

    def test_list_store_failure(self):
        with mock.patch.object(Task.objects, "order_by", side_effect=DatabaseError("gone")):
            response = self.client.get(TASKS_URL)
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Failed to fetch tasks"})

    def test_unexpected_error_is_generic_500(self):
        with mock.patch.object(TaskStore, "find_all", side_effect=RuntimeError("boom")):
            response = self.client.get(TASKS_URL)
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Internal server error"})


class UpdateTaskTests(APITestCase):
    def setUp(self):
        self.task = Task.objects.create(
            title="Buy milk",
            description="2 litres",
            due_date=date(2025, 1, 15),
        )
        self.url = task_url(self.task.pk)

    def put(self, payload, url=None):
        return self.client.put(url or self.url, payload, format="json")

    def test_status_only_update(self):
        response = self.put({"status": "completed"})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["message"], "Task updated successfully")
        self.assertEqual(body["data"]["status"], "completed")
        self.assertEqual(body["data"]["title"], "Buy milk")
        self.assertEqual(body["data"]["description"], "2 litres")
        self.assertEqual(body["data"]["due_date"], "2025-01-15")

    def test_all_fields_update(self):
        payload = {
            "title": "Buy oat milk",
            "description": "1 litre",
            "due_date": "2025-02-01",
            "status": "in-progress",
        }
        response = self.put(payload)

        self.assertEqual(response.status_code, 200)
        self.task.refresh_from_db()
        self.assertEqual(self.task.title, "Buy oat milk")
        self.assertEqual(self.task.description, "1 litre")
        self.assertEqual(self.task.due_date, date(2025, 2, 1))
        self.assertEqual(self.task.status, "in-progress")

    def test_any_status_transition_allowed(self):
        self.put({"status": "completed"})
        response = self.put({"status": "pending"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["status"], "pending")

    def test_empty_strings_leave_fields_unchanged(self):
        """An empty description cannot clear the stored one: empty means "not supplied"."""
        response = self.put({"title": "", "description": "", "due_date": "", "status": ""})

        self.assertEqual(response.status_code, 200)
        self.task.refresh_from_db()
        self.assertEqual(self.task.title, "Buy milk")
        self.assertEqual(self.task.description, "2 litres")
        self.assertEqual(self.task.due_date, date(2025, 1, 15))
        self.assertEqual(self.task.status, "pending")

    def test_invalid_fields_leave_task_untouched(self):
        cases = [
            ({"due_date": "01/02/2025", "title": "Changed"}, "Invalid due_date format. Use YYYY-MM-DD"),
            ({"status": "archived", "title": "Changed"}, "Invalid status. Must be: pending, in-progress, or completed"),
            ({"title": "ab"}, "title must be at least 3 characters"),
            ({"status": 2}, "status must be a string"),
            ({"title": 12345}, "title must be a string"),
        ]
        for payload, message in cases:
            with self.subTest(payload=payload):
                response = self.put(payload)
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json(), {"error": message})

        self.task.refresh_from_db()
        self.assertEqual(self.task.title, "Buy milk")
        self.assertEqual(self.task.status, "pending")

    def test_update_missing_task(self):
        response = self.put({"status": "completed"}, url=task_url(999))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "Task not found"})

    def test_missing_task_reported_before_bad_body(self):
        response = self.client.put(task_url(999), data="{not json", content_type="application/json")
        self.assertEqual(response.status_code, 404)

    def test_update_invalid_id(self):
        response = self.put({"status": "completed"}, url=task_url("abc"))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Invalid task ID"})

    def test_update_store_failure(self):
        with mock.patch.object(Task, "save", side_effect=DatabaseError("deadlock")):
            response = self.put({"status": "completed"})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Failed to update task"})


class DeleteTaskTests(APITestCase):
    def test_delete_existing_task(self):
        task = Task.objects.create(title="Buy milk", due_date=date(2025, 1, 15))

        response = self.client.delete(task_url(task.pk))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"message": "Task deleted successfully"})
        self.assertFalse(Task.objects.filter(pk=task.pk).exists())

    def test_delete_twice_succeeds_both_times(self):
        task = Task.objects.create(title="Buy milk", due_date=date(2025, 1, 15))

        first = self.client.delete(task_url(task.pk))
        second = self.client.delete(task_url(task.pk))
        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.status_code, 200)
        self.assertEqual(first.json(), second.json())

    def test_delete_nonexistent_task(self):
        response = self.client.delete(task_url(999))
        self.assertEqual(response.status_code, 200)

    def test_delete_invalid_id(self):
        response = self.client.delete(task_url("abc"))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Invalid task ID"})

    def test_delete_store_failure(self):
        with mock.patch.object(Task.objects, "filter", side_effect=DatabaseError("locked")):
            response = self.client.delete(task_url(1))
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Failed to delete task"})


class ServiceEndpointTests(APITestCase):
    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_cors_allows_local_dev_origins(self):
        for origin in ("http://localhost:3000", "http://localhost:5173"):
            with self.subTest(origin=origin):
                response = self.client.options(
                    TASKS_URL,
                    HTTP_ORIGIN=origin,
                    HTTP_ACCESS_CONTROL_REQUEST_METHOD="POST",
                )
                self.assertEqual(response.headers.get("Access-Control-Allow-Origin"), origin)

    def test_cors_rejects_other_origins(self):
        response = self.client.get(TASKS_URL, HTTP_ORIGIN="http://evil.example.com")
        self.assertNotIn("Access-Control-Allow-Origin", response.headers)

    def test_unknown_path_is_json_404(self):
        for path in ("/api/v1/nope", "/api/v2/tasks", "/tasks"):
            with self.subTest(path=path):
                response = self.client.get(path)
                self.assertEqual(response.status_code, 404)
                self.assertEqual(response.json(), {"error": "Not found"})

    def test_no_auth_tables_are_installed(self):
        self.assertFalse(apps.is_installed("django.contrib.auth"))
        self.assertFalse(apps.is_installed("django.contrib.contenttypes"))
        self.assertEqual(
            {model._meta.db_table for model in apps.get_models()},
            {"tasks"},
        )


class ServeCommandTests(SimpleTestCase):
    @override_settings(SERVER_PORT=9090)
    @mock.patch("tasks.management.commands.serve.call_command")
    @mock.patch.object(TaskStore, "migrate")
    def test_migrates_then_serves_on_configured_port(self, migrate, run):
        call_command("serve")

        migrate.assert_called_once_with()
        run.assert_called_once_with("runserver", "0.0.0.0:9090", use_reloader=False)

    @mock.patch("tasks.management.commands.serve.call_command")
    @mock.patch.object(TaskStore, "migrate")
    def test_port_option_overrides_setting(self, migrate, run):
        call_command("serve", port=8181)
        run.assert_called_once_with("runserver", "0.0.0.0:8181", use_reloader=False)

    @mock.patch("tasks.management.commands.serve.call_command")
    @mock.patch.object(TaskStore, "migrate", side_effect=DatabaseError("no route to host"))
    def test_migration_failure_aborts_startup(self, migrate, run):
        with self.assertRaises(CommandError):
            call_command("serve")
        run.assert_not_called()
