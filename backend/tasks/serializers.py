import re
from datetime import date

from rest_framework import serializers

from .models import Task, TaskStatus

DUE_DATE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
DUE_DATE_ERROR = "Invalid due_date format. Use YYYY-MM-DD"
STATUS_ERROR = "Invalid status. Must be: pending, in-progress, or completed"
TITLE_MIN_LENGTH = 3


def parse_due_date(value: str) -> date:
    """Parse a strict ``YYYY-MM-DD`` calendar date.

    Zero padding is mandatory and the date must exist (2025-02-30 is rejected).
    """
    if not isinstance(value, str) or not DUE_DATE_PATTERN.fullmatch(value):
        raise serializers.ValidationError(DUE_DATE_ERROR)
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise serializers.ValidationError(DUE_DATE_ERROR)


def _messages(name: str, **extra) -> dict:
    messages = {
        "required": f"{name} is required",
        "blank": f"{name} is required",
        "null": f"{name} is required",
        "invalid": f"{name} must be a string",
    }
    messages.update(extra)
    return messages


class StrictCharField(serializers.CharField):
    """A CharField that rejects JSON numbers instead of turning them into text."""

    def to_internal_value(self, data):
        if not isinstance(data, str):
            self.fail("invalid")
        return super().to_internal_value(data)


TITLE_MESSAGES = _messages(
    "title",
    min_length=f"title must be at least {TITLE_MIN_LENGTH} characters",
    max_length="title must be at most {max_length} characters",
)


class TaskSerializer(serializers.ModelSerializer):
    """Output shape of a task."""

    class Meta:
        model = Task
        fields = ["id", "title", "description", "due_date", "status", "created_at", "updated_at"]
        read_only_fields = fields


class TaskInputSerializer(serializers.Serializer):
    """Body of POST /tasks. Missing or empty status means pending."""

    title = StrictCharField(
        min_length=TITLE_MIN_LENGTH,
        max_length=255,
        trim_whitespace=False,
        error_messages=TITLE_MESSAGES,
    )
    description = StrictCharField(
        required=False,
        allow_blank=True,
        allow_null=True,
        trim_whitespace=False,
        error_messages=_messages("description"),
    )
    due_date = StrictCharField(trim_whitespace=False, error_messages=_messages("due_date"))
    status = StrictCharField(
        required=False,
        allow_blank=True,
        allow_null=True,
        trim_whitespace=False,
        error_messages=_messages("status"),
    )

    def validate_due_date(self, value):
        return parse_due_date(value)

    def validate_status(self, value):
        if not value:
            return TaskStatus.PENDING
        if not TaskStatus.is_valid(value):
            raise serializers.ValidationError(STATUS_ERROR)
        return value

    def validate(self, attrs):
        attrs["description"] = attrs.get("description") or ""
        attrs.setdefault("status", TaskStatus.PENDING)
        return attrs


class TaskUpdateSerializer(serializers.Serializer):
    """Body of PUT /tasks/<id>.

    Every field is optional, and an empty string or null counts as "not
    supplied": such fields are dropped from ``validated_data``. Hence a
    description cannot be cleared through this endpoint.
    """

    title = StrictCharField(
        required=False,
        allow_blank=True,
        allow_null=True,
        min_length=TITLE_MIN_LENGTH,
        max_length=255,
        trim_whitespace=False,
        error_messages=TITLE_MESSAGES,
    )
    description = StrictCharField(
        required=False,
        allow_blank=True,
        allow_null=True,
        trim_whitespace=False,
        error_messages=_messages("description"),
    )
    due_date = StrictCharField(
        required=False,
        allow_blank=True,
        allow_null=True,
        trim_whitespace=False,
        error_messages=_messages("due_date"),
    )
    status = StrictCharField(
        required=False,
        allow_blank=True,
        allow_null=True,
        trim_whitespace=False,
        error_messages=_messages("status"),
    )

    def validate_due_date(self, value):
        if not value:
            return value
        return parse_due_date(value)

    def validate_status(self, value):
        if value and not TaskStatus.is_valid(value):
            raise serializers.ValidationError(STATUS_ERROR)
        return value

    def validate(self, attrs):
        return {field: value for field, value in attrs.items() if value not in ("", None)}
