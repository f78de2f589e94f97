"""Tests for template rendering and notification payload types."""

import pytest
from pydantic import ValidationError

from conftest import make_record
from notifier.errors import RenderError
from notifier.models import (
    NotificationKind,
    ServerNotificationData,
    TaskNotificationData,
    parse_notification_data,
)
from notifier.services.templates import (
    DEFAULT_TEMPLATES,
    NotificationTemplate,
    PlaceholderTemplateRenderer,
)


class TestPlaceholderTemplateRenderer:
    """Tests for the in-process template renderer."""

    async def test_renders_dotted_placeholders(self, renderer):
        """{task.title} reads nested data."""
        content = await renderer.render(
            "task-reminder",
            {"task": {"title": "Write docs", "deadline": "Friday", "status": "open"}},
        )

        assert content == '🔔 Reminder for task "Write docs"\n\nDeadline: Friday\nStatus: open'

    async def test_unknown_template(self, renderer):
        """Unknown template ids raise RenderError carrying the id."""
        with pytest.raises(RenderError) as exc_info:
            await renderer.render("nope", {})

        assert exc_info.value.template_id == "nope"
        assert "unknown template" in str(exc_info.value)

    async def test_missing_and_null_variables(self, renderer):
        """Missing or null values are reported together."""
        with pytest.raises(RenderError, match="task.deadline, task.status"):
            await renderer.render(
                "task-reminder", {"task": {"title": "x", "deadline": None}}
            )

    async def test_register_custom_template(self, renderer):
        """Registered templates are rendered by id."""
        renderer.register(
            NotificationTemplate(
                id="digest",
                kind=NotificationKind.SYSTEM_ALERT,
                body="{count} tasks due today",
            )
        )

        assert await renderer.render("digest", {"count": 3}) == "3 tasks due today"
        assert renderer.get("digest").variables == ["count"]

    def test_defaults_cover_every_kind(self):
        """Every notification kind has a default template."""
        assert {t.kind for t in DEFAULT_TEMPLATES} == set(NotificationKind)

    async def test_record_template_data_drops_nulls(self, renderer):
        """Top-level null values never reach the template."""
        record = make_record(
            kind=NotificationKind.TASK_COMPLETED,
            template="task-completed",
            data={"task": {"title": "Deploy"}, "completed_by": None},
        )

        assert record.template_data() == {"task": {"title": "Deploy"}}
        with pytest.raises(RenderError, match="completed_by"):
            await renderer.render(record.template, record.template_data())


class TestNotificationData:
    """Tests for the payload union discriminated by kind."""

    def test_task_payload(self):
        data = parse_notification_data(
            {"kind": "task_assigned", "task": {"title": "Review"}}
        )

        assert isinstance(data, TaskNotificationData)
        assert data.task["title"] == "Review"

    def test_server_payload_from_record(self):
        record = make_record(
            kind=NotificationKind.SERVER_EVENT,
            template="server-event",
            data={"server_id": "g1", "server_name": "Guild", "action": "bot added"},
        )

        data = record.typed_data()

        assert isinstance(data, ServerNotificationData)
        assert data.server_name == "Guild"

    def test_mismatched_payload_rejected(self):
        with pytest.raises(ValidationError):
            parse_notification_data({"kind": "user_event", "task": {}})


@pytest.fixture
def renderer() -> PlaceholderTemplateRenderer:
    return PlaceholderTemplateRenderer()
