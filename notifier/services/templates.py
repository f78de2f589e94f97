"""Template rendering for notification content.

Templates use ``{name}`` placeholders; dotted names walk nested data,
so ``{task.title}`` reads ``data["task"]["title"]``.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from notifier.errors import RenderError
from notifier.models import NotificationKind

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*)\}")


class TemplateRenderer(ABC):
    """Maps a template id and a data bag to rendered text."""

    @abstractmethod
    async def render(self, template_id: str, data: dict[str, Any]) -> str:
        """Render a template.

        Raises:
            RenderError: Unknown template or data that does not fit it
        """
        pass


@dataclass(frozen=True)
class NotificationTemplate:
    """A named template body."""

    id: str
    kind: NotificationKind
    body: str

    @property
    def variables(self) -> list[str]:
        return PLACEHOLDER_PATTERN.findall(self.body)


DEFAULT_TEMPLATES: tuple[NotificationTemplate, ...] = (
    NotificationTemplate(
        id="task-reminder",
        kind=NotificationKind.TASK_REMINDER,
        body='🔔 Reminder for task "{task.title}"\n\nDeadline: {task.deadline}\nStatus: {task.status}',
    ),
    NotificationTemplate(
        id="task-due",
        kind=NotificationKind.TASK_DUE,
        body='⏰ Task deadline approaching: "{task.title}"\n\nDeadline: {task.deadline}\nStatus: {task.status}',
    ),
    NotificationTemplate(
        id="task-overdue",
        kind=NotificationKind.TASK_OVERDUE,
        body='⚠️ Task overdue: "{task.title}"\n\nDeadline was: {task.deadline}',
    ),
    NotificationTemplate(
        id="task-assigned",
        kind=NotificationKind.TASK_ASSIGNED,
        body='👤 Task assigned: "{task.title}"\n\nAssigned to: {task.assignee}\nDeadline: {task.deadline}',
    ),
    NotificationTemplate(
        id="task-completed",
        kind=NotificationKind.TASK_COMPLETED,
        body='✅ Task completed: "{task.title}"\n\nCompleted by: {completed_by}',
    ),
    NotificationTemplate(
        id="server-event",
        kind=NotificationKind.SERVER_EVENT,
        body="🛠️ {server_name}: {action}",
    ),
    NotificationTemplate(
        id="user-event",
        kind=NotificationKind.USER_EVENT,
        body="👋 {username}: {action}",
    ),
    NotificationTemplate(
        id="system-alert",
        kind=NotificationKind.SYSTEM_ALERT,
        body="🔧 System notice\n\n{message}",
    ),
)


def _resolve(data: dict[str, Any], path: str) -> Any:
    value: Any = data
    for part in path.split("."):
        if isinstance(value, dict) and part in value:
            value = value[part]
        else:
            raise KeyError(path)
    if value is None:
        raise KeyError(path)
    return value


class PlaceholderTemplateRenderer(TemplateRenderer):
    """In-process renderer over a registry of NotificationTemplate."""

    def __init__(self, templates: tuple[NotificationTemplate, ...] = DEFAULT_TEMPLATES) -> None:
        self._templates: dict[str, NotificationTemplate] = {}
        for template in templates:
            self.register(template)

    def register(self, template: NotificationTemplate) -> None:
        self._templates[template.id] = template

    def get(self, template_id: str) -> NotificationTemplate | None:
        return self._templates.get(template_id)

    async def render(self, template_id: str, data: dict[str, Any]) -> str:
        template = self._templates.get(template_id)
        if template is None:
            raise RenderError(template_id, "unknown template")

        missing: list[str] = []

        def substitute(match: re.Match) -> str:
            try:
                return str(_resolve(data, match.group(1)))
            except KeyError:
                missing.append(match.group(1))
                return match.group(0)

        rendered = PLACEHOLDER_PATTERN.sub(substitute, template.body)
        if missing:
            raise RenderError(template_id, f"missing variables: {', '.join(missing)}")
        return rendered
