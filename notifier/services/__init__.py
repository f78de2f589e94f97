"""Supporting services for the notification pipeline.

Services:
- templates.py: Template registry and placeholder rendering
- recurrence.py: Calendar-aware next-occurrence arithmetic
- cache.py: Cache providers (memory, redis) for the caching store
"""

from notifier.services.cache import CacheProvider, MemoryCacheProvider, RedisCacheProvider
from notifier.services.recurrence import next_occurrence, next_reminder_time, parse_pattern
from notifier.services.templates import (
    DEFAULT_TEMPLATES,
    NotificationTemplate,
    PlaceholderTemplateRenderer,
    TemplateRenderer,
)

__all__ = [
    # Cache
    "CacheProvider",
    "MemoryCacheProvider",
    "RedisCacheProvider",
    # Recurrence
    "next_occurrence",
    "next_reminder_time",
    "parse_pattern",
    # Templates
    "DEFAULT_TEMPLATES",
    "NotificationTemplate",
    "PlaceholderTemplateRenderer",
    "TemplateRenderer",
]
