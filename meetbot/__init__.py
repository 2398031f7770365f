"""Game meetup bot package.

Modules:
- config: Pydantic settings loader
- models: in-memory domain types
- errors: exception hierarchy
- parsing: /gamemeet argument validation
- scheduler: APScheduler wrapper for lifecycle timers
- interactions: button token registry
- notifier: notification port and its Telegram implementation
- meetup: the meetup lifecycle
- registry: live collection of meetups
- handlers: Telegram command handlers and app builder
"""

__all__ = [
    "config",
    "models",
    "errors",
    "parsing",
    "scheduler",
    "interactions",
    "notifier",
    "meetup",
    "registry",
    "handlers",
]
