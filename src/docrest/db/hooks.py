import inspect
from collections.abc import Awaitable, Callable
from typing import Any

Hook = Callable[[dict[str, Any]], Awaitable[None] | None]

EVENTS = ("pre_save", "post_save", "pre_remove", "post_remove")


class Hooks:
    """Per-collection lifecycle callbacks, run in registration order."""

    def __init__(self) -> None:
        self._hooks: dict[str, list[Hook]] = {event: [] for event in EVENTS}

    def add(self, event: str, hook: Hook) -> None:
        if event not in self._hooks:
            raise ValueError(f"Unknown hook event {event!r}; expected one of {', '.join(EVENTS)}")
        self._hooks[event].append(hook)

    async def run(self, event: str, document: dict[str, Any]) -> None:
        for hook in self._hooks[event]:
            result = hook(document)
            if inspect.isawaitable(result):
                await result
