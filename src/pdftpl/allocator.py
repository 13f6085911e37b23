"""Global template id counter owned by one coordinator."""

from __future__ import annotations


class TemplateIdAllocator:
    """Hand out strictly increasing template ids that are never reused."""

    def __init__(self, start: int = 0) -> None:
        if start < 0:
            raise ValueError("Template ids cannot start below zero")
        self._next = start

    def peek(self) -> int:
        """Return the id the next allocation will produce."""

        return self._next

    def allocate(self) -> int:
        template_id = self._next
        self._next += 1
        return template_id
