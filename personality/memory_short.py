"""Short-term chat window for one agent.

Holds only user/assistant turns; the system prompt is compiled fresh each
turn by core/prompt.py and is never stored here.
"""

from __future__ import annotations

MAX_MESSAGES = 20


class ShortTermMemory:
    def __init__(self, max_messages: int = MAX_MESSAGES):
        self.max_messages = max(1, int(max_messages))
        self.messages: list[dict[str, str]] = []

    def hydrate_from_history(self, history) -> None:
        """Rebuild the window from persistent history (e.g., SQLite) after a restart.

        Expected input: list of {"role": "user"/"assistant", "content": "..."}
        in chronological order (oldest -> newest). Other roles are ignored.
        """
        cleaned = []
        for m in history or []:
            if not isinstance(m, dict):
                continue
            role = str(m.get("role", "")).strip().lower()
            content = str(m.get("content", "")).strip()
            if role not in ("user", "assistant") or not content:
                continue
            cleaned.append({"role": role, "content": content})

        self.messages = cleaned[-self.max_messages:]

    def add(self, role: str, content: str) -> None:
        """Add a new message, keeping only the most recent max_messages."""
        self.messages.append({"role": role, "content": content})
        if len(self.messages) > self.max_messages:
            self.messages = self.messages[-self.max_messages:]

    def recent(self, limit: int) -> list[dict[str, str]]:
        if limit <= 0:
            return []
        return [dict(m) for m in self.messages[-limit:]]

    def last_assistant(self) -> str | None:
        for m in reversed(self.messages):
            if m["role"] == "assistant":
                return m["content"]
        return None

    def clear(self) -> None:
        self.messages = []
