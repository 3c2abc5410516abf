"""Command history with most-recent-wins de-duplication"""

from typing import List, Optional


class CommandHistory:
    """
    Submitted commands, oldest first, with a browsing cursor.

    The cursor counts back from the newest entry: -1 means "not browsing",
    0 is the newest command, len - 1 the oldest. Moving the cursor never
    changes the entries.
    """

    def __init__(self):
        self._entries: List[str] = []
        self._cursor = -1

    @property
    def entries(self) -> List[str]:
        return list(self._entries)

    @property
    def cursor(self) -> int:
        return self._cursor

    def add(self, command: str) -> None:
        """Append a command, dropping an earlier identical entry, and stop browsing"""
        if command in self._entries:
            self._entries.remove(command)
        self._entries.append(command)
        self._cursor = -1

    def up(self) -> Optional[str]:
        """
        Step toward older entries.

        Stops at the oldest entry (never wraps).

        Returns:
            The selected command, or None when the history is empty
        """
        if not self._entries:
            return None
        self._cursor = min(self._cursor + 1, len(self._entries) - 1)
        return self._entry_at_cursor()

    def down(self) -> str:
        """
        Step toward newer entries.

        Returns:
            The selected command, or "" once past the newest entry
        """
        if self._cursor <= 0:
            self._cursor = -1
            return ""
        self._cursor -= 1
        return self._entry_at_cursor()

    def reset(self) -> None:
        """Stop browsing"""
        self._cursor = -1

    def _entry_at_cursor(self) -> str:
        return self._entries[len(self._entries) - 1 - self._cursor]

    def __len__(self) -> int:
        return len(self._entries)
