"""Tab completer for the interactive PyFS client.

The completer separates **what to complete** (pure logic, fully
testable) from **how to wire it** (readline integration in the client).

The ``complete(text, state)`` method is the readline callback.  It
delegates to ``completions(text, line)`` which looks at the input so
far and returns a list of candidate strings:

- first word → protocol keywords (matched case-insensitively, offered
  in the case the user started typing);
- second word of a file command → names of files on the server.
"""

from __future__ import annotations

import readline
from collections.abc import Callable

COMMANDS: tuple[str, ...] = ("CREATE", "DELETE", "EXIT", "LIST", "QUIT", "READ", "WRITE")

# Commands whose first argument is a filename on the server.
_FILE_COMMANDS: frozenset[str] = frozenset(["READ", "WRITE", "DELETE"])


class Completer:
    """Complete protocol keywords and remote filenames."""

    def __init__(self, list_files: Callable[[], list[str]]) -> None:
        """Create a completer.

        Args:
            list_files: Returns the filenames currently on the server.
                Called lazily, only when a filename is being completed.

        """
        self._list_files = list_files

    def complete(self, text: str, state: int) -> str | None:
        """Readline callback — return the *state*-th candidate for *text*.

        Args:
            text: The partial word being completed.
            state: Index into the candidate list (0, 1, 2, …).

        Returns:
            The candidate at *state*, or ``None`` when exhausted.

        """
        line = readline.get_line_buffer()
        candidates = self.completions(text, line)
        if state < len(candidates):
            return candidates[state]
        return None

    def completions(self, text: str, line: str) -> list[str]:
        """Return completion candidates based on context.

        Args:
            text: The partial word under the cursor.
            line: The full input line so far.

        Returns:
            Sorted list of matching candidates.

        """
        words = line.lstrip().split()

        # No words yet, or still typing the first word → keyword completion
        if not words or (len(words) == 1 and not line.endswith(" ")):
            return self._complete_commands(text)

        typing_second = len(words) == 1 or (len(words) == 2 and not line.endswith(" "))  # noqa: PLR2004
        if words[0].upper() in _FILE_COMMANDS and typing_second:
            return self._complete_files(text)
        return []

    @staticmethod
    def _complete_commands(text: str) -> list[str]:
        """Complete protocol keywords, keeping the user's case."""
        matches = [cmd for cmd in COMMANDS if cmd.startswith(text.upper())]
        if text and text.islower():
            return [cmd.lower() for cmd in matches]
        return matches

    def _complete_files(self, text: str) -> list[str]:
        """Complete filenames from the server's file list."""
        try:
            names = self._list_files()
        except OSError:
            return []
        return sorted(name for name in names if name.startswith(text))
