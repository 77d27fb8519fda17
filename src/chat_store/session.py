"""Chat session: the transcript side of the store.

Accumulates an ordered transcript, hands snapshots to the engine under the
session's current identifier, and turns engine notifications into system lines.
"""
from __future__ import annotations

import subprocess
import time
from dataclasses import dataclass
from typing import Callable, Sequence

from chat_core.codec import Content
from chat_core.protocol import NEW_ID

from .engine import Storage

# Swap the argv for a real chat CLI; "{input}" is replaced by the user's text.
DEFAULT_COMMAND = ("echo", "Simulated AI Response to: {input}")


@dataclass(frozen=True)
class ChatStyle:
    """Rendering configuration handed to whoever draws the transcript."""

    user_prefix: str = "User : "
    bot_prefix: str = "Bot : "
    system_prefix: str = "System : "
    user_color: str = "magenta"
    bot_color: str = "cyan"
    system_color: str = "yellow"


def run_chat_command(user_input: str, command: Sequence[str] = DEFAULT_COMMAND) -> str:
    """Run the external chat command and return its combined output.

    Failures come back as the response text rather than raising.
    """
    argv = [a.replace("{input}", user_input) for a in command]
    if not any("{input}" in a for a in command):
        argv.append(user_input)

    try:
        proc = subprocess.run(
            argv,
            check=False,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )
    except OSError as e:
        return f"Error executing command: {e}"
    if proc.returncode != 0:
        return f"Error executing command: exit status {proc.returncode}"
    return proc.stdout.rstrip("\n")


def messages_to_payload(messages: Sequence[str]) -> bytes:
    return "".join(m + "\n" for m in messages).encode("utf-8")


class ChatSession:
    def __init__(
        self,
        storage: Storage,
        command: Sequence[str] = DEFAULT_COMMAND,
        style: ChatStyle | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage
        self.command = tuple(command)
        self.style = style or ChatStyle()
        self.clock = clock
        # messages is what gets displayed; history is what gets saved (no system lines).
        self.messages: list[str] = []
        self.history: list[str] = []
        self.current_id = NEW_ID
        self.created_at: int | None = None

    def _record(self, *lines: str) -> None:
        self.messages.extend(lines)
        self.history.extend(lines)

    def add_user(self, text: str) -> None:
        self._record(self.style.user_prefix + text)

    def add_bot(self, text: str) -> None:
        self._record(self.style.bot_prefix + text, "")

    def add_system(self, text: str) -> None:
        self.messages.append(self.style.system_prefix + text)
        self.messages.append("")

    def ask(self, user_input: str) -> str:
        self.add_user(user_input)
        response = run_chat_command(user_input, self.command)
        self.add_bot(response)
        return response

    def snapshot(self) -> Content:
        now = int(self.clock())
        created = self.created_at if self.created_at is not None else now
        return Content(
            id=self.current_id,
            created_at=created,
            updated_at=now,
            content=messages_to_payload(self.history),
        )

    def save(self) -> int:
        """Persist the transcript; the first save allocates, later saves overwrite."""
        snap = self.snapshot()
        self.current_id = self.storage.store(self.current_id, snap)
        self.created_at = snap.created_at
        return self.current_id

    def pump_notifications(self, timeout: float | None = 0) -> list[str]:
        """Move pending engine notifications into the displayed transcript as system lines."""
        received: list[str] = []
        while True:
            msg = self.storage.notifier.wait_next(timeout)
            if msg is None:
                break
            self.add_system(msg)
            received.append(msg)
        return received
