"""Conversation memory for language-model agents."""

import threading
from typing import Dict, List


class ConversationBuffer:
    """Unbounded, in-order record of the turns exchanged with one agent."""

    USER = "user"
    MODEL = "model"

    def __init__(self):
        self._lock = threading.Lock()
        self._turns: List[Dict[str, str]] = []

    def add(self, role: str, text: str) -> None:
        with self._lock:
            self._turns.append({"role": role, "text": text})

    def add_user(self, text: str) -> None:
        self.add(self.USER, text)

    def add_model(self, text: str) -> None:
        self.add(self.MODEL, text)

    def turns(self) -> List[Dict[str, str]]:
        with self._lock:
            return [dict(turn) for turn in self._turns]

    def clear(self) -> None:
        with self._lock:
            self._turns.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._turns)
