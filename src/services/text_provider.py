"""Generative text provider contract."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import List, Optional

from utils.error_handling import ProviderError


class TextProvider(ABC):
    """Anything that can turn a prompt into text."""

    name: str = "provider"

    @abstractmethod
    def complete(self, prompt: str, max_tokens: int, temperature: float) -> str:
        """Return generated text or raise ProviderError."""


class StaticTextProvider(TextProvider):
    """
    Deterministic provider for local runs and tests.

    Echoes a fixed reply, can sleep to simulate a slow model and can be told
    to fail. Every prompt it sees is kept in ``prompts``.
    """

    name = "static"

    def __init__(
        self,
        reply: str = "Thanks for reaching out. Here is what we suggest.",
        delay_seconds: float = 0.0,
        error: Optional[Exception] = None,
    ):
        self.reply = reply
        self.delay_seconds = delay_seconds
        self.error = error
        self.prompts: List[str] = []

    def complete(self, prompt: str, max_tokens: int, temperature: float) -> str:
        self.prompts.append(prompt)
        if self.delay_seconds:
            time.sleep(self.delay_seconds)
        if self.error is not None:
            if isinstance(self.error, ProviderError):
                raise self.error
            raise ProviderError(str(self.error), provider=self.name) from self.error
        return self.reply
