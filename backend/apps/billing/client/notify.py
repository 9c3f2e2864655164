"""
Notification and navigation seams for the billing client.

The page layer provides concrete implementations (toasts, router, browser
location).
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol


class Severity(StrEnum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


@dataclass(frozen=True)
class Notification:
    """A dismissible user-facing message."""

    title: str
    description: str
    severity: Severity = Severity.INFO


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None: ...


class Navigator(Protocol):
    def navigate(self, path: str) -> None:
        """In-app navigation."""
        ...

    def redirect(self, url: str) -> None:
        """Full-page navigation away from the app."""
        ...
