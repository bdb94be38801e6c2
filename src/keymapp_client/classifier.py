"""
Failure classification for remote calls.

The Keymapp service reports "you are already where you asked to be" and
"there is nothing to connect to" as ordinary RPC failures. The only way to
tell them apart from real failures is the diagnostic text, so this module
matches it case-insensitively against two small phrase sets.

This is a fragile contract: it depends on the exact wording of a service we
do not own. Any rewording on the service side silently stops matching, and
an unmatched failure is always treated as GENUINE, which is the safe side.
Callers only see the `PhraseClassifier` interface so the strategy can be
replaced without touching them.
"""
from enum import Enum
from typing import Iterable, Optional, Tuple

from keymapp_client.errors import RemoteOperationError

ALREADY_CONNECTED_PHRASES: Tuple[str, ...] = ("already connected",)
NO_KEYBOARD_PHRASES: Tuple[str, ...] = ("no keyboard available", "no keyboards available")


class FailureKind(str, Enum):
    ALREADY_CONNECTED = "already_connected"
    NO_KEYBOARD_AVAILABLE = "no_keyboard_available"
    GENUINE = "genuine"

    @property
    def benign(self) -> bool:
        return self is not FailureKind.GENUINE


class PhraseClassifier:
    """Maps a diagnostic string to a `FailureKind` by substring containment."""

    def __init__(self,
                 already_connected: Iterable[str] = ALREADY_CONNECTED_PHRASES,
                 no_keyboard: Iterable[str] = NO_KEYBOARD_PHRASES):
        self.already_connected = tuple(p.lower() for p in already_connected)
        self.no_keyboard = tuple(p.lower() for p in no_keyboard)

    def classify(self, detail: Optional[str]) -> FailureKind:
        if not detail:
            return FailureKind.GENUINE
        text = detail.lower()
        if any(phrase in text for phrase in self.already_connected):
            return FailureKind.ALREADY_CONNECTED
        if any(phrase in text for phrase in self.no_keyboard):
            return FailureKind.NO_KEYBOARD_AVAILABLE
        return FailureKind.GENUINE

    def classify_error(self, error: BaseException) -> FailureKind:
        """Only remote failures carry a diagnostic; everything else is genuine."""
        if isinstance(error, RemoteOperationError):
            return self.classify(error.detail)
        return FailureKind.GENUINE


default_classifier = PhraseClassifier()


def classify(detail: Optional[str]) -> FailureKind:
    return default_classifier.classify(detail)


def classify_error(error: BaseException) -> FailureKind:
    return default_classifier.classify_error(error)
