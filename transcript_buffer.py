"""Base text plus captured segment, presented as one merged string."""

from __future__ import annotations


def join_text(left: str, right: str) -> str:
    """Join two pieces with a single space, only when both are non-empty."""
    if left and right:
        return f"{left} {right}"
    return left or right


class TranscriptMergeBuffer:
    """Holds the bio snapshot and the words captured on top of it.

    ``base_text`` is fixed for the lifetime of the buffer. Final fragments are
    only ever appended; interim text is replaced on every update and dropped
    once the buffer is finalized.
    """

    def __init__(self, base_text: str = "") -> None:
        self._base_text = base_text
        self._accumulated_final = ""
        self._last_interim = ""

    @property
    def base_text(self) -> str:
        return self._base_text

    @property
    def accumulated_final(self) -> str:
        return self._accumulated_final

    @property
    def last_interim(self) -> str:
        return self._last_interim

    def apply_final(self, fragment: str) -> bool:
        text = fragment.strip()
        self._last_interim = ""
        if not text:
            return False
        self._accumulated_final = join_text(self._accumulated_final, text)
        return True

    def set_interim(self, fragment: str) -> None:
        self._last_interim = fragment.strip()

    def clear_interim(self) -> None:
        self._last_interim = ""

    def has_capture(self) -> bool:
        return bool(self._accumulated_final or self._last_interim)

    def effective_base(self) -> str:
        """Base text with every final fragment folded in."""
        return join_text(self._base_text, self._accumulated_final)

    def merged(self) -> str:
        captured = join_text(self._accumulated_final, self._last_interim)
        return join_text(self._base_text, captured)

    def finalized(self) -> str:
        self._last_interim = ""
        return self.effective_base()
