"""Read-along: split text into spoken chunks and track playback position."""

from dataclasses import dataclass, field
import re
from typing import Literal

ChunkMode = Literal["paragraph", "line"]

_BLANK_LINE = re.compile(r"\n\s*\n")


def chunk_text(text: str, mode: ChunkMode = "paragraph") -> list[str]:
    """Split text for synthesis.

    Paragraph mode splits on blank lines and falls back to single lines when the
    text is one multi-line block. Empty or whitespace-only text yields no chunks.
    """
    if not text or not text.strip():
        return []

    if mode == "paragraph":
        chunks = [chunk.strip() for chunk in _BLANK_LINE.split(text) if chunk.strip()]
        if len(chunks) != 1 or "\n" not in chunks[0]:
            return chunks

    return [line.strip() for line in text.splitlines() if line.strip()]


@dataclass(frozen=True)
class LimitCheck:
    valid: bool
    message: str


def check_limits(
    chunks: list[str], max_chunks: int = 30, max_chars: int = 1200
) -> LimitCheck:
    if len(chunks) > max_chunks:
        return LimitCheck(False, f"Too many chunks ({len(chunks)} > {max_chunks})")

    for index, chunk in enumerate(chunks, 1):
        if len(chunk) > max_chars:
            return LimitCheck(False, f"Chunk {index} too long ({len(chunk)} > {max_chars})")

    return LimitCheck(True, "OK")


@dataclass
class ReadAlongSession:
    """Playback position over a list of chunks; ``current_index`` is -1 when idle."""

    chunks: list[str] = field(default_factory=list)
    current_index: int = -1
    is_playing: bool = False
    is_paused: bool = False
    error: str | None = None

    def start(self) -> None:
        if not self.chunks:
            raise ValueError("No text to synthesize")
        self.current_index = 0
        self.is_playing = True
        self.is_paused = False
        self.error = None

    def advance(self) -> bool:
        """Move to the next chunk; returns False (and stops) after the last one."""
        if not self.is_playing:
            return False
        if self.current_index + 1 >= len(self.chunks):
            self.stop()
            return False
        self.current_index += 1
        return True

    def pause(self) -> None:
        if self.is_playing:
            self.is_paused = True

    def resume(self) -> None:
        self.is_paused = False

    def stop(self) -> None:
        self.current_index = -1
        self.is_playing = False
        self.is_paused = False

    def fail(self, error: str) -> None:
        self.stop()
        self.error = error

    def highlighted(self) -> list[bool]:
        return [index == self.current_index for index in range(len(self.chunks))]
