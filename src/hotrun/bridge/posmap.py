import json
from typing import List, Optional, Sequence


class PositionMap:
    """
    Maps line numbers of transformed code back to the original source.

    Serialized as JSON: ``{"version": 1, "lines": [...]}`` where the entry at
    index ``n - 1`` is the original line of generated line ``n`` (or null).
    """

    VERSION = 1

    def __init__(self, lines: Sequence[Optional[int]]) -> None:
        self.lines: List[Optional[int]] = list(lines)

    def original_line(self, generated_line: int) -> Optional[int]:
        """
        Looks up the original line for a 1-based generated line.

        :param generated_line: Line number in the transformed code.
        :return: The original line, or None when the line is unmapped.
        """
        if 1 <= generated_line <= len(self.lines):
            return self.lines[generated_line - 1]
        return None

    def to_bytes(self) -> bytes:
        return json.dumps({"version": self.VERSION, "lines": self.lines}).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> Optional["PositionMap"]:
        """Parses a serialized map, returning None for anything malformed."""
        try:
            payload = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            return None
        if not isinstance(payload, dict) or not isinstance(payload.get("lines"), list):
            return None
        return cls(line if isinstance(line, int) else None for line in payload["lines"])

    def __eq__(self, other: object) -> bool:
        return isinstance(other, PositionMap) and self.lines == other.lines

    def __repr__(self) -> str:
        return f"PositionMap({len(self.lines)} lines)"
