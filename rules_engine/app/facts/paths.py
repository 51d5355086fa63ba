"""
Path navigation into resolved fact values.

Supported syntax: dot segments and bracket segments with an optional
leading ``$`` or ``.``, e.g. ``profile.addresses[0].city``,
``$.scores["math"]``, ``[2]``.
"""

import re
from typing import Any, List, Mapping, Optional, Sequence, Union

from shared.errors import PathResolutionError


_TOKEN = re.compile(
    r"""
    \.?(?P<name>[^.\[\]]+)                  # name segment
    | \[(?P<index>-?\d+)\]                   # [0]
    | \[(?P<quote>['"])(?P<key>.*?)(?P=quote)\]   # ["key"] / ['key']
    """,
    re.VERBOSE,
)


def parse_path(path: str) -> List[Union[str, int]]:
    """Split a path into key (str) and index (int) segments."""
    text = path.strip()
    if text.startswith("$"):
        text = text[1:]
    segments: List[Union[str, int]] = []
    position = 0
    while position < len(text):
        match = _TOKEN.match(text, position)
        if match is None or match.end() == position:
            raise PathResolutionError(path, f"malformed path at offset {position}")
        if match.group("name") is not None:
            segments.append(match.group("name"))
        elif match.group("index") is not None:
            segments.append(int(match.group("index")))
        else:
            segments.append(match.group("key"))
        position = match.end()
    if not segments:
        raise PathResolutionError(path, "empty path")
    return segments


def resolve_path(value: Any, path: str, fact_id: Optional[str] = None) -> Any:
    """Navigate into mappings (by key) and sequences (by index)."""
    current = value
    for segment in parse_path(path):
        if isinstance(current, Mapping):
            if isinstance(segment, int) and segment not in current:
                segment = str(segment)
            if segment not in current:
                raise PathResolutionError(path, f"key {segment!r} not found", fact_id, segment)
            current = current[segment]
        elif isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
            try:
                index = segment if isinstance(segment, int) else int(segment)
                current = current[index]
            except (ValueError, IndexError):
                raise PathResolutionError(path, f"index {segment!r} out of range", fact_id, segment)
        else:
            raise PathResolutionError(
                path, f"cannot index into {type(current).__name__}", fact_id, segment
            )
    return current
