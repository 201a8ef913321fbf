"""Encode and decode project directory paths <-> session-log directory names.

Path separators become ``-``. Characters that are unsafe in directory names,
plus the ``-`` and ``%`` characters themselves, are written as ``%XX`` (upper
case hex of the ASCII code). Because ``-`` only ever stands for a separator and
``%`` only ever starts an escape, the encoding is injective and
``decode_path`` accepts exactly the strings ``encode_path`` can produce::

    /home/wiz/my-app  ->  -home-wiz-my%2Dapp
"""

from __future__ import annotations

import re

from .errors import InvalidIdentifier

SEPARATOR = "-"
ESCAPE = "%"
PATH_SEPARATOR = "/"
_ESCAPED_CHARACTERS = frozenset('-%\\:*?"<>|')
_ESCAPE_PATTERN = re.compile(r"%([0-9A-F]{2})")


def _needs_escape(char: str) -> bool:
    code = ord(char)
    return char in _ESCAPED_CHARACTERS or code < 0x20 or code == 0x7F


def encode_path(path: str) -> str:
    """Encode a filesystem path to a project directory name.

    Only `/` is a separator; a backslash is an ordinary filename character and
    is escaped like the other reserved characters.
    """
    if not path:
        raise ValueError("Cannot encode an empty path.")
    parts: list[str] = []
    for char in path:
        if char == PATH_SEPARATOR:
            parts.append(SEPARATOR)
        elif _needs_escape(char):
            parts.append(f"{ESCAPE}{ord(char):02X}")
        else:
            parts.append(char)
    return "".join(parts)


def decode_path(identifier: str) -> str:
    """Decode a project directory name back to the path it was encoded from.

    Raises:
        InvalidIdentifier: If the name could not have been produced by `encode_path`.
    """
    if not identifier:
        raise InvalidIdentifier("Empty project identifier.")

    decoded: list[str] = []
    index = 0
    while index < len(identifier):
        char = identifier[index]
        if char == SEPARATOR:
            decoded.append(PATH_SEPARATOR)
            index += 1
            continue
        if char == ESCAPE:
            match = _ESCAPE_PATTERN.match(identifier, index)
            if match is None:
                raise InvalidIdentifier(f"Bad escape at offset {index} in {identifier!r}.")
            escaped = chr(int(match.group(1), 16))
            if not _needs_escape(escaped):
                raise InvalidIdentifier(f"Non-canonical escape {match.group(0)!r} in {identifier!r}.")
            decoded.append(escaped)
            index = match.end()
            continue
        if char == PATH_SEPARATOR or _needs_escape(char):
            raise InvalidIdentifier(f"Unescaped character {char!r} at offset {index} in {identifier!r}.")
        decoded.append(char)
        index += 1
    return "".join(decoded)


def project_display_name(identifier: str) -> str:
    """Get the last path segment as the project display name.

    -home-wiz-AI-LLM -> LLM
    """
    try:
        path = decode_path(identifier)
    except InvalidIdentifier:
        return identifier
    trimmed = path.rstrip("/")
    return trimmed.rsplit("/", 1)[-1] if trimmed else identifier
