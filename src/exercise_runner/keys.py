"""Keypress decoding for raw terminal input.

Turns raw stdin chunks into KeyEvent records:
- Control characters (0x01-0x1a) become ctrl+<letter>
- ESC followed by a character becomes meta+<character>
- CSI / SS3 escape sequences become named keys (arrows, F-keys, ...)
  with xterm-style modifier parameters decoded into ctrl/meta/shift

Kill gestures are ctrl+c, meta+c, ctrl+q and meta+q.
"""

from __future__ import annotations

import codecs
import re
from dataclasses import dataclass

__all__ = [
    "KeyEvent",
    "KeyDecoder",
    "decode_keys",
    "is_kill_gesture",
]

ESC = "\x1b"

_ESCAPE_SEQUENCE = re.compile(r"\x1b([\[O])([0-9;]*)([~A-Za-z])")

_LETTER_KEYS = {
    "A": "up",
    "B": "down",
    "C": "right",
    "D": "left",
    "E": "clear",
    "F": "end",
    "H": "home",
    "P": "f1",
    "Q": "f2",
    "R": "f3",
    "S": "f4",
    "Z": "tab",
}

_TILDE_KEYS = {
    "1": "home",
    "2": "insert",
    "3": "delete",
    "4": "end",
    "5": "pageup",
    "6": "pagedown",
    "7": "home",
    "8": "end",
    "11": "f1",
    "12": "f2",
    "13": "f3",
    "14": "f4",
    "15": "f5",
    "17": "f6",
    "18": "f7",
    "19": "f8",
    "20": "f9",
    "21": "f10",
    "23": "f11",
    "24": "f12",
}

_SPECIAL_CHARS = {
    "\r": "return",
    "\n": "enter",
    "\t": "tab",
    "\b": "backspace",
    "\x7f": "backspace",
    ESC: "escape",
    " ": "space",
}

_KILL_KEY_NAMES = frozenset({"c", "q"})


@dataclass(frozen=True)
class KeyEvent:
    """A single decoded keypress.

    Attributes:
        name: Key name ("a", "up", "return", ...); empty for punctuation
        sequence: The characters that produced this key
        ctrl: Control modifier
        meta: Meta/Alt modifier
        shift: Shift modifier
    """

    name: str
    sequence: str
    ctrl: bool = False
    meta: bool = False
    shift: bool = False


def is_kill_gesture(key: KeyEvent) -> bool:
    """Return True for ctrl+c, meta+c, ctrl+q and meta+q."""
    return key.name in _KILL_KEY_NAMES and (key.ctrl or key.meta)


def _char_key(ch: str, *, meta: bool = False, sequence: str | None = None) -> KeyEvent:
    seq = sequence if sequence is not None else ch

    if ch in _SPECIAL_CHARS:
        return KeyEvent(_SPECIAL_CHARS[ch], seq, meta=meta)

    code = ord(ch)
    if code == 0:
        return KeyEvent("space", seq, ctrl=True, meta=meta)
    if 0x01 <= code <= 0x1A:
        return KeyEvent(chr(code + 0x60), seq, ctrl=True, meta=meta)

    if ch.isascii() and (ch.islower() or ch.isdigit()):
        return KeyEvent(ch, seq, meta=meta)
    if ch.isascii() and ch.isupper():
        return KeyEvent(ch.lower(), seq, meta=meta, shift=True)

    return KeyEvent("", seq, meta=meta)


def _escape_key(match: re.Match[str]) -> KeyEvent:
    _, params, final = match.groups()
    parts = params.split(";") if params else []

    if final == "~":
        name = _TILDE_KEYS.get(parts[0] if parts else "", "")
    else:
        name = _LETTER_KEYS.get(final, "")

    # xterm modifier: 1 + (shift=1 | alt=2 | ctrl=4 | meta=8)
    modifier = 0
    if len(parts) >= 2 and parts[1].isdigit():
        modifier = max(int(parts[1]) - 1, 0)

    return KeyEvent(
        name,
        match.group(0),
        ctrl=bool(modifier & 4),
        meta=bool(modifier & 10),
        shift=bool(modifier & 1) or final == "Z",
    )


def decode_keys(text: str) -> list[KeyEvent]:
    """Split decoded terminal input into key events."""
    keys: list[KeyEvent] = []
    i = 0
    while i < len(text):
        ch = text[i]

        if ch != ESC or i + 1 >= len(text):
            keys.append(_char_key(ch))
            i += 1
            continue

        match = _ESCAPE_SEQUENCE.match(text, i)
        if match:
            keys.append(_escape_key(match))
            i = match.end()
            continue

        # ESC + char is how terminals send Alt/Meta combinations
        keys.append(_char_key(text[i + 1], meta=True, sequence=text[i : i + 2]))
        i += 2

    return keys


class KeyDecoder:
    """Incremental bytes -> KeyEvent decoder.

    Multi-byte UTF-8 characters split across reads are held back until
    complete; escape sequences are expected to arrive within one read.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")

    def feed(self, chunk: bytes) -> list[KeyEvent]:
        return decode_keys(self._decoder.decode(chunk))

    def reset(self) -> None:
        self._decoder.reset()
