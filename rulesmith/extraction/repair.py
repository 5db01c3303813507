"""
Text Repair Chain - Best-effort fixes for almost-JSON oracle output.

The chain is an ordered list of pure str -> str passes:
1. strip_wrappers            fences, comments, return/semicolon wrappers, control chars
2. quote_bare_keys           {name: 1} -> {"name": 1}
3. remove_extra_commas       trailing, leading and duplicated commas
4. normalize_quotes          'single' -> "double" for values opened at a boundary
5. escape_string_internals   raw newlines and stray quotes inside strings
6. coerce_structure          only when still unparseable: wrap, then json_repair

Passes 1-4 are idempotent. Pass 5 is a boundary heuristic, not a tokenizer,
and can lose information. repair() never touches text that already parses.

last_resort_repair() is a separate, more destructive tier: it collapses
whitespace (including inside strings) before handing the text to
json_repair. It is only used after the standard chain has failed.
"""

from __future__ import annotations
from typing import Any, Callable
import json
import re

from json_repair import repair_json

Pass = Callable[[str], str]

_MAX_ROUNDS = 8

_FENCE_OPEN = re.compile(r"^\s*```[\w-]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?\s*```\s*$")
_RETURN = re.compile(r"^\s*return\s+")
_TRAILING_SEMI = re.compile(r"[;\s]+$")
_CONTROL = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

_BARE_KEY = re.compile(r"([{,]\s*)([A-Za-z_$][\w$]*)(\s*):")
_LEADING_BARE_KEY = re.compile(r"^(\s*)([A-Za-z_$][\w$]*)(\s*):")
_DUPLICATE_COMMA = re.compile(r",\s*,")
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_LEADING_COMMA = re.compile(r"([\[{]\s*),")

_OPENERS = "{["
_DECODER = json.JSONDecoder()


class RepairError(ValueError):
    """Raised when no repair tier produces parseable JSON."""


def parses(text: str) -> bool:
    """True when text is valid JSON as-is."""
    try:
        json.loads(text)
    except (ValueError, TypeError):
        return False
    return True


# =============================================================================
# String-literal scanning
# =============================================================================

def _string_end(text: str, start: int) -> int:
    """Index just past the string literal opening at start (len(text) if unterminated)."""
    quote = text[start]
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        i += 1
    return len(text)


def _segments(text: str) -> list[tuple[bool, str]]:
    """Split text into (is_string, chunk) pieces; string chunks keep their quotes."""
    segments: list[tuple[bool, str]] = []
    buf_start = 0
    i = 0
    while i < len(text):
        if text[i] in "\"'":
            if i > buf_start:
                segments.append((False, text[buf_start:i]))
            end = _string_end(text, i)
            segments.append((True, text[i:end]))
            i = buf_start = end
            continue
        i += 1
    if buf_start < len(text):
        segments.append((False, text[buf_start:]))
    return segments


def _map_outside(text: str, fn: Callable[[str, bool], str]) -> str:
    """Apply fn to every chunk outside string literals; fn also gets is_first."""
    out = []
    for index, (is_string, chunk) in enumerate(_segments(text)):
        out.append(chunk if is_string else fn(chunk, index == 0))
    return "".join(out)


def _until_stable(fn: Pass, text: str) -> str:
    for _ in range(_MAX_ROUNDS):
        fixed = fn(text)
        if fixed == text:
            return fixed
        text = fixed
    return text


# =============================================================================
# Pass 1 - wrappers, comments, control characters
# =============================================================================

def _strip_comments(text: str) -> str:
    out = []
    i, n = 0, len(text)
    quote = None
    while i < n:
        ch = text[i]
        if quote:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == quote:
                quote = None
            i += 1
            continue
        if ch in "\"'":
            quote = ch
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
            continue
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _strip_wrappers_once(text: str) -> str:
    fixed = _FENCE_OPEN.sub("", text)
    fixed = _FENCE_CLOSE.sub("", fixed)
    fixed = _strip_comments(fixed)
    fixed = _RETURN.sub("", fixed)
    fixed = _TRAILING_SEMI.sub("", fixed)
    fixed = _CONTROL.sub("", fixed)
    return fixed.strip()


def strip_wrappers(text: str) -> str:
    """Remove code fences, comments, return/semicolon wrappers and control characters."""
    return _until_stable(_strip_wrappers_once, text)


# =============================================================================
# Pass 2 - bare keys
# =============================================================================

def _quote_keys_chunk(chunk: str, is_first: bool) -> str:
    fixed = _BARE_KEY.sub(r'\1"\2"\3:', chunk)
    if is_first:
        fixed = _LEADING_BARE_KEY.sub(r'\1"\2"\3:', fixed)
    return fixed


def quote_bare_keys(text: str) -> str:
    """Quote unquoted object keys."""
    return _until_stable(lambda t: _map_outside(t, _quote_keys_chunk), text)


# =============================================================================
# Pass 3 - commas
# =============================================================================

def _commas_chunk(chunk: str, is_first: bool) -> str:
    fixed = _DUPLICATE_COMMA.sub(",", chunk)
    fixed = _TRAILING_COMMA.sub(r"\1", fixed)
    return _LEADING_COMMA.sub(r"\1", fixed)


def remove_extra_commas(text: str) -> str:
    """Remove trailing, leading and duplicated commas in objects and arrays."""
    return _until_stable(lambda t: _map_outside(t, _commas_chunk), text)


# =============================================================================
# Pass 4 - quote style
# =============================================================================

def _requote(literal: str) -> str:
    inner = literal[1:-1]
    out = []
    i = 0
    while i < len(inner):
        ch = inner[i]
        if ch == "\\" and i + 1 < len(inner):
            nxt = inner[i + 1]
            out.append("'" if nxt == "'" else ch + nxt)
            i += 2
            continue
        out.append('\\"' if ch == '"' else ch)
        i += 1
    return '"' + "".join(out) + '"'


def _opens_value(text: str, index: int) -> bool:
    before = text[:index].rstrip()
    return not before or before[-1] in "{[,:("


def _single_quoted_end(text: str, start: int) -> int | None:
    """
    Index just past the single-quoted literal opening at start.

    An apostrophe closes the literal only when the next non-blank character
    is structural (, : } ] ) or the end of text, so "It's" stays one word.
    """
    i, n = start + 1, len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "'":
            rest = text[i + 1:].lstrip()
            if not rest or rest[0] in ",:}])":
                return i + 1
        i += 1
    return None


def _normalize_quotes_once(text: str) -> str:
    out = []
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if ch == '"':
            end = _string_end(text, i)
            out.append(text[i:end])
            i = end
            continue
        if ch == "'" and _opens_value(text, i):
            end = _single_quoted_end(text, i)
            if end is not None:
                out.append(_requote(text[i:end]))
                i = end
                continue
        out.append(ch)
        i += 1
    return "".join(out)


def normalize_quotes(text: str) -> str:
    """Turn single-quoted keys and values into double-quoted ones."""
    return _until_stable(_normalize_quotes_once, text)


# =============================================================================
# Pass 5 - string internals (lossy)
# =============================================================================

_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}


def escape_string_internals(text: str) -> str:
    """
    Escape raw newlines and unescaped inner quotes inside string values.

    A double quote closes a string only when the next non-blank character is
    a structural one (, : } ]) or the end of text. A quote followed by another
    string on a new line is treated as a closing quote with a missing comma.
    """
    out = []
    i, n = 0, len(text)
    in_string = False
    while i < n:
        ch = text[i]
        if not in_string:
            out.append(ch)
            if ch == '"':
                in_string = True
            i += 1
            continue

        if ch == "\\" and i + 1 < n:
            out.append(text[i:i + 2])
            i += 2
        elif ch in _ESCAPES:
            out.append(_ESCAPES[ch])
            i += 1
        elif ch == '"':
            j = i + 1
            while j < n and text[j].isspace():
                j += 1
            nxt = text[j] if j < n else ""
            if nxt == "" or nxt in ",:}]":
                out.append(ch)
                in_string = False
            elif nxt == '"' and "\n" in text[i + 1:j]:
                out.append('",')
                in_string = False
            else:
                out.append('\\"')
            i += 1
        else:
            out.append(ch)
            i += 1
    return "".join(out)


# =============================================================================
# Pass 6 - structure coercion
# =============================================================================

def _first_structure_start(text: str) -> int | None:
    position = 0
    for is_string, chunk in _segments(text):
        if not is_string:
            for offset, ch in enumerate(chunk):
                if ch in _OPENERS:
                    return position + offset
        position += len(chunk)
    return None


def coerce_structure(text: str) -> str:
    """
    Force text into a single JSON object or array.

    Drops prose before the first bracket and wraps bare key/value text in an
    object. A leading balanced value is kept as-is; anything else (unclosed
    brackets, truncated tails) goes through json_repair.
    """
    if parses(text):
        return text
    fixed = text.strip()
    start = _first_structure_start(fixed)
    if start is None:
        if ":" not in fixed:
            return fixed
        fixed = "{" + fixed + "}"
    else:
        fixed = fixed[start:]
    try:
        _, end = _DECODER.raw_decode(fixed)
        return fixed[:end]
    except ValueError:
        pass
    repaired = repair_json(fixed)
    if not repaired or repaired == '""':
        return fixed
    return repaired


# =============================================================================
# Chains
# =============================================================================

STANDARD_PASSES: tuple[Pass, ...] = (
    strip_wrappers,
    quote_bare_keys,
    remove_extra_commas,
    normalize_quotes,
    escape_string_internals,
)


def _run_passes(text: str, passes: tuple[Pass, ...]) -> str:
    # A second round picks up keys hidden behind an apostrophe the first round requoted.
    fixed = text
    for _ in range(2):
        for repair_pass in passes:
            fixed = repair_pass(fixed)
        if parses(fixed):
            break
    return fixed


def repair(text: str) -> str:
    """
    Run the standard repair chain.

    The result is only an input to a later parse attempt; it is never
    assumed to be correct.
    """
    if parses(text):
        return text
    fixed = _run_passes(text, STANDARD_PASSES)
    if not parses(fixed):
        fixed = coerce_structure(fixed)
    return fixed


def last_resort_repair(text: str) -> str:
    """
    Destructive fallback after the standard chain failed.

    Collapses every whitespace run to one space (inside strings too), reruns
    the key/comma/quote passes and hands the result to json_repair, which
    closes open brackets and drops what it cannot read.
    """
    fixed = " ".join(strip_wrappers(text).split())
    fixed = _run_passes(fixed, STANDARD_PASSES[1:])
    return coerce_structure(fixed)


def parse_lenient(text: str) -> Any:
    """
    Parse text as JSON, escalating through the repair tiers.

    Raises RepairError when neither the standard chain nor the last-resort
    tier yields valid JSON.
    """
    if parses(text):
        return json.loads(text)
    repaired = repair(text)
    if parses(repaired):
        return json.loads(repaired)
    salvaged = last_resort_repair(repaired)
    if parses(salvaged):
        return json.loads(salvaged)
    raise RepairError("Text could not be repaired into valid JSON")
