from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Tuple

from specrefine.errors import ParseError
from specrefine.models import RepairAttempt

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_WINDOW = 10
ERROR_CONTEXT_CHARS = 40

_FENCED_BLOCK = re.compile(r"```[\w-]*[ \t]*\n?(.*?)```", flags=re.DOTALL)
_OPENING_FENCE = re.compile(r"^```[\w-]*[ \t]*\n?")
_VALUE_START = set('"{[-0123456789tfn]}')
_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}

Payload = Dict[str, Any]


def _parse_object(text: str) -> Payload | None:
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, RecursionError):
        return None
    if isinstance(parsed, dict):
        return parsed
    return None


def _skip_whitespace(text: str, index: int) -> int:
    while index < len(text) and text[index].isspace():
        index += 1
    return index


def strip_code_fences(text: str) -> str:
    """Remove markdown fences and any preamble before the first object."""
    stripped = (text or "").strip()
    fenced = [block for block in _FENCED_BLOCK.findall(stripped) if "{" in block]
    if fenced:
        stripped = fenced[0].strip()
    elif stripped.startswith("```"):
        # Opening fence of a response that was cut off before the closing one.
        stripped = _OPENING_FENCE.sub("", stripped, count=1).strip()
    if stripped.endswith("```"):
        stripped = stripped[:-3].rstrip()
    brace = stripped.find("{")
    if brace > 0 and not stripped.startswith("["):
        stripped = stripped[brace:]
    return stripped


def remove_trailing_separators(text: str) -> str:
    out: List[str] = []
    in_string = False
    escaped = False
    for index, ch in enumerate(text):
        if in_string:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == ",":
            follow = _skip_whitespace(text, index + 1)
            if follow < len(text) and text[follow] in "]}":
                continue
        out.append(ch)
    return "".join(out)


def _terminates_string(text: str, index: int) -> bool:
    """True when a quote just before `index` plausibly closes its string."""
    follow = _skip_whitespace(text, index)
    if follow >= len(text):
        return True
    ch = text[follow]
    if ch in ":}]":
        return True
    if ch == ",":
        after = _skip_whitespace(text, follow + 1)
        return after >= len(text) or text[after] in _VALUE_START
    return False


def escape_inner_quotes(text: str) -> str:
    out: List[str] = []
    in_string = False
    escaped = False
    for index, ch in enumerate(text):
        if not in_string:
            out.append(ch)
            if ch == '"':
                in_string = True
            continue
        if escaped:
            out.append(ch)
            escaped = False
        elif ch == "\\":
            out.append(ch)
            escaped = True
        elif ch == '"':
            if _terminates_string(text, index + 1):
                out.append(ch)
                in_string = False
            else:
                out.append('\\"')
        else:
            out.append(ch)
    return "".join(out)


def escape_control_chars(text: str) -> str:
    out: List[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if not in_string:
            out.append(ch)
            if ch == '"':
                in_string = True
            continue
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == '"':
            in_string = False
        elif ch in _CONTROL_ESCAPES:
            out.append(_CONTROL_ESCAPES[ch])
            continue
        elif ord(ch) < 0x20:
            out.append(f"\\u{ord(ch):04x}")
            continue
        out.append(ch)
    return "".join(out)


def structure_state(text: str) -> Tuple[bool, List[str]]:
    """Return (inside an open string, pending closers innermost last)."""
    stack: List[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            stack.append("}")
        elif ch == "[":
            stack.append("]")
        elif ch in "}]" and stack and stack[-1] == ch:
            stack.pop()
    return in_string, stack


def _closer_positions(text: str) -> List[int]:
    """Indexes of the structural closers, skipping brackets inside strings."""
    positions: List[int] = []
    in_string = False
    escaped = False
    for index, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "}]":
            positions.append(index)
    return positions


def close_structures(text: str) -> str:
    in_string, stack = structure_state(text)
    repaired = text
    if in_string:
        repaired += '"'
    return repaired + "".join(reversed(stack))


def truncate_to_last_valid(
    text: str, lookback_window: int = DEFAULT_LOOKBACK_WINDOW
) -> Payload | None:
    """Parse the longest prefix ending at a closer, without appending anything.

    Completing a cut payload with closers is left to close_structures.
    """
    lower_bound = len(text) / 3
    for index in reversed(_closer_positions(text)):
        if index < lower_bound:
            break
        if '"' not in text[max(0, index - lookback_window):index]:
            continue
        parsed = _parse_object(text[: index + 1])
        if parsed is not None:
            return parsed
    return None


def backward_extraction(text: str) -> Payload | None:
    lower_bound = len(text) / 2
    index = len(text) - 1
    while index >= lower_bound:
        if text[index] == "}":
            parsed = _parse_object(text[: index + 1])
            if parsed is not None:
                return parsed
        index -= 1
    return None


@dataclass
class RepairOutcome:
    payload: Payload
    attempt: RepairAttempt

    @property
    def strategy(self) -> str | None:
        return self.attempt.succeeded


StrategyFn = Callable[[str], Tuple[str, Payload | None]]


def _transform(fn: Callable[[str], str]) -> StrategyFn:
    def attempt(text: str) -> Tuple[str, Payload | None]:
        repaired = fn(text)
        return repaired, _parse_object(repaired)

    return attempt


class ResponseRepairEngine:
    """Recovers a JSON object from raw provider text.

    The first four strategies normalize the text cumulatively; the last
    three search the normalized text without modifying what came before.
    """

    def __init__(self, lookback_window: int = DEFAULT_LOOKBACK_WINDOW) -> None:
        self.lookback_window = lookback_window
        self.strategies: List[Tuple[str, StrategyFn]] = [
            ("strip_fences", _transform(strip_code_fences)),
            ("remove_trailing_separators", _transform(remove_trailing_separators)),
            ("escape_inner_quotes", _transform(escape_inner_quotes)),
            ("escape_control_chars", _transform(escape_control_chars)),
            ("truncate_to_last_valid", self._truncate),
            ("close_structures", self._close),
            ("backward_extraction", self._backward),
        ]

    @property
    def strategy_names(self) -> List[str]:
        return [name for name, _ in self.strategies]

    def recover(self, raw_text: str) -> Payload:
        return self.recover_with_attempt(raw_text).payload

    def recover_with_attempt(self, raw_text: str) -> RepairOutcome:
        attempt = RepairAttempt()
        working = raw_text or ""
        for name, strategy in self.strategies:
            attempt.tried.append(name)
            working, payload = strategy(working)
            if payload is not None:
                attempt.succeeded = name
                if name != "strip_fences":
                    logger.info("[repair] recovered payload via %s", attempt.summary())
                return RepairOutcome(payload=payload, attempt=attempt)
            logger.debug("[repair] %s did not produce an object", name)
        raise self._failure(raw_text or "", attempt)

    def _truncate(self, text: str) -> Tuple[str, Payload | None]:
        return text, truncate_to_last_valid(text, self.lookback_window)

    def _close(self, text: str) -> Tuple[str, Payload | None]:
        return text, _parse_object(close_structures(text))

    def _backward(self, text: str) -> Tuple[str, Payload | None]:
        return text, backward_extraction(text)

    def _failure(self, raw_text: str, attempt: RepairAttempt) -> ParseError:
        base = strip_code_fences(raw_text)
        if not base:
            return ParseError("Provider response is empty.", strategies=attempt.tried)
        try:
            json.loads(base)
        except json.JSONDecodeError as exc:
            start = max(0, exc.pos - ERROR_CONTEXT_CHARS)
            snippet = base[start : exc.pos + ERROR_CONTEXT_CHARS]
            return ParseError(
                f"Unable to recover JSON from response: {exc.msg} at char {exc.pos}. "
                f"Near: {snippet!r}",
                snippet=snippet,
                offset=exc.pos,
                strategies=attempt.tried,
            )
        except RecursionError:
            snippet = base[: ERROR_CONTEXT_CHARS * 2]
            return ParseError(
                f"Unable to recover JSON from response: nesting too deep. Near: {snippet!r}",
                snippet=snippet,
                offset=0,
                strategies=attempt.tried,
            )
        snippet = base[: ERROR_CONTEXT_CHARS * 2]
        return ParseError(
            f"Response JSON is not an object. Near: {snippet!r}",
            snippet=snippet,
            offset=0,
            strategies=attempt.tried,
        )
