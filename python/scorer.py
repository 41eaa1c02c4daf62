"""Scoring of engine suggestions against free-text expected intents."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Protocol, Sequence, Tuple

from completion_engine import SuggestionResult
from fixture_parser import CursorMarker

SEMICOLON = "semicolon"
OPEN_PAREN = "open_paren"
CLOSE_PAREN = "close_paren"
OPEN_BRACE = "open_brace"
CLOSE_BRACE = "close_brace"
CLOSE_BRACKET = "close_bracket"
BLOCK = "block"
RETURN = "return"
OPERAND = "operand"
COMMENT = "comment"
REMOVAL = "removal"

_PAREN = r"(?:parenthes[ie]s|parens?)"
_BRACE = r"(?:curly\s+)?braces?"

# Qualified cues are checked before bare ones; a bare cue only applies when no
# qualified cue for the same delimiter matched.
_INTENT_CUES: Tuple[Tuple[re.Pattern, FrozenSet[str]], ...] = (
    (re.compile(r"\bsemi-?colons?\b"), frozenset({SEMICOLON})),
    (re.compile(rf"\bclos(?:e|ing)\s+{_PAREN}"), frozenset({CLOSE_PAREN})),
    (re.compile(rf"\bopen(?:ing)?\s+{_PAREN}"), frozenset({OPEN_PAREN})),
    (re.compile(r"\bclos(?:e|ing)\s+square\s+brackets?\b"), frozenset({CLOSE_BRACKET})),
    (re.compile(rf"\bclos(?:e|ing)\s+{_BRACE}"), frozenset({CLOSE_BRACE})),
    (re.compile(rf"\bopen(?:ing)?\s+{_BRACE}"), frozenset({OPEN_BRACE})),
    (re.compile(r"\b(?:method|function|constructor|class|block)\s+body\b|\bbody\b"), frozenset({BLOCK})),
    (re.compile(r"\breturn\b"), frozenset({RETURN})),
    (re.compile(r"\b(?:remov(?:e|al|ing)|delet(?:e|ion|ing))\b"), frozenset({REMOVAL})),
    (re.compile(r"\b(?:expression|concatenation|operand|argument|value)s?\b"), frozenset({OPERAND})),
)
_BARE_CUES: Tuple[Tuple[re.Pattern, str, FrozenSet[str]], ...] = (
    (re.compile(rf"\b{_PAREN}\b"), CLOSE_PAREN, frozenset({OPEN_PAREN, CLOSE_PAREN})),
    (re.compile(rf"\b{_BRACE}\b"), CLOSE_BRACE, frozenset({OPEN_BRACE, CLOSE_BRACE})),
)

_LINE_COMMENT = re.compile(r"//[^\n]*|^[ \t]*#[^\n]*", re.MULTILINE)
_BLOCK_COMMENT = re.compile(r"/\*.*?(?:\*/|$)", re.DOTALL)
_STRING = re.compile(r"\"(?:\\.|[^\"\\\n])*\"|'(?:\\.|[^'\\\n])*'")
_OPERAND = re.compile(r"[A-Za-z_0-9]")
_RETURN = re.compile(r"\breturn\b")
_BLOCK = re.compile(r"\{.*\}", re.DOTALL)
_PAIRS = {")": "(", "}": "{", "]": "["}


class Outcome(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    PARTIAL = "partial"


class AmbiguousIntentError(ValueError):
    """Raised by a strategy that finds nothing it can check in an intent."""


@dataclass(frozen=True)
class MatchReport:
    matched: bool
    rationale: str


@dataclass(frozen=True)
class Verdict:
    """The judgement for one marker (or one ad-hoc intent when ``marker`` is None)."""

    marker: Optional[CursorMarker]
    outcome: Outcome
    rationale: str
    suggestion: Optional[SuggestionResult] = None
    error: Optional[str] = None


class MatchStrategy(Protocol):
    """Decides whether a suggestion addresses an expected intent."""

    def match(self, expected_intent: str, result: SuggestionResult) -> MatchReport:
        ...


def strip_comments(text: str) -> str:
    """Remove line and block comments, leaving string literals intact."""
    pieces: List[str] = []
    position = 0
    for literal in _STRING.finditer(text):
        pieces.append(_remove_comments(text[position : literal.start()]))
        pieces.append(literal.group(0))
        position = literal.end()
    pieces.append(_remove_comments(text[position:]))
    return "".join(pieces)


def _remove_comments(text: str) -> str:
    return _LINE_COMMENT.sub("", _BLOCK_COMMENT.sub("", text))


def classify_intent(expected_intent: str) -> FrozenSet[str]:
    """Map intent prose such as "closing parenthesis and semicolon" to edit kinds."""
    intent = expected_intent.lower()
    kinds = set()
    for pattern, cue_kinds in _INTENT_CUES:
        if pattern.search(intent):
            kinds |= cue_kinds
    for pattern, default_kind, qualified in _BARE_CUES:
        if not kinds & qualified and pattern.search(intent):
            kinds.add(default_kind)
    return frozenset(kinds)


def classify_suggestion(text: str) -> FrozenSet[str]:
    """Describe which edit kinds a suggestion's code actually contains."""
    code = strip_comments(text)
    if not code.strip():
        return frozenset({COMMENT}) if text.strip() else frozenset()

    bare = _STRING.sub("0", code)
    kinds = set()
    for char, kind in ((";", SEMICOLON), ("(", OPEN_PAREN), (")", CLOSE_PAREN), ("{", OPEN_BRACE), ("}", CLOSE_BRACE), ("]", CLOSE_BRACKET)):
        if char in bare:
            kinds.add(kind)
    if _BLOCK.search(bare):
        kinds.add(BLOCK)
    if _RETURN.search(bare):
        kinds.add(RETURN)
    if _OPERAND.search(bare):
        kinds.add(OPERAND)
    if code.strip() != text.strip():
        kinds.add(COMMENT)
    return frozenset(kinds)


def edit_kinds(result: SuggestionResult) -> FrozenSet[str]:
    """Edit kinds of a whole suggestion; a delete is described by the text it removes."""
    if result.edit_type == "delete":
        return classify_suggestion(result.old_text) | {REMOVAL}
    return classify_suggestion(result.text)


def _judged_text(result: SuggestionResult) -> str:
    return result.old_text if result.edit_type == "delete" else result.text


def is_syntactically_neutral(text: str) -> bool:
    """True for a non-empty suggestion whose brackets and quotes balance on their own."""
    if not text.strip():
        return False
    bare = _STRING.sub("0", strip_comments(text))
    if '"' in bare or "'" in bare:
        return False

    stack: List[str] = []
    for char in bare:
        if char in "({[":
            stack.append(char)
        elif char in _PAIRS:
            if not stack or stack.pop() != _PAIRS[char]:
                return False
    return not stack


class EditTypeStrategy:
    """Passes when every edit kind named by the intent appears in the suggestion."""

    def match(self, expected_intent: str, result: SuggestionResult) -> MatchReport:
        wanted = classify_intent(expected_intent)
        if not wanted:
            raise AmbiguousIntentError(f"no recognizable edit in intent {expected_intent!r}")

        found = edit_kinds(result)
        missing = sorted(wanted - found)
        if missing:
            return MatchReport(False, f"suggestion lacks {', '.join(missing)}")
        return MatchReport(True, f"suggestion provides {', '.join(sorted(wanted))}")


DEFAULT_KEYWORDS: Dict[str, Sequence[str]] = {
    "semicolon": (";",),
    "parenthesis": (")",),
    "brace": ("}",),
    "opening brace": ("{",),
    "return": ("return",),
}


class KeywordStrategy:
    """Passes when the suggestion contains the tokens mapped to each keyword in the intent.

    Longer keywords win over keywords they contain, so "opening brace" claims the
    intent text before "brace" is considered.
    """

    def __init__(self, keywords: Optional[Dict[str, Sequence[str]]] = None):
        self.keywords = dict(DEFAULT_KEYWORDS if keywords is None else keywords)

    def match(self, expected_intent: str, result: SuggestionResult) -> MatchReport:
        intent = expected_intent.lower()
        required: List[str] = []
        hit: List[str] = []
        for keyword in sorted(self.keywords, key=len, reverse=True):
            pattern = re.compile(rf"\b{re.escape(keyword.lower())}\b")
            if pattern.search(intent):
                hit.append(keyword)
                required.extend(self.keywords[keyword])
                intent = pattern.sub(" ", intent)
        if not hit:
            raise AmbiguousIntentError(f"no configured keyword in intent {expected_intent!r}")

        text = _judged_text(result)
        missing = [token for token in required if token not in text]
        if missing:
            return MatchReport(False, f"suggestion lacks {', '.join(repr(token) for token in missing)}")
        return MatchReport(True, f"suggestion contains tokens for {', '.join(hit)}")


class Scorer:
    """Turns a strategy's match report into a pass/fail/partial verdict."""

    def __init__(self, strategy: Optional[MatchStrategy] = None):
        self.strategy = strategy or EditTypeStrategy()

    def score(self, expected_intent: str, result: SuggestionResult, marker: Optional[CursorMarker] = None) -> Verdict:
        """Judge ``result`` against ``expected_intent``; a mismatch is an outcome, not an error."""
        if result.edit_type == "replace" and result.text == result.old_text:
            return Verdict(marker, Outcome.FAIL, "replacement leaves the text unchanged", suggestion=result)
        if result.edit_type == "delete" and not result.old_text.strip():
            return Verdict(marker, Outcome.FAIL, "delete removes nothing", suggestion=result)

        try:
            report = self.strategy.match(expected_intent, result)
        except AmbiguousIntentError as exc:
            return Verdict(marker, Outcome.PARTIAL, f"ambiguous intent: {exc}", suggestion=result, error=type(exc).__name__)

        if report.matched:
            return Verdict(marker, Outcome.PASS, report.rationale, suggestion=result)
        if is_syntactically_neutral(_judged_text(result)):
            return Verdict(marker, Outcome.PARTIAL, f"{report.rationale}; suggestion is well-formed but off target", suggestion=result)
        return Verdict(marker, Outcome.FAIL, report.rationale, suggestion=result)
