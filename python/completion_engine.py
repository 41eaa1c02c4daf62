"""Suggestion engine boundary and an Ollama-backed engine for next-edit suggestions."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, Optional, Protocol

import httpx
import ollama

from context_extractor import ContextWindow

EDIT_TYPES = ("insert", "replace", "delete")
CURSOR_TOKEN = "[CURSOR_HERE]"

_FENCE = re.compile(r"^\s*```[\w+-]*[ \t]*\n(?P<body>.*?)\n?```\s*$", re.DOTALL)


class EngineUnavailableError(RuntimeError):
    """Raised when a suggestion engine cannot produce a result for a call."""


@dataclass(frozen=True)
class SuggestionResult:
    """A single proposed edit at the cursor."""

    text: str
    confidence: Optional[float] = None
    edit_type: str = "insert"
    old_text: str = ""

    def __post_init__(self) -> None:
        if self.confidence is not None and not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")
        if self.edit_type not in EDIT_TYPES:
            raise ValueError(f"edit_type must be one of {EDIT_TYPES}, got {self.edit_type!r}")


class SuggestionEngine(Protocol):
    """Anything that turns one context window into exactly one suggestion."""

    def suggest(self, context: ContextWindow) -> SuggestionResult:
        ...


class CompletionEngine:
    """Builds suffix-aware completion payloads and collects one suggestion from Ollama."""

    def __init__(self, model: str, client_url: str = "http://localhost:11434", options: Optional[Dict[str, Any]] = None):
        """Initialize engine with model, Ollama endpoint, and generation controls."""
        self.model = model
        self.options = dict(options or {})

        self.filetype = self.options.pop("filetype", "")
        self.fim_enabled = self.options.pop("fim_enabled", True)
        self.fim_mode = self.options.pop("fim_mode", "auto")
        self.max_prefix_chars = int(self.options.pop("max_prefix_chars", 8000))
        self.max_suffix_chars = int(self.options.pop("max_suffix_chars", 3000))
        timeout = self.options.pop("timeout", None)
        self.timeout = float(timeout) if timeout is not None else None
        self.client = ollama.Client(client_url, timeout=self.timeout)

        self.debug = bool(self.options.pop("debug", False)) or os.getenv("NEXT_EDIT_HARNESS_DEBUG", "") == "1"
        self.debug_log_file = self.options.pop("debug_log_file", None) or os.getenv(
            "NEXT_EDIT_HARNESS_DEBUG_LOG",
            "/tmp/next-edit-harness-debug.log",
        )

    def suggest(self, context: ContextWindow) -> SuggestionResult:
        """Request one insertion for the cursor in ``context``."""
        payload = self.build_request_payload(context)
        self._debug_log("payload", payload)

        try:
            try:
                text = self._collect(self.client.generate(**payload))
            except TypeError as exc:
                # Older Ollama python clients reject the `suffix` keyword.
                if "suffix" not in str(exc):
                    raise
                fallback_payload = self.build_request_payload(context, force_manual_fim=True)
                self._debug_log("payload_fallback", fallback_payload)
                text = self._collect(self.client.generate(**fallback_payload))
        except (ollama.ResponseError, httpx.HTTPError, ConnectionError) as exc:
            self._debug_log("error", {"type": type(exc).__name__, "message": str(exc)})
            raise EngineUnavailableError(f"{self.model}: {exc}") from exc

        result = SuggestionResult(text=self._strip_fences(text))
        self._debug_log("result", {"text": result.text})
        return result

    def build_request_payload(self, context: ContextWindow, force_manual_fim: bool = False) -> Dict[str, Any]:
        """Construct Ollama `generate` payload with prompt/suffix and constrained options."""
        prefix = context.before[-self.max_prefix_chars :]
        suffix = context.after[: self.max_suffix_chars]

        payload: Dict[str, Any] = {
            "model": self.model,
            "stream": True,
            "options": self.options,
        }

        use_template_fim = self.fim_enabled and not force_manual_fim and self.fim_mode in ("auto", "template")

        if use_template_fim:
            payload["prompt"] = prefix
            payload["suffix"] = suffix
            return payload

        if self.fim_enabled:
            payload["prompt"] = self._manual_fim_prompt(prefix, suffix)
            return payload

        payload["prompt"] = self._centered_prompt(context)
        return payload

    def _centered_prompt(self, context: ContextWindow) -> str:
        """Build a cursor-local instruction block around a ``[CURSOR_HERE]`` token."""
        line_prefix = context.line_prefix
        indent = line_prefix[: len(line_prefix) - len(line_prefix.lstrip(" \t"))]
        before_text = context.before[: len(context.before) - len(line_prefix)].rstrip("\n")
        if len(before_text) > self.max_prefix_chars:
            before_text = before_text[-self.max_prefix_chars :]
        after_text = context.after[: self.max_suffix_chars]

        return (
            "[NEXT_EDIT_TASK]\n"
            f"Return ONLY the exact text to insert at {CURSOR_TOKEN}.\n"
            "Do not restate existing text. Do not explain. Do not use markdown fences.\n"
            f"filetype={self.filetype or 'plain'}\n"
            f"indentation={json.dumps(indent)}\n"
            "[CODE]\n"
            f"{before_text}\n"
            f"{line_prefix}{CURSOR_TOKEN}{after_text}\n"
            "[INSERT_AT_CURSOR]\n"
        )

    def _manual_fim_prompt(self, prefix: str, suffix: str) -> str:
        """Construct model-native manual FIM wrapper for models expecting special tokens."""
        return f"<|fim_prefix|>{prefix}<|fim_suffix|>{suffix}<|fim_middle|>"

    def _collect(self, stream: Iterable[Any]) -> str:
        """Join the `response` fields of a generate stream into one string."""
        return "".join(chunk.get("response") or "" for chunk in self._debug_stream(stream))

    def _debug_stream(self, stream: Iterable[Any]) -> Iterator[Dict[str, Any]]:
        """Normalize stream chunks and log them raw when debug mode is enabled."""
        for chunk in stream:
            normalized_chunk = self._normalize_chunk(chunk)
            if self.debug:
                self._debug_log("raw_chunk", normalized_chunk)
            yield normalized_chunk

    def _normalize_chunk(self, chunk: Any) -> Dict[str, Any]:
        """Convert Ollama SDK response chunks into plain dicts for stable indexing."""
        if isinstance(chunk, dict):
            return chunk
        if hasattr(chunk, "model_dump"):
            return chunk.model_dump()
        return {"response": str(chunk)}

    def _strip_fences(self, text: str) -> str:
        """Unwrap a markdown code fence if the model added one anyway."""
        fenced = _FENCE.match(text)
        return fenced.group("body") if fenced else text

    def _debug_log(self, event: str, payload: Any) -> None:
        """Append debug records to a local log file without disturbing the caller."""
        if not self.debug:
            return

        try:
            with open(self.debug_log_file, "a", encoding="utf-8") as handle:
                handle.write(json.dumps({"event": event, "payload": payload}, default=str))
                handle.write("\n")
        except OSError:
            return
