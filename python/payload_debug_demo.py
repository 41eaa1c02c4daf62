"""Offline demo: engine payloads for a fixture's markers and a canned-engine report."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Dict

from completion_engine import CompletionEngine, SuggestionResult
from context_extractor import ContextWindow, extract_context
from fixture_parser import load_fixture
from harness import HarnessRunner

DEFAULT_FIXTURE = Path(__file__).resolve().parent.parent / "tests" / "fixtures" / "ExampleCode.java"

# What a well-behaved engine would insert for each marker of the bundled fixture.
CANNED_SUGGESTIONS: Dict[int, str] = {
    6: ";",
    12: ");",
    17: " {\n\t}",
    23: ")",
    28: "10;",
    31: "\"!\";",
    37: "return sum;",
    47: "}",
}


class CannedEngine:
    """Answers from a line-keyed table instead of calling a model."""

    def __init__(self, answers: Dict[int, str]):
        self.answers = answers

    def suggest(self, context: ContextWindow) -> SuggestionResult:
        return SuggestionResult(text=self.answers.get(context.marker_line, ""), confidence=1.0)


def print_demo_payload(fixture_path: Path = DEFAULT_FIXTURE) -> None:
    """Build and print representative payloads and a scored report for a fixture."""
    fixture = load_fixture(fixture_path)

    engine = CompletionEngine(
        model="qwen2.5-coder:3b",
        options={
            "temperature": 0.1,
            "top_p": 0.9,
            "num_predict": 128,
            "num_ctx": 8192,
            "filetype": fixture_path.suffix.lstrip("."),
            "fim_enabled": True,
            "fim_mode": "auto",
            "max_prefix_chars": 4000,
            "max_suffix_chars": 2000,
        },
    )

    marker = fixture.markers[0]
    context = extract_context(fixture, marker, window_lines=4)

    print(f"=== Payload for line {marker.line} ({marker.scenario}) ===")
    print(json.dumps(engine.build_request_payload(context), indent=2))
    print(f"\n=== Expected edit: {marker.intent} ===")

    engine.fim_enabled = False
    print("\n=== Instruction payload without FIM ===")
    print(json.dumps(engine.build_request_payload(context), indent=2))

    runner = HarnessRunner(CannedEngine(CANNED_SUGGESTIONS), options={"window_lines": 4})
    report = runner.run(fixture)
    print("\n=== Canned-engine report ===")
    print(report.to_json())


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    print_demo_payload(Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_FIXTURE)
