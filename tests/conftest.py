import sys
from pathlib import Path

import pytest

# Add python/ to sys.path so the flat modules import without installation
PYTHON_PATH = Path(__file__).resolve().parent.parent / "python"
if PYTHON_PATH.as_posix() not in sys.path:
    sys.path.insert(0, PYTHON_PATH.as_posix())

FIXTURES = Path(__file__).resolve().parent / "fixtures"


@pytest.fixture
def example_path() -> Path:
    """Path to the bundled Java fixture."""
    return FIXTURES / "ExampleCode.java"


@pytest.fixture
def example_text(example_path: Path) -> str:
    return example_path.read_text(encoding="utf-8")
