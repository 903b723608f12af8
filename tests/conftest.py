"""Pytest configuration for test discovery and environment isolation.

This file ensures that:
- `src/` is importable
- Provider API keys from the developer's shell never leak into unit tests
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure src directory is in path for imports
repo_root = Path(__file__).parent.parent
src_path = repo_root / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))


@pytest.fixture(autouse=True)
def _isolate_provider_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    """Unset provider keys so tests never reach a real API by accident."""
    for key in ("OPENAI_API_KEY", "GOOGLE_API_KEY", "DEEPSEEK_API_KEY"):
        monkeypatch.delenv(key, raising=False)
