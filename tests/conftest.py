import sys
from pathlib import Path

import pytest


_root = Path(__file__).resolve().parents[1]
_src = _root / "src"
if _src.exists() and str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from toolsync.settings import Settings  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment's .env file."""
    return Settings(
        _env_file=None,
        critical_tool_names={"send_message", "get_*"},
        minimal_description_limit=40,
        invocation_deadline_seconds=5.0,
    )
