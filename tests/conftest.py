from __future__ import annotations

import pytest

from mlcpipe.trigger import Trigger
from mlcpipe.ui.console import Console, set_console


@pytest.fixture(autouse=True)
def plain_console():
    """Every test gets a fresh, colorless console."""
    console = Console(debug=False, color=False)
    set_console(console)
    yield console
    set_console(Console())


@pytest.fixture
def make_trigger():
    def _make(ref: str = "refs/heads/main", **kw) -> Trigger:
        kw.setdefault("default_branch", "main")
        return Trigger(ref=ref, **kw)
    return _make
