import logging

import pytest

from treestore.core import ActionHandler, ActionsRegistry

from .helpers import increment


@pytest.fixture
def counter_registry():
    """increment/INC at "counter", the smallest useful registry."""
    r = ActionsRegistry()
    r.register("increment", "INC", ActionHandler("counter", increment))
    return r


@pytest.fixture
def restore_root_logging():
    """Put the root logger back the way the test found it."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
