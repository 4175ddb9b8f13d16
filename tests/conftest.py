import io

import pytest

from opshell.config import ShellConfig
from opshell.controlfile.properties import ControlFile
from opshell.runtime.application import Application
from opshell.runtime.statistics import global_statistics


@pytest.fixture(autouse=True)
def _fresh_global_statistics():
    """Global counters are process-wide; start every test from zero."""
    global_statistics.reset()
    global_statistics.enable()
    yield
    global_statistics.reset()
    global_statistics.enable()


@pytest.fixture
def application():
    app = Application(ShellConfig())
    yield app
    app.stop_event.set()
    for engine in list(app.algorithms):
        app.remove_algorithm(engine)
    app.engine.join_repeats(timeout=2)


@pytest.fixture
def run_actions(application):
    """Run ``action`` from inline control-file text; returns (ok, output, variables)."""

    def _run(text, action="actions", variables=None, throw_exception=False):
        out = io.StringIO()
        variables = dict(variables or {})
        config = ControlFile.from_text(text, source="<test>")
        ok = application.engine.run(out, config, action, variables, throw_exception=throw_exception)
        return ok, out.getvalue(), variables

    return _run
