import io
import logging
import threading
import time

import pytest

from opshell.controlfile.engine import ActionEngine
from opshell.controlfile.properties import ControlFile
from opshell.errors import StreamExhaustedError
from opshell.observability.events import EventBuffer
from opshell.runtime.commands import CommandRegistry


class Probe:
    """Primitives with observable side effects for driving the interpreter."""

    def __init__(self, exhaust_after=2):
        self.calls = 0
        self.exhaust_after = exhaust_after
        self.ticks = 0

    def say(self, out, *args):
        out.write(" ".join(args) + "\n")

    def fail(self, out, *args):
        return False

    def boom(self, out, *args):
        raise KeyError("k")

    def countdown(self, out, *args):
        self.calls += 1
        if self.calls > self.exhaust_after:
            raise StreamExhaustedError("No more objects")
        out.write("tick\n")

    def flaky(self, out, *args):
        self.calls += 1
        if self.calls % 2:
            raise KeyError(self.calls)
        out.write(f"ok {self.calls}\n")

    def tick(self, out, *args):
        self.ticks += 1

    def nap(self, out, *args):
        time.sleep(float(args[0]))

    def once(self, out, *args):
        self.calls += 1
        return self.calls == 1

    def registry(self):
        commands = CommandRegistry()
        for name in ("say", "fail", "boom", "countdown", "flaky", "tick", "nap", "once"):
            commands.register(name, getattr(self, name))
        return commands


@pytest.fixture
def probe():
    return Probe()


@pytest.fixture
def engine(probe):
    engine = ActionEngine(probe.registry(), events=EventBuffer())
    yield engine
    engine.stop_event.set()
    engine.join_repeats(timeout=2)


def run(engine, text, action="actions", variables=None, throw_exception=False):
    out = io.StringIO()
    variables = variables if variables is not None else {}
    ok = engine.run(out, ControlFile.from_text(text), action, variables, throw_exception=throw_exception)
    return ok, out.getvalue()


def test_block_fallback_runs_members_in_order(engine):
    text = "foo = bar baz\nbar = say\nbar.param.1 = A\nbaz = say\nbaz.param.1 = B\n"
    ok, output = run(engine, text, "foo")
    assert ok
    assert output == "A\nB\n"
    assert "foo" not in engine.commands


def test_alias_resolves_to_other_action(engine):
    ok, output = run(engine, "actions = greet\ngreet = say\ngreet.param.1 = hi\n")
    assert ok
    assert output == "hi\n"


def test_unknown_action_reports_not_found(engine):
    ok, output = run(engine, "", "qux")
    assert not ok
    assert "Action 'qux' not found" in output


def test_loop_variable_is_restored(engine):
    variables = {"i": "orig"}
    text = "act = show\nact.repeat = 3\nact.loopVariable = i\nshow = say\nshow.param.1 = <i>/<i_iteration>\n"
    ok, output = run(engine, text, "act", variables)
    assert ok
    assert output == "1/0\n2/1\n3/2\n"
    assert variables == {"i": "orig"}


def test_loop_variable_removed_when_absent_before(engine):
    variables = {}
    ok, output = run(engine, "act = show\nact.repeat = 2\nshow = say\nshow.param.1 = <act>\n", "act", variables)
    assert ok
    assert output == "1\n2\n"
    assert variables == {}


def test_foreach_wins_over_repeat_with_warning(engine):
    text = "act = show\nact.repeat = 5\nact.foreach = a b\nshow = say\nshow.param.1 = <act>\n"
    ok, output = run(engine, text, "act")
    assert ok
    lines = output.splitlines()
    assert lines[0].startswith("WARNING: Action 'act' has both the 'repeat' and the 'foreach' parameters defined")
    assert lines[1:] == ["a", "b"]


def test_repeat_until_terminates_nested_loop_normally(engine):
    text = (
        "grand = parent after\n"
        "parent = child\n"
        "parent.repeatUntilException = StreamExhaustedError\n"
        "child = countdown\n"
        "after = say\n"
        "after.param.1 = done\n"
    )
    ok, output = run(engine, text, "grand", throw_exception=True)
    assert ok
    assert output == "tick\ntick\ndone\n"


def test_ignore_exception_continues_with_next_iteration(engine):
    ok, output = run(engine, "act = flaky\nact.repeat = 4\nact.ignoreException = KeyError\n", "act")
    assert ok
    assert output == "ok 2\nok 4\n"


def test_missing_action_inside_caught_loop_is_raised_to_the_loop(engine):
    text = "act = missing\nact.repeat = 2\nact.ignoreException = ActionNotFoundError\n"
    ok, output = run(engine, text, "act")
    assert ok
    assert output == ""


def test_unhandled_exception_fails_action(engine):
    ok, output = run(engine, "act = boom\n", "act")
    assert not ok
    assert "KeyError: 'k'" in output
    assert "Action 'act' failed - control file execution was terminated" in output


def test_unhandled_exception_propagates_when_requested(engine):
    with pytest.raises(KeyError):
        run(engine, "act = boom\n", "act", throw_exception=True)


def test_false_result_terminates_block(engine):
    ok, output = run(engine, "blk = a b\na = fail\nb = say\nb.param.1 = never\n", "blk")
    assert not ok
    assert "Action 'a' failed" in output
    assert "never" not in output


def test_output_file_shared_within_run(engine, tmp_path):
    target = tmp_path / "out.txt"
    target.write_text("stale\n", encoding="utf-8")
    text = (
        "actions = first second\n"
        "first = say\nfirst.param.1 = one\nfirst.outputFile = <dir>/out.txt\n"
        "second = say\nsecond.param.1 = two\nsecond.outputFile = <dir>/out.txt\n"
    )
    ok, output = run(engine, text, variables={"dir": str(tmp_path)})
    assert ok
    assert output == ""
    assert target.read_text(encoding="utf-8") == "one\ntwo\n"


def test_assign_binds_trimmed_output_in_caller_scope(engine):
    variables = {}
    text = (
        "actions = act show\n"
        "act = say\nact.param.1 = hello\nact.assign = greeting\n"
        "show = say\nshow.param.1 = [<greeting>]\n"
    )
    ok, output = run(engine, text, variables=variables)
    assert ok
    assert output == "[hello]\n"
    assert variables["greeting"] == "hello"


def test_failed_assign_flushes_buffer_to_caller(engine):
    variables = {}
    text = "act = a b\nact.assign = x\na = say\na.param.1 = partial\nb = fail\n"
    ok, output = run(engine, text, "act", variables)
    assert not ok
    assert output.startswith("partial\n")
    assert "Action 'b' failed" in output
    assert "x" not in variables


def test_descriptions_are_substituted(engine):
    text = "act = say\nact.param.1 = body\nact.description = before <x>\nact.descriptionAfter = after\n"
    ok, output = run(engine, text, "act", {"x": "1"})
    assert ok
    assert output == "before 1\nbody\nafter\n"


def test_postpone_in_the_past_runs_immediately(probe):
    engine = ActionEngine(probe.registry(), clock=lambda: time.time() + 2 * 86400)
    started = time.monotonic()
    ok, output = run(engine, "act = say\nact.param.1 = now\nact.postponeUntil = 00:00\n", "act")
    assert ok
    assert output == "now\n"
    assert time.monotonic() - started < 1


def test_invalid_postpone_fails(engine):
    ok, output = run(engine, "act = say\nact.postponeUntil = later\n", "act")
    assert not ok
    assert "for postponeUntil parameter for action 'act'" in output


@pytest.mark.parametrize("value", ["-1", "many"])
def test_invalid_repeat_count(engine, value):
    ok, output = run(engine, f"act = say\nact.repeat = {value}\n", "act")
    assert not ok
    assert "Number of repeats specified in action 'act' is not a valid non-negative integer" in output


def test_unknown_exception_kind_fails(engine):
    ok, output = run(engine, "act = say\nact.ignoreException = Nope\n", "act")
    assert not ok
    assert "Wrong ignoreException for action 'act': Unknown exception kind: Nope" in output


def test_required_variable_missing(engine):
    ok, output = run(engine, "act = say\nact.param.1 = <host!>\n", "act")
    assert not ok
    assert "Action 'act' cannot be resolved: Variable host is required" in output


def test_repeat_every_runs_in_background_until_stopped(engine, probe):
    ok, _ = run(engine, "act = tick\nact.repeatEvery = 10\n", "act")
    assert ok
    assert any(t.name == "Repeat action act every 10" for t in threading.enumerate())
    deadline = time.monotonic() + 5
    while probe.ticks < 3 and time.monotonic() < deadline:
        time.sleep(0.01)
    assert probe.ticks >= 3
    assert engine.repeating_actions() == ["act"]
    engine.stop_event.set()
    engine.join_repeats(timeout=2)
    assert engine.repeating_actions() == []


def test_control_file_hook_runs_nested_file_with_copied_variables(engine, tmp_path):
    child = tmp_path / "child.cf"
    child.write_text("actions = say\nactions.param.1 = from child <v>\n", encoding="utf-8")
    variables = {"keep": "1"}
    text = f"actions = controlFile\nactions.param.1 = {child}\nactions.param.2 = v=42\n"
    ok, output = run(engine, text, variables=variables)
    assert ok
    assert output == "from child 42\n"
    assert variables == {"keep": "1"}


def test_run_control_file_reports_unreadable_file(engine, tmp_path):
    out = io.StringIO()
    assert not engine.run_control_file(out, [str(tmp_path / "missing.cf")])
    assert "Cannot read control file" in out.getvalue()


def test_run_records_events(engine):
    run(engine, "act = say\n", "act")
    events = [entry["event"] for entry in engine.events.history()]
    assert events[0] == "run_started"
    assert events[-1] == "run_finished"


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not predicate() and time.monotonic() < deadline:
        time.sleep(0.01)
    return predicate()


def test_repeat_shares_output_file_with_the_run(engine, tmp_path):
    target = tmp_path / "out.txt"
    text = (
        "actions = act pause last\n"
        f"act = say\nact.param.1 = tick\nact.outputFile = {target}\nact.repeatEvery = 20\n"
        "pause = nap\npause.param.1 = 0.3\n"
        f"last = say\nlast.param.1 = END\nlast.outputFile = {target}\n"
    )
    ok, output = run(engine, text)
    assert ok
    assert output == ""

    def lines():
        return target.read_text(encoding="utf-8").splitlines()

    assert wait_for(lambda: len(lines()) - lines().index("END") > 2)
    engine.stop_event.set()
    engine.join_repeats(timeout=2)
    written = lines()
    assert set(written) == {"tick", "END"}
    assert written.count("END") == 1
    assert written.index("END") > 1


def test_repeat_survives_caller_stream_going_away(engine, caplog):
    caplog.set_level(logging.INFO, logger="opshell")
    raw = io.BytesIO()
    out = io.TextIOWrapper(raw, encoding="utf-8", write_through=True)
    text = "actions = say\nactions.param.1 = tick\nactions.repeatEvery = 20\n"
    assert engine.run(out, ControlFile.from_text(text), "actions", {})
    assert wait_for(lambda: raw.getvalue().decode("utf-8").count("tick") >= 3)
    out.detach()

    assert wait_for(lambda: sum("[actions] tick" in r.getMessage() for r in caplog.records) >= 2)
    assert engine.repeating_actions() == ["actions"]
    assert all(r.levelno < logging.ERROR for r in caplog.records)


def test_failed_repeat_can_be_scheduled_again(engine, probe):
    text = "act = once\nact.repeatEvery = 10\n"
    assert run(engine, text, "act")[0]
    assert wait_for(lambda: probe.calls >= 2 and engine.repeating_actions() == [])
    probe.calls = 0
    assert run(engine, text, "act")[0]
    scheduled = [e for e in engine.events.history() if e["event"] == "repeat_scheduled"]
    assert len(scheduled) == 2


def test_events_carry_run_numbers(engine):
    run(engine, "act = say\n", "act")
    run(engine, "broken = fail\n", "broken")
    second = engine.events.history(run=2)
    assert [e["event"] for e in second] == ["run_started", "action_failed", "run_finished"]
    assert all(e["action"] == "broken" for e in second)
    assert [e["run"] for e in engine.events.history(action="act")] == [1, 1]
