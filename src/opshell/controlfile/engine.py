"""
Recursive interpreter for control-file actions.

Each action resolves to a primitive call, a block of sub-actions or an alias
of another action, and is wrapped with looping, postponement, output
redirection, exception policy and variable scoping. ``repeatEvery`` actions
are re-run periodically on a background thread.
"""

from __future__ import annotations

import io
import itertools
import logging
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, List, Mapping, MutableMapping, Optional, Sequence, TextIO

from ..errors import (
    ActionNotFoundError,
    ConfigurationError,
    ControlFileError,
    InternalConsistencyError,
    describe_exception,
)
from ..observability.events import EventBuffer, record_event
from . import descriptor as d
from .output import OutputRegistry, RepeatOutput, resolve_output
from .policy import Disposition, ExceptionKind, classify, resolve_exception_kind
from .properties import load_control_file
from .timeparse import hms_to_seconds, time_to_timestamp
from .variables import substitute, trim_and_unquote

if TYPE_CHECKING:  # pragma: no cover
    from ..runtime.commands import CommandRegistry

log = logging.getLogger(__name__)

CONTROL_FILE_PRIMITIVE = "controlFile"

ControlFileHook = Callable[[TextIO, Mapping[str, str], MutableMapping[str, str], List[str]], bool]


@dataclass
class ActionPlan:
    """Everything resolved for one action invocation before it iterates."""

    arguments: List[str]
    output: TextIO
    assign_name: Optional[str]
    assign_buffer: Optional[io.StringIO]
    ignore: Optional[ExceptionKind]
    until: Optional[ExceptionKind]
    foreach: Optional[List[str]]
    repeat: Optional[int]
    loop_variable: str
    binds_loop_variable: bool

    @property
    def target(self) -> str:
        return self.arguments[0]

    @property
    def catches(self) -> bool:
        return self.ignore is not None or self.until is not None


def _println(stream: TextIO, text: str = "") -> None:
    stream.write(f"{text}\n")


class ActionEngine:
    def __init__(
        self,
        commands: "CommandRegistry",
        events: Optional[EventBuffer] = None,
        stop_event: Optional[threading.Event] = None,
        default_action: str = "actions",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.commands = commands
        self.events = events
        self.stop_event = stop_event or threading.Event()
        self.default_action = default_action
        self.clock = clock
        self._repeat_threads: Dict[str, threading.Thread] = {}
        self._repeat_lock = threading.Lock()
        self._current = threading.local()
        # primitives that also receive the calling control file and its variables
        self.control_file_hooks: Dict[str, ControlFileHook] = {
            CONTROL_FILE_PRIMITIVE: lambda out, config, variables, args: self.run_control_file(out, args, dict(variables)),
        }

    # ------------------------------------------------------------------ entry points

    def run(
        self,
        out: TextIO,
        config: Mapping[str, str],
        action: Optional[str] = None,
        variables: Optional[MutableMapping[str, str]] = None,
        throw_exception: bool = False,
    ) -> bool:
        """Run ``action`` as a whole control-file run with its own output files."""

        action = action or self.default_action
        variables = variables if variables is not None else {}
        outputs = OutputRegistry()
        run_id = self.events.start_run() if self.events is not None else None
        previous_run = self.current_run
        self._current.run = run_id
        record_event(self.events, "run_started", action=action, run=run_id)
        try:
            ok = self.execute_action(out, config, action, variables, outputs, throw_exception)
        except Exception as exc:
            if throw_exception:
                raise
            raise InternalConsistencyError(
                f"Action execution cannot raise when exceptions are not propagated: {describe_exception(exc)}",
                action=action,
            ) from exc
        finally:
            outputs.close()
            self._current.run = previous_run
        record_event(self.events, "run_finished", level="info" if ok else "error", action=action, run=run_id, success=ok)
        return ok

    def run_control_file(
        self,
        out: TextIO,
        arguments: Sequence[str],
        variables: Optional[MutableMapping[str, str]] = None,
    ) -> bool:
        """Load ``arguments[0]`` and run the action picked by the remaining arguments.

        Arguments of the form ``name=value`` set variables; any other argument
        names the action to start with.
        """

        if not arguments:
            _println(out, "controlFile requires a control file path (see 'help controlFile')")
            return False
        try:
            config = load_control_file(arguments[0])
        except ControlFileError as exc:
            _println(out, str(exc))
            return False
        variables = variables if variables is not None else {}
        action = self.default_action
        for arg in arguments[1:]:
            name, sep, value = arg.partition("=")
            if sep:
                variables[trim_and_unquote(name)] = trim_and_unquote(value)
            else:
                action = arg
        log.info("Running action '%s' from %s", action, config.source)
        return self.run(out, config, action, variables)

    # ------------------------------------------------------------------ resolution

    def _resolve_kind(self, out: TextIO, config, action: str, modifier: str, variables) -> tuple[bool, Optional[ExceptionKind]]:
        identifier = d.read_modifier(config, action, modifier, variables)
        if identifier is None:
            return True, None
        try:
            return True, resolve_exception_kind(identifier)
        except ConfigurationError as exc:
            _println(out, f"Wrong {modifier} for action '{action}': {exc.message}")
            return False, None

    def resolve_plan(
        self,
        out: TextIO,
        config: Mapping[str, str],
        action: str,
        variables: MutableMapping[str, str],
        outputs: Optional[OutputRegistry],
    ) -> Optional[ActionPlan]:
        arguments = d.read_arguments(config, action, variables)

        assign_name = d.read_modifier(config, action, d.ASSIGN, variables)
        assign_buffer = io.StringIO() if assign_name is not None else None
        output = resolve_output(out, config, action, variables, outputs, assign_buffer)
        if output is None:
            return None

        ok, ignore = self._resolve_kind(out, config, action, d.IGNORE_EXCEPTION, variables)
        if not ok:
            return None
        foreach = d.read_foreach(config, action, variables)
        ok, until = self._resolve_kind(out, config, action, d.REPEAT_UNTIL_EXCEPTION, variables)
        if not ok:
            return None

        repeat: Optional[int]
        raw_repeat = d.read_modifier(config, action, d.REPEAT, variables)
        if foreach is not None:
            if raw_repeat is not None:
                _println(out, f"WARNING: Action '{action}' has both the 'repeat' and the 'foreach' parameters defined. Using foreach.")
                log.warning("Action '%s' defines both repeat and foreach; using foreach", action)
            repeat = len(foreach)
        elif raw_repeat is None:
            repeat = 1 if until is None else None
        else:
            try:
                repeat = int(raw_repeat.strip())
            except ValueError:
                repeat = -1
            if repeat < 0:
                _println(out, f"Number of repeats specified in action '{action}' is not a valid non-negative integer")
                return None

        loop_variable = d.read_modifier(config, action, d.LOOP_VARIABLE, variables) or action
        return ActionPlan(
            arguments=arguments,
            output=output,
            assign_name=assign_name,
            assign_buffer=assign_buffer if output is assign_buffer else None,
            ignore=ignore,
            until=until,
            foreach=foreach,
            repeat=repeat,
            loop_variable=loop_variable,
            binds_loop_variable=foreach is not None or d.has_modifier(config, action, d.REPEAT),
        )

    def postpone(self, out: TextIO, config: Mapping[str, str], action: str, variables: Mapping[str, str]) -> bool:
        value = d.read_modifier(config, action, d.POSTPONE_UNTIL, variables)
        if value is None or not value.strip():
            return True
        try:
            delay = time_to_timestamp(value.strip()) - self.clock()
        except ValueError as exc:
            _println(out, f"{exc} for postponeUntil parameter for action '{action}'")
            return False
        if delay > 0:
            log.info("Postponing action '%s' for %.3f seconds", action, delay)
            if self.stop_event.wait(delay):
                _println(out, "Thread interrupted while waiting for postponed execution")
        return True

    # ------------------------------------------------------------------ execution

    def execute_action(
        self,
        out: TextIO,
        config: Mapping[str, str],
        action: str,
        variables: MutableMapping[str, str],
        outputs: Optional[OutputRegistry],
        throw_exception: bool = False,
    ) -> bool:
        try:
            plan = self.resolve_plan(out, config, action, variables, outputs)
            if plan is None or not self.postpone(out, config, action, variables):
                return False
        except ConfigurationError as exc:
            _println(out, f"Action '{action}' cannot be resolved: {exc.message}")
            return False

        ok = self._iterate(out, config, action, variables, outputs, throw_exception, plan)
        if not ok:
            record_event(self.events, "action_failed", level="error", action=action, run=self.current_run)
            return False

        if plan.assign_name is not None and plan.assign_buffer is not None:
            variables[plan.assign_name] = plan.assign_buffer.getvalue().rstrip()

        repeat_every = d.read_modifier(config, action, d.REPEAT_EVERY)
        if repeat_every is not None:
            self._schedule_repeat(out, config, action, repeat_every, variables, outputs)
        return True

    def _iterate(self, out, config, action, variables, outputs, throw_exception, plan: ActionPlan) -> bool:
        description = d.read_modifier(config, action, d.DESCRIPTION)
        description_after = d.read_modifier(config, action, d.DESCRIPTION_AFTER)
        nested_throw = throw_exception or plan.catches
        iteration_key = f"{plan.loop_variable}_iteration"
        saved_value = variables.get(plan.loop_variable)
        counter = itertools.count() if plan.repeat is None else range(plan.repeat)
        try:
            for i in counter:
                if plan.repeat is None and self.stop_event.is_set():
                    log.info("Stopping unbounded loop of action '%s'", action)
                    break
                if plan.binds_loop_variable:
                    variables[plan.loop_variable] = plan.foreach[i] if plan.foreach is not None else str(i + 1)
                    variables[iteration_key] = str(i)
                try:
                    if description is not None:
                        _println(plan.output, substitute(description, variables))
                    if not self._dispatch(out, config, action, variables, outputs, nested_throw, plan):
                        return False
                    if description_after is not None:
                        _println(plan.output, substitute(description_after, variables))
                except Exception as exc:
                    disposition = classify(exc, plan.ignore, plan.until)
                    if disposition is Disposition.TERMINATE_LOOP:
                        log.debug("Action '%s' loop ended by %s", action, type(exc).__name__)
                        break
                    if disposition is Disposition.IGNORE:
                        log.debug("Action '%s' ignored %s", action, type(exc).__name__)
                        continue
                    if throw_exception:
                        raise
                    log.error("Action '%s' raised %s", action, describe_exception(exc), exc_info=exc)
                    stream = self._failure_stream(out, plan)
                    _println(stream, describe_exception(exc))
                    _println(stream, f"Action '{action}' failed - control file execution was terminated")
                    return False
        finally:
            if plan.binds_loop_variable:
                variables.pop(iteration_key, None)
                if saved_value is None:
                    variables.pop(plan.loop_variable, None)
                else:
                    variables[plan.loop_variable] = saved_value
        return True

    def _failure_stream(self, out: TextIO, plan: ActionPlan) -> TextIO:
        if plan.assign_buffer is not None:
            out.write(plan.assign_buffer.getvalue())
            return out
        return plan.output

    def _dispatch(self, out, config, action, variables, outputs, nested_throw: bool, plan: ActionPlan) -> bool:
        target = plan.target
        if d.is_block(target):
            for member in d.block_members(target):
                if not self.execute_action(plan.output, config, member, variables, outputs, nested_throw):
                    if plan.assign_buffer is not None:
                        out.write(plan.assign_buffer.getvalue())
                    return False
            return True

        if target in self.control_file_hooks or self.commands.get(target) is not None:
            if not self._execute_primitive(plan.output, config, variables, plan.arguments):
                stream = self._failure_stream(out, plan)
                _println(stream, f"Action '{action}' failed - control file execution was terminated")
                return False
            return True

        if target != action:
            return self.execute_action(plan.output, config, target, variables, outputs, nested_throw)

        message = f"Action '{action}' not found in the control file"
        if nested_throw:
            raise ActionNotFoundError(message)
        _println(plan.output, message)
        return False

    def _execute_primitive(self, output: TextIO, config, variables: MutableMapping[str, str], arguments: List[str]) -> bool:
        hook = self.control_file_hooks.get(arguments[0])
        try:
            if hook is not None:
                return hook(output, config, variables, arguments[1:])
            return self.commands.execute(output, arguments)
        finally:
            output.flush()

    # ------------------------------------------------------------------ background repeats

    def _schedule_repeat(self, out, config, action, repeat_every: str, variables, outputs: Optional[OutputRegistry]) -> None:
        with self._repeat_lock:
            if action in self._repeat_threads:
                return
            try:
                interval = hms_to_seconds(substitute(repeat_every, variables))
            except ValueError as exc:
                _println(out, f"Wrong repeatEvery for action '{action}': {exc}")
                return
            thread = threading.Thread(
                target=self._repeat_loop,
                args=(
                    RepeatOutput(out, action),
                    config,
                    action,
                    interval,
                    dict(variables),
                    outputs.fork() if outputs is not None else None,
                    self.current_run,
                ),
                name=f"Repeat action {action} every {repeat_every}",
                daemon=True,
            )
            self._repeat_threads[action] = thread
        log.info("Scheduling action '%s' every %.3f seconds", action, interval)
        record_event(self.events, "repeat_scheduled", action=action, run=self.current_run, interval=interval)
        thread.start()

    def _repeat_loop(
        self,
        out: RepeatOutput,
        config,
        action: str,
        interval: float,
        variables,
        outputs: Optional[OutputRegistry],
        run_id: Optional[int],
    ) -> None:
        self._current.run = run_id
        try:
            while not self.stop_event.wait(interval):
                try:
                    ok = self.execute_action(out, config, action, variables, outputs, False)
                except Exception as exc:
                    raise InternalConsistencyError(
                        f"Exception raised even though it should not have been: {describe_exception(exc)}",
                        action=action,
                    ) from exc
                if not ok:
                    log.warning("Repeated action '%s' failed; no further repeats", action)
                    break
        finally:
            if outputs is not None:
                outputs.close()
            with self._repeat_lock:
                if self._repeat_threads.get(action) is threading.current_thread():
                    del self._repeat_threads[action]
            record_event(self.events, "repeat_stopped", action=action, run=run_id)

    @property
    def current_run(self) -> Optional[int]:
        """Event run number of the control-file run executing on this thread."""

        return getattr(self._current, "run", None)

    def repeating_actions(self) -> list[str]:
        with self._repeat_lock:
            return [name for name, thread in self._repeat_threads.items() if thread.is_alive()]

    def join_repeats(self, timeout: Optional[float] = None) -> None:
        with self._repeat_lock:
            threads = list(self._repeat_threads.values())
        for thread in threads:
            thread.join(timeout)
