"""
The application: running engines, named instances, logging control and the
primitive commands that control files and shells call by name.
"""

from __future__ import annotations

import datetime as dt
import gc
import logging
import re
import threading
import time
from typing import TYPE_CHECKING, Any, Callable, List, Mapping, MutableMapping, Optional, TextIO

from ..config import ShellConfig, load_config
from ..controlfile.engine import ActionEngine
from ..controlfile.properties import load_control_file
from ..controlfile.variables import string_to_map
from ..errors import (
    ControlFileError,
    MissingInstanceError,
    NoSuchInstantiatorError,
    UnsupportedOperationError,
    describe_exception,
    root_cause,
)
from ..observability import logging_utils
from ..observability.events import EventBuffer
from .commands import CommandRegistry, primitive
from .engines import Engine
from .factory import ObjectFactory
from .instances import NamedInstanceStore
from .operations import CountOperation, ErrorCode, Operation
from .statistics import global_statistics
from .streams import ObjectStream

if TYPE_CHECKING:  # pragma: no cover
    from ..server.routes.contexts import ContextRegistry

log = logging.getLogger(__name__)

NO_ENGINE = "No running algorithm is selected"
NO_OPERATION = "No operation has been executed yet. Use operationExecute method first."
NO_HTTP_SERVER = "There is no HTTP server started"
_RANGE = re.compile(r"\s*(\d+)(?:\s*-\s*(\d+))?\s*")


def _println(out: TextIO, value: Any = "") -> None:
    out.write(f"{value}\n")


def _parse_bool(text: str) -> bool:
    return text.strip().lower() == "true"


def range_selectors_to_indexes(selectors: str) -> List[int]:
    """``"0-2,5"`` -> ``[0, 1, 2, 5]``."""

    indexes: List[int] = []
    for part in selectors.split(","):
        match = _RANGE.fullmatch(part)
        if match is None:
            raise ValueError(f"Cannot understand range selector '{part}'")
        start = int(match.group(1))
        end = int(match.group(2)) if match.group(2) is not None else start
        indexes.extend(range(start, end + 1))
    return indexes


class Application:
    def __init__(
        self,
        config: Optional[ShellConfig] = None,
        factory: Optional[ObjectFactory] = None,
        instances: Optional[NamedInstanceStore] = None,
        events: Optional[EventBuffer] = None,
    ) -> None:
        self.config = config or load_config()
        self.factory = factory or ObjectFactory()
        self.instances = instances or NamedInstanceStore()
        self.events = events or EventBuffer(self.config.event_buffer_size)
        self.commands = CommandRegistry()
        self.stop_event = threading.Event()
        self.engine = ActionEngine(
            self.commands,
            events=self.events,
            stop_event=self.stop_event,
            default_action=self.config.default_action,
        )
        self.engine.control_file_hooks["httpAddContext"] = self._http_add_context_from_control_file
        self.algorithms: List[Engine] = []
        self.algorithm: Optional[Engine] = None
        self.last_operation: Optional[Operation] = None
        self.http_contexts: Optional["ContextRegistry"] = None
        self._quit_callbacks: List[Callable[[], None]] = []
        self._lock = threading.RLock()
        self.commands.register_object(self)

    # ------------------------------------------------------------------ helpers

    def on_quit(self, callback: Callable[[], None]) -> None:
        self._quit_callbacks.append(callback)

    def execute(self, out: TextIO, arguments: List[str]) -> bool:
        """Run one command line (already split into arguments)."""

        try:
            return self.commands.execute(out, arguments)
        finally:
            out.flush()

    def run_control_file(self, out: TextIO, arguments: List[str], variables: Optional[MutableMapping[str, str]] = None) -> bool:
        return self.engine.run_control_file(out, arguments, variables)

    def add_algorithm(self, engine: Engine) -> bool:
        with self._lock:
            self.algorithms.append(engine)
            self.algorithm = engine
        return True

    def remove_algorithm(self, engine: Optional[Engine]) -> bool:
        if engine is None:
            return False
        with self._lock:
            try:
                self.algorithms.remove(engine)
                removed = True
            except ValueError:
                removed = False
            if self.algorithm is engine:
                self.algorithm = self.algorithms[-1] if self.algorithms else None
        engine.close()
        return removed

    def _instances_with_last_operation(self) -> Mapping[str, Any]:
        return self.instances.extended(lastOperation=self.last_operation)

    def _require_algorithm(self, out: TextIO) -> Optional[Engine]:
        if self.algorithm is None:
            _println(out, NO_ENGINE)
        return self.algorithm

    # ------------------------------------------------------------------ engines

    @primitive("algorithmStart", "start specified algorithm instance", ("algorithm class", "arguments for constructor ..."))
    def algorithm_start(self, out: TextIO, *args: str) -> bool:
        if not args:
            _println(out, "algorithmStart requires a class parameter (see 'help algorithmStart')")
            return False
        try:
            target = self.factory.resolve_type(args[0])
        except NoSuchInstantiatorError as exc:
            _println(out, f"Can't find algorithm class: {exc.message}")
            return False
        try:
            engine = self.factory.create(args[0], args[1:], self.instances, expected=Engine)
        except Exception as exc:
            cause = root_cause(exc)
            log.error("Cannot start algorithm %s: %s", args[0], describe_exception(cause), exc_info=cause)
            _println(out, describe_exception(cause))
            _println(out, "---------------- Available constructors ----------------")
            _println(out, self.factory.describe(target))
            return False
        log.info("Started algorithm %s", engine)
        return self.add_algorithm(engine)

    @primitive("algorithmStop", "stop current algorithm and select the previous as current")
    def algorithm_stop(self, out: TextIO, *args: str) -> bool:
        try:
            return self.remove_algorithm(self.algorithm)
        except Exception as exc:
            _println(out, describe_exception(exc))
            return False

    @primitive("algorithmStopAll", "stop all algorithms")
    def algorithm_stop_all(self, out: TextIO, *args: str) -> bool:
        for engine in list(self.algorithms):
            try:
                self.remove_algorithm(engine)
            except Exception as exc:
                _println(out, describe_exception(exc))
        return True

    @primitive("algorithmInfo", "show info about current algorithm")
    def algorithm_info(self, out: TextIO, *args: str) -> bool:
        engine = self._require_algorithm(out)
        if engine is None:
            return False
        _println(out, engine)
        return True

    @primitive("algorithmInfoAll", "show info about all algorithms")
    def algorithm_info_all(self, out: TextIO, *args: str) -> bool:
        if not self.algorithms:
            _println(out, "No algorithm is running")
            return False
        for index, engine in enumerate(self.algorithms):
            _println(out, f"Algorithm #{index}:")
            _println(out, engine)
        return True

    @primitive("algorithmSelect", "select algorithm to manage", ("# of the algorithm to select",))
    def algorithm_select(self, out: TextIO, *args: str) -> bool:
        try:
            index = int(args[0])
            if index < 0:
                raise IndexError(index)
            self.algorithm = self.algorithms[index]
            return True
        except (IndexError, ValueError):
            _println(out, f"Algorithm # must be specified - use a number between 0 and {len(self.algorithms) - 1}")
            return False

    @primitive(
        "algorithmToNamedInstance",
        "store algorithm(s) as a named instance",
        ("name of the instance", "algorithm index, range selector or 'all' (optional)"),
    )
    def algorithm_to_named_instance(self, out: TextIO, *args: str) -> bool:
        if not args:
            _println(out, "algorithmToNamedInstance requires the name of the instance")
            return False
        if len(args) < 2:
            value: Any = self.algorithm
        elif args[1].lower() == "all":
            value = list(self.algorithms)
        elif args[1].strip().isdigit():
            value = self.algorithms[int(args[1])]
        else:
            value = [self.algorithms[index] for index in range_selectors_to_indexes(args[1])]
        self.instances.replace(args[0], value)
        return True

    @primitive("algorithmSupportedOperations", "show all operations supported by current algorithm")
    def algorithm_supported_operations(self, out: TextIO, *args: str) -> bool:
        engine = self._require_algorithm(out)
        if engine is None:
            return False
        _println(out, "---------------- Available operations ----------------")
        for op_type in engine.supported_operations():
            _println(out, op_type.describe())
        return True

    # ------------------------------------------------------------------ operations

    def _create_operation(self, out: TextIO, command: str, args: tuple[str, ...]) -> Optional[Operation]:
        if not args:
            _println(out, f"The class of the operation must be specified (see 'help {command}')")
            return None
        try:
            target = self.factory.resolve_type(args[0])
        except NoSuchInstantiatorError as exc:
            _println(out, f"Can't find operation class: {exc.message}")
            return None
        try:
            return self.factory.create(args[0], args[1:], self._instances_with_last_operation(), expected=Operation)
        except NoSuchInstantiatorError as exc:
            _println(out, exc.message)
        _println(out, "---------------- Operation parameters ----------------")
        _println(out, self.factory.describe(target))
        return None

    @primitive("operationPrepare", "prepare the specified operation", ("operation class", "arguments for constructor ..."))
    def operation_prepare(self, out: TextIO, *args: str) -> bool:
        self.last_operation = self._create_operation(out, "operationPrepare", args)
        return self.last_operation is not None

    @primitive(
        "operationExecute",
        "execute specified operation on current algorithm instance",
        ("operation class", "arguments for constructor ..."),
    )
    def operation_execute(self, out: TextIO, *args: str) -> bool:
        engine = self._require_algorithm(out)
        if engine is None:
            return False
        operation = self._create_operation(out, "operationExecute", args)
        if operation is None:
            return False
        try:
            self.last_operation = engine.execute_operation(operation)
        except UnsupportedOperationError as exc:
            _println(out, exc.message)
            self.algorithm_supported_operations(out)
            return False
        return True

    @primitive(
        "operationBgExecute",
        "execute on background specified operation on current algorithm instance",
        ("operation class", "arguments for constructor ..."),
    )
    def operation_bg_execute(self, out: TextIO, *args: str) -> bool:
        engine = self._require_algorithm(out)
        if engine is None:
            return False
        operation = self._create_operation(out, "operationBgExecute", args)
        if operation is None:
            return False
        try:
            engine.background_execute(operation)
        except UnsupportedOperationError as exc:
            _println(out, exc.message)
            self.algorithm_supported_operations(out)
            return False
        return True

    @primitive("operationWaitBg", "wait for all background operations")
    def operation_wait_bg(self, out: TextIO, *args: str) -> bool:
        engine = self._require_algorithm(out)
        if engine is None:
            return False
        finished = engine.wait_background()
        if finished:
            self.last_operation = finished[0]
        return True

    @primitive(
        "operationExecuteAgain",
        "execute the last operation once more",
        ("boolean whether to reset operation answer (default: false)",),
    )
    def operation_execute_again(self, out: TextIO, *args: str) -> bool:
        engine = self.algorithm
        operation = self.last_operation
        if engine is None or operation is None:
            _println(out, NO_OPERATION)
            return False
        if args and _parse_bool(args[0]):
            operation.reset_answer()
        try:
            self.last_operation = engine.execute_operation(operation)
        except UnsupportedOperationError as exc:
            _println(out, exc.message)
            self.algorithm_supported_operations(out)
            return False
        return True

    @primitive("operationInfo", "show information about the last executed operation")
    def operation_info(self, out: TextIO, *args: str) -> bool:
        _println(out, self.last_operation)
        return True

    @primitive("operationErrorCode", "show error code returned by the last executed operation")
    def operation_error_code(self, out: TextIO, *args: str) -> bool:
        operation = self.last_operation
        _println(out, ErrorCode.NOT_SET if operation is None else operation.error_code)
        return True

    @primitive("operationObjectCount", "show number of objects returned by the last executed operation")
    def operation_object_count(self, out: TextIO, *args: str) -> bool:
        operation = self.last_operation
        if operation is not None and operation.is_query:
            _println(out, operation.answer_count)
        elif isinstance(operation, CountOperation):
            _println(out, operation.count)
        else:
            _println(out, "Object count is available only for query operations")
        return True

    @primitive(
        "operationAnswer",
        "list objects retrieved by the last executed query operation",
        ("objects separator (defaults to newline)", "number of results to display (defaults to all)", "number of results to skip (defaults to 0)"),
    )
    def operation_answer(self, out: TextIO, *args: str) -> bool:
        operation = self.last_operation
        if operation is None:
            _println(out, NO_OPERATION)
            return False
        separator = args[0] if args and args[0] else "\n"
        try:
            count = int(args[1]) if len(args) > 1 and args[1] else None
            skip = int(args[2]) if len(args) > 2 and args[2] else 0
        except ValueError as exc:
            _println(out, f"Invalid number of results: {exc}")
            return False
        items = operation.answer[skip:]
        if count is not None:
            items = items[:count]
        _println(out, separator.join(str(item) for item in items))
        return True

    @primitive("operationArgument", "show an argument of the last executed operation", ("index of the argument to show",))
    def operation_argument(self, out: TextIO, *args: str) -> bool:
        operation = self.last_operation
        if operation is None:
            _println(out, NO_OPERATION)
            return False
        if not args:
            _println(out, "operationArgument method requires the index of the argument")
            return False
        try:
            index = int(args[0])
        except ValueError:
            index = -1
        if index < 0 or index >= operation.argument_count:
            _println(out, f"operationArgument index '{args[0]}' is not within <0;{operation.argument_count}) bounds")
            return False
        _println(out, operation.get_argument(index))
        return True

    @primitive(
        "operationParam",
        "show or set a parameter of the last executed operation",
        ("name of the parameter to show or set", "new value of the parameter (optional)", "type of the value being set (optional)"),
    )
    def operation_param(self, out: TextIO, *args: str) -> bool:
        operation = self.last_operation
        if operation is None:
            _println(out, NO_OPERATION)
            return False
        if not args:
            _println(out, "operationParam method requires the name of the parameter")
            return False
        if len(args) == 1:
            _println(out, operation.get_parameter(args[0]))
            return True
        if len(args) > 2:
            try:
                value = self.factory.create(args[2], [args[1]], self.instances)
            except NoSuchInstantiatorError as exc:
                _println(out, f"Cannot set parameter {args[0]}: {exc.message}")
                return False
        else:
            value = args[1]
        operation.set_parameter(args[0], value)
        return True

    @primitive("methodExecute", "directly execute a method of the running algorithm", ("method name", "arguments for the method ..."))
    def method_execute(self, out: TextIO, *args: str) -> bool:
        engine = self._require_algorithm(out)
        if engine is None:
            return False
        if not args:
            _println(out, "methodExecute requires at least the method name (see 'help methodExecute')")
            return False
        try:
            arguments = [self.factory.convert_argument(arg, self.instances) for arg in args[1:]]
            result = engine.execute_method(args[0], arguments)
        except NoSuchInstantiatorError:
            _println(out, f"Method '{args[0]}' with {len(args) - 1} arguments was not found in algorithm")
            return False
        except Exception as exc:
            log.error("Method %s failed: %s", args[0], describe_exception(exc), exc_info=exc)
            _println(out, describe_exception(exc))
            return False
        if result is not None:
            _println(out, result)
        return True

    # ------------------------------------------------------------------ statistics

    @primitive("statisticsDisable", "enable/disable statistics", ("false to enable statistics (not required)",))
    def statistics_disable(self, out: TextIO, *args: str) -> bool:
        if not args or _parse_bool(args[0]):
            global_statistics.disable()
        else:
            global_statistics.enable()
        return True

    def _print_statistics(self, out: TextIO, registry, args: tuple[str, ...]) -> None:
        if len(args) >= 2:
            text = registry.print_statistics(args[0], args[1])
            if len(args) >= 3:
                out.write(text + args[2])
            else:
                _println(out, text)
        elif args:
            _println(out, registry.print_statistics(args[0]))
        else:
            _println(out, registry.print_statistics())

    @primitive(
        "statisticsGlobal",
        "show global statistics",
        ("statistic name regexp (not required)", "separator of statistics (not required)", "final separator (not required)"),
    )
    def statistics_global(self, out: TextIO, *args: str) -> bool:
        self._print_statistics(out, global_statistics, args)
        return True

    @primitive("statisticsResetGlobal", "reset global statistics", ("statistic name regexp (not required)",))
    def statistics_reset_global(self, out: TextIO, *args: str) -> bool:
        global_statistics.reset(args[0] if args else None)
        return True

    @primitive(
        "statisticsLastOperation",
        "show last operation statistics",
        ("statistic name regexp (not required)", "separator of statistics (not required)", "final separator (not required)"),
    )
    def statistics_last_operation(self, out: TextIO, *args: str) -> bool:
        engine = self._require_algorithm(out)
        if engine is None:
            return False
        self._print_statistics(out, engine.operation_statistics, args)
        return True

    # ------------------------------------------------------------------ object streams

    @primitive(
        "objectStreamOpen",
        "create new stream of objects read from a file",
        ("filename", "type of objects in the stream", "name of the stream", "additional arguments for the object constructor (optional)"),
    )
    def object_stream_open(self, out: TextIO, *args: str) -> bool:
        if len(args) < 3:
            _println(out, "objectStreamOpen requires a filename, object class and name (see 'help objectStreamOpen')")
            return False
        try:
            item_factory = self.factory.resolve_type(args[1])
            extra = [self.factory.convert_argument(arg, self.instances) for arg in args[3:]]
            stream = ObjectStream(args[0], item_factory, extra)
        except (NoSuchInstantiatorError, OSError) as exc:
            _println(out, describe_exception(exc))
            return False
        previous = self.instances.replace(args[2], stream)
        if previous is not None:
            if isinstance(previous, ObjectStream):
                previous.close()
            _println(out, "Previously opened stream changed to a new file")
        return True

    @primitive("objectStreamClose", "close a stream of objects", ("name of the stream",))
    def object_stream_close(self, out: TextIO, *args: str) -> bool:
        return self.named_instance_remove(out, *args)

    def _stream(self, out: TextIO, name: str) -> Optional[ObjectStream]:
        stream = self.instances.get(name)
        if not isinstance(stream, ObjectStream):
            out.write(f"Stream '{name}' is not opened\n")
            return None
        return stream

    @primitive("objectStreamReset", "reset a stream to read objects from the beginning", ("name of the stream",))
    def object_stream_reset(self, out: TextIO, *args: str) -> bool:
        if not args:
            _println(out, "objectStreamReset requires a stream name (see 'help objectStreamReset')")
            return False
        stream = self._stream(out, args[0])
        if stream is None:
            return False
        try:
            stream.reset()
        except OSError as exc:
            _println(out, describe_exception(exc))
            return False
        return True

    @primitive(
        "objectStreamSkip",
        "skip objects from the stream",
        ("name of the stream", "number of objects to skip (or -1 for all)", "regexp of an object to skip to (optional)"),
    )
    def object_stream_skip(self, out: TextIO, *args: str) -> bool:
        if len(args) < 2:
            _println(out, "objectStreamSkip requires a stream name and number of objects to skip (see 'help objectStreamSkip')")
            return False
        stream = self._stream(out, args[0])
        if stream is None:
            return False
        try:
            count = int(args[1])
        except ValueError as exc:
            _println(out, f"Cannot convert number of objects to skip: {exc}")
            return False
        if count != 0:
            stream.skip(count)
        if len(args) > 2 and args[2]:
            stream.skip_to(args[2])
        return True

    @primitive("objectStreamList", "list opened object streams")
    def object_stream_list(self, out: TextIO, *args: str) -> bool:
        for name, value in self.instances.items_snapshot():
            if isinstance(value, ObjectStream):
                _println(out, f"{name}: {value}")
        return True

    # ------------------------------------------------------------------ named instances

    @primitive(
        "namedInstanceAdd",
        "creates a new named instance",
        ("instance constructor, factory method or static field signature", "name to register"),
    )
    def named_instance_add(self, out: TextIO, *args: str) -> bool:
        if len(args) < 2:
            _println(out, "Two arguments (signature and instance name) are required for namedInstanceAdd")
            return False
        if args[1] in self.instances:
            _println(out, f"Named instance '{args[1]}' already exists")
            return False
        return self.named_instance_replace(out, *args)

    @primitive(
        "namedInstanceReplace",
        "creates a new named instance or replaces old one",
        ("instance constructor, factory method or static field signature", "name to register"),
    )
    def named_instance_replace(self, out: TextIO, *args: str) -> bool:
        if len(args) < 2:
            _println(out, "Two arguments (signature and instance name) are required for namedInstanceReplace")
            return False
        try:
            instance = self.factory.instantiate(args[0], object, self._instances_with_last_operation())
        except NoSuchInstantiatorError as exc:
            _println(out, f"Error creating named instance for {args[0]}: {exc.message}")
            return False
        self.instances.replace(args[1], instance)
        return True

    @primitive("namedInstanceList", "list all named instances")
    def named_instance_list(self, out: TextIO, *args: str) -> bool:
        for name, value in self.instances.items_snapshot():
            _println(out, f"{name}={value}")
        return True

    @primitive("namedInstanceRemove", "removes a named instance", ("name of the instance",))
    def named_instance_remove(self, out: TextIO, *args: str) -> bool:
        if not args:
            _println(out, "The name of the instance is required for namedInstanceRemove")
            return False
        try:
            self.instances.remove(args[0])
        except MissingInstanceError as exc:
            _println(out, exc.message)
        except OSError as exc:
            _println(out, f"Error closing named instance: {describe_exception(exc)}")
            return False
        return True

    @primitive("namedInstanceEcho", "prints the value of a named instance", ("name of the instance",))
    def named_instance_echo(self, out: TextIO, *args: str) -> bool:
        if not args:
            _println(out, "The argument with the instance name is required for namedInstanceEcho")
            return False
        value = self.instances.get(args[0])
        if value is None:
            try:
                value = self.factory.instantiate(args[0], object, self.instances)
            except NoSuchInstantiatorError as exc:
                _println(out, f"Error creating named instance for {args[0]}: {exc.message}")
                return False
        _println(out, value)
        return True

    # ------------------------------------------------------------------ logging

    @primitive("loggingLevel", "get/set global level of logging", ("new logging level (optional)",))
    def logging_level(self, out: TextIO, *args: str) -> bool:
        try:
            if not args:
                _println(out, f"Current global logging level: {logging_utils.get_log_level()}")
            else:
                logging_utils.set_log_level(args[0])
        except ValueError as exc:
            _println(out, exc)
            return False
        return True

    @primitive("loggingConsoleChangeLevel", "set logging level for console", ("new logging level",))
    def logging_console_change_level(self, out: TextIO, *args: str) -> bool:
        try:
            logging_utils.set_console_level(args[0] if args else "")
        except ValueError as exc:
            _println(out, exc)
            return False
        return True

    @primitive(
        "loggingFileAdd",
        "add logging file to write logs",
        (
            "file name",
            "logging level",
            "append to file",
            "simple format (true), verbose (false) or a format string",
            "regexp to filter",
            "match regexp against MESSAGE, LOGGER_NAME, FUNC_NAME or MODULE",
            "maximal log size",
            "number of rotated logs",
        ),
    )
    def logging_file_add(self, out: TextIO, *args: str) -> bool:
        if not args:
            _println(out, "loggingFileAdd requires a file name")
            return False
        try:
            logging_utils.add_log_file(
                args[0],
                level=args[1] if len(args) > 1 else None,
                append=_parse_bool(args[2]) if len(args) > 2 else True,
                fmt=args[3] if len(args) > 3 else None,
                regexp=args[4] if len(args) > 4 and args[4] else None,
                against=args[5] if len(args) > 5 and args[5] else "MESSAGE",
                max_bytes=int(args[6]) if len(args) > 6 else 0,
                backup_count=int(args[7]) if len(args) > 7 else 10,
            )
        except OSError as exc:
            _println(out, f"Can't open file '{args[0]}': {describe_exception(exc)}")
            return False
        except (ValueError, re.error) as exc:
            _println(out, exc)
            return False
        return True

    @primitive("loggingFileRemove", "close log file", ("file name",))
    def logging_file_remove(self, out: TextIO, *args: str) -> bool:
        try:
            logging_utils.remove_log_file(args[0] if args else "")
        except KeyError:
            _println(out, f"Log file '{args[0] if args else ''}' is not opened")
            return False
        return True

    @primitive("loggingFileChangeLevel", "change file log level", ("file name", "new logging level"))
    def logging_file_change_level(self, out: TextIO, *args: str) -> bool:
        if len(args) < 2:
            _println(out, "loggingFileChangeLevel requires a file name and a level")
            return False
        try:
            logging_utils.set_log_file_level(args[0], args[1])
        except KeyError:
            _println(out, f"Log file '{args[0]}' is not opened")
            return False
        except ValueError as exc:
            _println(out, exc)
            return False
        return True

    # ------------------------------------------------------------------ miscellaneous

    @primitive("collectGarbage", "schedule full garbage collection", ("time to sleep in milliseconds (optional)",))
    def collect_garbage(self, out: TextIO, *args: str) -> bool:
        gc.collect()
        if args:
            if self.stop_event.wait(int(args[0]) / 1000.0):
                _println(out, "Sleep was interrupted")
                return False
        return True

    @primitive("currentTime", "prints current time in milliseconds or formatted", ("strftime format (optional)",))
    def current_time(self, out: TextIO, *args: str) -> bool:
        if args:
            try:
                out.write(dt.datetime.now().strftime(args[0]))
            except ValueError as exc:
                _println(out, f"Wrong date format '{args[0]}': {exc}")
                return False
        else:
            out.write(str(int(time.time() * 1000)))
        return True

    @primitive("help", "show help", ("command name (optional)",))
    def help(self, out: TextIO, *args: str) -> bool:
        if args:
            if args[0] == "close":
                _println(out, "close")
                _println(out, "\tclose this connection (the application keeps running)")
                return True
            entry = self.commands.get(args[0])
            if entry is None:
                _println(out, f"There is no command {args[0]}")
                return True
            _println(out, entry.usage())
            _println(out, f"\t{entry.description}")
            for argument in entry.arguments:
                _println(out, f"\t<{argument}>")
            return True
        _println(out, "Use 'help <command>' to get more details about any command")
        _println(out, "---------------- Available commands ----------------")
        _println(out, "close")
        for entry in self.commands.primitives():
            _println(out, entry.usage())
        return True

    @primitive("quit", "close the whole application (all connections will be closed)")
    def quit(self, out: TextIO, *args: str) -> bool:
        if self.algorithms:
            _println(out, "Cannot quit application interface if there are some algorithms running")
            return False
        log.info("Quit requested")
        self.stop_event.set()
        for callback in list(self._quit_callbacks):
            callback()
        return True

    @primitive("echo", "prints a specified message", ("output type separator (defaults to SPACE+NEWLINE)", "values..."))
    def echo(self, out: TextIO, *args: str) -> bool:
        separator: Optional[str] = "SPACE"
        last_separator: Optional[str] = "NEWLINE"
        values = list(args)
        if len(values) > 1 and "+" in values[0]:
            spec = values.pop(0)
            separator, _, last_separator = spec.partition("+")
        separator = None if separator == "NEWLINE" else separator.replace("SPACE", " ")
        last_separator = None if last_separator == "NEWLINE" else last_separator.replace("SPACE", " ")
        joined = "\n".join(values) if separator is None else separator.join(values)
        out.write(joined)
        out.write("\n" if last_separator is None else last_separator)
        return True

    @primitive("sum", "computes a sum of values", ("format", "numeric values..."))
    def sum(self, out: TextIO, *args: str) -> bool:
        if len(args) < 2:
            _println(out, "Number format and at least one value must be specified")
            return False
        total = 0.0
        for index, value in enumerate(args[1:], start=1):
            try:
                total += float(value)
            except ValueError as exc:
                _println(out, f"Cannot parse number #{index}: {exc}")
                return False
        try:
            _println(out, format(total, args[0]))
        except ValueError as exc:
            _println(out, f"Number format '{args[0]}' is invalid: {exc}")
            return False
        return True

    @primitive("decode", "decodes a value", ("checked value", "match1", "result1 ..."))
    def decode(self, out: TextIO, *args: str) -> bool:
        if len(args) < 2:
            _println(out, "Decode requires at least two parameters")
            return False
        if len(args) == 2:
            pairs = list(string_to_map(args[1]).items())
        else:
            pairs = list(zip(args[1::2], args[2::2]))
        for pattern, result in pairs:
            if re.fullmatch(pattern, args[0]):
                _println(out, result)
                break
        return True

    @primitive(
        "controlFile",
        "execute actions from control file",
        ("control file path", "<var>=<value> ... (optional)", "actions block name (optional)"),
    )
    def control_file(self, out: TextIO, *args: str) -> bool:
        return self.engine.run_control_file(out, list(args))

    # ------------------------------------------------------------------ HTTP contexts

    def _add_http_context(
        self,
        out: TextIO,
        config: Mapping[str, str],
        args: List[str],
        variables: Optional[Mapping[str, str]],
    ) -> bool:
        if self.http_contexts is None:
            _println(out, NO_HTTP_SERVER)
            return False
        if len(args) < 2:
            _println(out, "At least the context path and action name must be specified")
            return False
        path, action = args[0], args[1]
        content_type = args[2] if len(args) > 2 else "text/plain"
        if path in self.http_contexts:
            _println(out, f"Context '{path}' already exists")
            return False
        if action not in config:
            _println(out, f"Cannot find action '{action}' in the given control file data")
            return False
        self.http_contexts.add(path, config, action, content_type, dict(variables or {}))
        log.info("Added HTTP context %s -> %s", path, action)
        return True

    def _http_add_context_from_control_file(self, out: TextIO, config, variables, args: List[str]) -> bool:
        return self._add_http_context(out, config, args, variables)

    @primitive(
        "httpAddContext",
        "add HTTP server context",
        ("control file", "context path", "action name", "content type (defaults to text/plain)"),
    )
    def http_add_context(self, out: TextIO, *args: str) -> bool:
        if self.http_contexts is None:
            _println(out, NO_HTTP_SERVER)
            return False
        if not args:
            _println(out, "Property file with action definition must be specified")
            return False
        try:
            config = load_control_file(args[0])
        except ControlFileError as exc:
            _println(out, f"Error reading {args[0]}: {exc.message}")
            return False
        return self._add_http_context(out, config, list(args[1:]), None)

    @primitive("httpRemoveContext", "remove HTTP server context", ("context path",))
    def http_remove_context(self, out: TextIO, *args: str) -> bool:
        if self.http_contexts is None:
            _println(out, NO_HTTP_SERVER)
            return False
        if not args:
            _println(out, "The context path must be provided")
            return False
        self.http_contexts.remove(args[0])
        return True

    @primitive("httpListContexts", "list HTTP server contexts")
    def http_list_contexts(self, out: TextIO, *args: str) -> bool:
        if self.http_contexts is None:
            _println(out, NO_HTTP_SERVER)
            return False
        for path in self.http_contexts.paths():
            _println(out, path)
        return True
