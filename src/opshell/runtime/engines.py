"""
Engines that process operations, synchronously or on a background pool.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Sequence, Type

from ..errors import NoSuchInstantiatorError, UnsupportedOperationError
from .operations import (
    CountOperation,
    DeleteOperation,
    ErrorCode,
    InsertOperation,
    MatchQueryOperation,
    Operation,
)
from .statistics import StatisticsRegistry, global_statistics

log = logging.getLogger(__name__)


class Engine:
    """Base engine; subclasses map operation types to handler methods."""

    #: operation type -> name of the method processing it
    operation_handlers: Dict[Type[Operation], str] = {}
    #: methods callable through ``methodExecute``
    exposed_methods: tuple[str, ...] = ()

    def __init__(self, name: Optional[str] = None, workers: int = 4) -> None:
        self.name = name or type(self).__name__
        self.workers = workers
        self.operation_statistics = StatisticsRegistry()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._background: List[Future] = []
        self._lock = threading.Lock()

    def supported_operations(self) -> List[Type[Operation]]:
        return list(self.operation_handlers)

    def _handler_for(self, operation: Operation) -> Callable[[Operation], None]:
        for klass in type(operation).__mro__:
            method = self.operation_handlers.get(klass)
            if method is not None:
                return getattr(self, method)
        raise UnsupportedOperationError(f"Operation {type(operation).__name__} is not supported by {self.name}")

    def execute_operation(self, operation: Operation) -> Operation:
        handler = self._handler_for(operation)
        started = time.perf_counter()
        handler(operation)
        if not operation.is_finished:
            operation.end_operation()
        elapsed = time.perf_counter() - started
        if global_statistics.enabled:
            operation.statistics.set("OperationTime", elapsed)
            global_statistics.increment("OperationCount")
            global_statistics.increment("OperationTime", elapsed)
        self.operation_statistics = operation.statistics
        log.debug("%s processed %s in %.6fs", self.name, type(operation).__name__, elapsed)
        return operation

    def background_execute(self, operation: Operation) -> Future:
        self._handler_for(operation)
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix=f"{self.name}-bg")
            future = self._executor.submit(self.execute_operation, operation)
            self._background.append(future)
        return future

    def wait_background(self) -> List[Operation]:
        """Block until all background operations finish and return them in submission order."""

        with self._lock:
            futures = list(self._background)
            self._background.clear()
        return [future.result() for future in futures]

    def execute_method(self, name: str, arguments: Sequence[Any]) -> Any:
        if name not in self.exposed_methods:
            raise NoSuchInstantiatorError(f"Method '{name}' with {len(arguments)} arguments was not found in algorithm")
        return getattr(self, name)(*arguments)

    def close(self) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    def __str__(self) -> str:
        return self.name


class MemoryEngine(Engine):
    """Keeps objects in an in-process list."""

    operation_handlers = {
        InsertOperation: "insert",
        DeleteOperation: "delete",
        MatchQueryOperation: "match",
        CountOperation: "count",
    }
    exposed_methods = ("size", "clear", "contains")

    def __init__(self, name: Optional[str] = None, workers: int = 4) -> None:
        super().__init__(name, workers)
        self.objects: List[Any] = []
        self._data_lock = threading.Lock()

    def insert(self, operation: InsertOperation) -> None:
        with self._data_lock:
            self.objects.append(operation.obj)
        operation.end_operation(ErrorCode.OBJECT_INSERTED)

    def delete(self, operation: DeleteOperation) -> None:
        removed = 0
        with self._data_lock:
            kept: List[Any] = []
            for obj in self.objects:
                if obj == operation.obj and (operation.limit <= 0 or removed < operation.limit):
                    removed += 1
                    operation.add_to_answer(obj)
                else:
                    kept.append(obj)
            self.objects = kept
        operation.end_operation(ErrorCode.OBJECT_DELETED if removed else ErrorCode.OBJECT_NOT_FOUND)

    def match(self, operation: MatchQueryOperation) -> None:
        with self._data_lock:
            candidates = list(self.objects)
        for obj in candidates:
            operation.statistics.increment("ObjectsScanned")
            if operation.accepts(obj):
                operation.add_to_answer(obj)
                if operation.is_full:
                    break
        operation.end_operation(ErrorCode.RESPONSE_RETURNED)

    def count(self, operation: CountOperation) -> None:
        operation.set_parameter("count", self.size())
        operation.end_operation(ErrorCode.RESPONSE_RETURNED)

    def size(self) -> int:
        with self._data_lock:
            return len(self.objects)

    def clear(self) -> int:
        with self._data_lock:
            removed = len(self.objects)
            self.objects = []
        return removed

    def contains(self, obj: Any) -> bool:
        with self._data_lock:
            return obj in self.objects

    def __str__(self) -> str:
        return f"{self.name} storing {self.size()} object(s)"
