"""
Helpers for building and evaluating producer pipelines from their
declarative description, plus performance measurement.
"""

import gc
import logging
import operator
import os
import threading
import time
import tracemalloc
from typing import Any, Callable, Dict, List, Optional

import psutil

from iterators import EXHAUSTED, Producer, from_, from_fn, once, repeat
from models import (
    OperationSpec, OperationType, PipelineLimits, PipelineRequest, SourceKind, SourceSpec
)

logger = logging.getLogger(__name__)


class PipelineError(ValueError):
    """A described pipeline cannot be built or evaluated."""


# Functions a request may refer to by name
MAP_FUNCTIONS: Dict[str, Callable[[Any], Any]] = {
    "identity": lambda x: x,
    "double": lambda x: x * 2,
    "square": lambda x: x * x,
    "increment": lambda x: x + 1,
    "negate": operator.neg,
    "to_str": str,
    "pair_sum": lambda pair: pair[0] + pair[1],
    "pair_product": lambda pair: pair[0] * pair[1],
}

FILTER_FUNCTIONS: Dict[str, Callable[[Any], bool]] = {
    "is_even": lambda x: x % 2 == 0,
    "is_odd": lambda x: x % 2 == 1,
    "positive": lambda x: x > 0,
    "truthy": bool,
}

def _append(elem, acc):
    acc.append(elem)
    return acc


# fold functions take (element, accumulator)
FOLD_FUNCTIONS: Dict[str, Callable[[Any, Any], Any]] = {
    "add": lambda elem, acc: acc + elem,
    "multiply": lambda elem, acc: acc * elem,
    "max": lambda elem, acc: elem if acc is None or elem > acc else acc,
    "min": lambda elem, acc: elem if acc is None or elem < acc else acc,
    "count": lambda _, acc: acc + 1,
    "append": _append,
}

_FUNCTION_TABLES = {
    OperationType.MAP: MAP_FUNCTIONS,
    OperationType.FILTER: FILTER_FUNCTIONS,
    OperationType.FOLD: FOLD_FUNCTIONS,
}


def registered_functions() -> Dict[str, List[str]]:
    """Names of the functions available per operation type"""
    return {op.value: sorted(table) for op, table in _FUNCTION_TABLES.items()}


def _lookup(op_type: OperationType, name: str) -> Callable:
    table = _FUNCTION_TABLES[op_type]
    try:
        return table[name]
    except KeyError:
        raise PipelineError(
            f"unknown {op_type.value} function '{name}'; "
            f"expected one of {sorted(table)}"
        ) from None


class PullBudget(Producer):
    """
    Counts the elements upstream yields and raises PipelineError when it is
    pulled again after more than max_pulls of them. Exhaustion is not counted,
    and an extra element that zip pulls and drops does not fail the pipeline.
    """

    def __init__(self, wrapped, max_pulls: int):
        self.wrapped = wrapped
        self.max_pulls = max_pulls
        self.pulls = 0
        self.elem_type = getattr(wrapped, "elem_type", None)

    def next(self):
        if self.pulls > self.max_pulls:
            raise PipelineError(
                f"pipeline pulled more than {self.max_pulls} source elements"
            )
        elem = self.wrapped.next()
        if elem is not EXHAUSTED:
            self.pulls += 1
        return elem


def _counter(spec: SourceSpec):
    step, stop = spec.step, spec.stop

    def advance(n):
        n += step
        if stop is not None and (n > stop if step > 0 else n < stop):
            return None
        return n

    return from_fn(spec.start, advance)


def build_source(spec: SourceSpec) -> Producer:
    """Create the producer a SourceSpec describes"""
    if spec.kind == SourceKind.FROM:
        return from_(spec.text if spec.text is not None else spec.items)
    if spec.kind == SourceKind.REPEAT:
        return repeat(spec.value)
    if spec.kind == SourceKind.ONCE:
        return once(spec.value)
    if spec.kind == SourceKind.COUNTER:
        return _counter(spec)
    raise PipelineError(f"unknown source kind {spec.kind}")


def apply_operation(producer: Producer, op: OperationSpec, limits: Optional[PipelineLimits] = None):
    """
    Apply one operation. Returns a new producer, or the folded value when
    the operation is fold.
    """
    if op.type == OperationType.SKIP:
        return producer.skip(op.count)
    if op.type == OperationType.TAKE:
        return producer.take(op.count)
    if op.type == OperationType.MAP:
        return producer.map(_lookup(op.type, op.function))
    if op.type == OperationType.FILTER:
        return producer.filter(_lookup(op.type, op.function))
    if op.type == OperationType.ZIP:
        other = build_source(op.other)
        if limits is not None:
            other = PullBudget(other, limits.max_source_pulls)
        return producer.zip(other)
    if op.type == OperationType.FOLD:
        initial = op.initial
        if initial is None and op.function in ("add", "count"):
            initial = 0
        elif initial is None and op.function == "multiply":
            initial = 1
        elif initial is None and op.function == "append":
            initial = []
        return producer.fold(initial, _lookup(op.type, op.function))
    raise PipelineError(f"unknown operation {op.type}")


def evaluate_pipeline(request: PipelineRequest) -> Dict[str, Any]:
    """
    Build and drain the pipeline a request describes.

    Returns ``{"items": [...]}`` or ``{"result": acc}`` (when the last
    operation is fold) together with the names of the operations applied.
    """
    if not request.is_bounded:
        raise PipelineError(
            f"'{request.source.kind.value}' source is unbounded; add a take operation "
            "or zip it with a bounded source"
        )

    limits = request.limits
    producer = PullBudget(build_source(request.source), limits.max_source_pulls)
    operations_applied = []

    for op in request.operations:
        operations_applied.append(op.type.value)
        if op.type == OperationType.FOLD:
            result = apply_operation(producer, op, limits)
            logger.info("pipeline folded after %s", operations_applied)
            return {"result": result, "operations_applied": operations_applied}
        producer = apply_operation(producer, op, limits)

    items = []
    bounded = producer.take(limits.max_output_items + 1)
    while True:
        item = bounded.next()
        if item is EXHAUSTED:
            break
        items.append(item)
    if len(items) > limits.max_output_items:
        raise PipelineError(
            f"pipeline produced more than {limits.max_output_items} items; add a take operation"
        )

    logger.info("pipeline %s produced %d items", operations_applied, len(items))
    return {"items": items, "operations_applied": operations_applied}


# Global performance tracking
_performance_metrics = {
    "operations": [],
    "total_time_ms": 0.0,
    "total_memory_mb": 0.0,
    "operation_count": 0
}
_measure_lock = threading.Lock()


def _record(info: Dict[str, Any]):
    _performance_metrics["operations"].append(info)
    _performance_metrics["total_time_ms"] += info["execution_time_ms"]
    _performance_metrics["total_memory_mb"] += info["memory_usage_mb"]
    _performance_metrics["operation_count"] += 1


def measure_performance(operation_name: str, func, *args, **kwargs) -> Dict[str, Any]:
    """
    Call func and report its result with time and memory usage.

    tracemalloc is process-wide, so measurements are serialized. Only the
    size of the result is kept in the global metrics.
    """
    with _measure_lock:
        process = psutil.Process(os.getpid())
        rss_before = process.memory_info().rss

        tracemalloc.start()
        gc.collect()
        start_time = time.perf_counter()

        try:
            result = func(*args, **kwargs)
            execution_time_ms = (time.perf_counter() - start_time) * 1000
            _, peak = tracemalloc.get_traced_memory()

            info = {
                "operation": operation_name,
                "result": result,
                "result_size": len(result) if hasattr(result, "__len__") else None,
                "execution_time_ms": execution_time_ms,
                "memory_usage_mb": peak / 1024 / 1024,
                "rss_delta_mb": (process.memory_info().rss - rss_before) / 1024 / 1024,
                "success": True,
                "timestamp": time.time()
            }
            _record({k: v for k, v in info.items() if k != "result"})
            return info

        except Exception as e:
            execution_time_ms = (time.perf_counter() - start_time) * 1000
            _, peak = tracemalloc.get_traced_memory()
            _record({
                "operation": operation_name,
                "execution_time_ms": execution_time_ms,
                "memory_usage_mb": peak / 1024 / 1024,
                "success": False,
                "error": str(e),
                "timestamp": time.time()
            })
            logger.warning("%s failed after %.2f ms: %s", operation_name, execution_time_ms, e)
            raise

        finally:
            tracemalloc.stop()


def get_performance_summary() -> Dict[str, Any]:
    """Get summary of all performance metrics"""
    count = _performance_metrics["operation_count"]
    if count == 0:
        return {
            "total_operations": 0,
            "total_time_ms": 0.0,
            "total_memory_mb": 0.0,
            "avg_time_ms": 0.0,
            "avg_memory_mb": 0.0
        }

    return {
        "total_operations": count,
        "total_time_ms": _performance_metrics["total_time_ms"],
        "total_memory_mb": _performance_metrics["total_memory_mb"],
        "avg_time_ms": _performance_metrics["total_time_ms"] / count,
        "avg_memory_mb": _performance_metrics["total_memory_mb"] / count
    }


def clear_performance_metrics():
    """Clear all performance metrics"""
    global _performance_metrics
    _performance_metrics = {
        "operations": [],
        "total_time_ms": 0.0,
        "total_memory_mb": 0.0,
        "operation_count": 0
    }
