"""
Utility functions for the lazy sequence pipeline service.

Builds Seq pipelines from request models, evaluates them under the configured
item limits and keeps simple performance metrics.
"""

import gc
import logging
import operator
import sys
import time
import tracemalloc
from typing import Any, Callable, Dict, List, Optional, Tuple

from models import (
    FLAT_MAP_FUNCTIONS,
    MAP_FUNCTIONS,
    PREDICATES,
    OperationSpec,
    OperationType,
    PipelineRequest,
    SourceKind,
    SourceSpec,
    TerminalOperation,
)
from seq import Seq

logger = logging.getLogger('lazy_seq.utils')


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Setup structured logging for the pipeline service"""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - [%(funcName)s:%(lineno)d] - %(message)s',
        handlers=handlers
    )
    return logging.getLogger('lazy_seq')


# ---------- Function registry ----------

# name -> factory(argument) -> callable
MAP_FUNCTION_REGISTRY: Dict[str, Callable[[Any], Callable]] = {
    "double": lambda arg: lambda x: x * 2,
    "square": lambda arg: lambda x: x * x,
    "negate": lambda arg: lambda x: -x,
    "increment": lambda arg: lambda x: x + 1,
    "add": lambda arg: lambda x: x + arg,
    "multiply": lambda arg: lambda x: x * arg,
    "to_string": lambda arg: lambda x: str(x),
}

FLAT_MAP_FUNCTION_REGISTRY: Dict[str, Callable[[Any], Callable]] = {
    "range_to": lambda arg: lambda x: Seq.range(0, x),
    "repeat_twice": lambda arg: lambda x: Seq.repeat(x, 2),
}

PREDICATE_REGISTRY: Dict[str, Callable[[Any], Callable]] = {
    "is_even": lambda arg: lambda x: x % 2 == 0,
    "is_odd": lambda arg: lambda x: x % 2 != 0,
    "is_positive": lambda arg: lambda x: x > 0,
    "less_than": lambda arg: lambda x: x < arg,
    "greater_than": lambda arg: lambda x: x > arg,
    "divisible_by": lambda arg: lambda x: x % arg == 0,
}

REGISTRY_BY_OPERATION = {
    OperationType.MAP: MAP_FUNCTION_REGISTRY,
    OperationType.FLAT_MAP: FLAT_MAP_FUNCTION_REGISTRY,
    OperationType.FILTER: PREDICATE_REGISTRY,
    OperationType.TAKE_WHILE: PREDICATE_REGISTRY,
    OperationType.SKIP_WHILE: PREDICATE_REGISTRY,
}


def get_available_functions() -> Dict[str, List[str]]:
    """Registered function names by operator family"""
    return {
        "map": list(MAP_FUNCTIONS),
        "flat_map": list(FLAT_MAP_FUNCTIONS),
        "predicates": list(PREDICATES),
    }


def resolve_function(op: OperationSpec) -> Callable:
    """Look up the callable an operation refers to"""
    registry = REGISTRY_BY_OPERATION[op.type]
    return registry[op.function](op.argument)


# ---------- Pipeline construction ----------

def build_source(source: SourceSpec, max_source_items: Optional[int] = None) -> Seq:
    """Create the Seq a pipeline starts from, capped at max_source_items"""
    if source.kind == SourceKind.RANGE:
        seq = Seq.range(source.start, source.end, source.step)
    elif source.kind == SourceKind.ITEMS:
        seq = Seq.from_(source.items)
    elif source.kind == SourceKind.TEXT:
        seq = Seq.from_(source.text)
    elif source.kind == SourceKind.REPEAT:
        seq = Seq.repeat(source.value, source.times)
    elif source.kind == SourceKind.FIBONACCI:
        seq = Seq.iterate([0, 1], lambda a, b: a + b)
    else:
        raise ValueError(f"Unknown source kind: {source.kind}")

    if max_source_items is not None:
        seq = seq.take(max_source_items)
    return seq


def apply_operations(seq: Seq, operations: List[OperationSpec],
                     max_source_items: Optional[int] = None) -> Tuple[Seq, List[str]]:
    """
    Chain the lazy operators onto seq; nothing is evaluated here.

    With max_source_items, every flat_map output is capped as well, so no
    stage can pull more than that many items from the one before it.
    """
    operations_applied = []

    for op in operations:
        if op.type == OperationType.TAKE:
            seq = seq.take(op.count)
        elif op.type == OperationType.SKIP:
            seq = seq.skip(op.count)
        elif op.type == OperationType.MAP:
            seq = seq.map(resolve_function(op))
        elif op.type == OperationType.FLAT_MAP:
            seq = seq.flat_map(resolve_function(op))
            if max_source_items is not None:
                seq = seq.take(max_source_items)
        elif op.type == OperationType.FILTER:
            seq = seq.filter(resolve_function(op))
        elif op.type == OperationType.TAKE_WHILE:
            seq = seq.take_while(resolve_function(op))
        elif op.type == OperationType.SKIP_WHILE:
            seq = seq.skip_while(resolve_function(op))
        else:
            raise ValueError(f"Unknown op: {op.type}")
        operations_applied.append(op.describe())

    return seq, operations_applied


def run_terminal(seq: Seq, terminal: TerminalOperation) -> Any:
    """Evaluate the terminal operation of a pipeline"""
    if terminal == TerminalOperation.TO_LIST:
        return seq.to_list()
    if terminal == TerminalOperation.COUNT:
        return seq.count()
    if terminal == TerminalOperation.SUM:
        return seq.reduce(operator.add, 0)
    if terminal == TerminalOperation.PRODUCT:
        return seq.reduce(operator.mul, 1)
    if terminal == TerminalOperation.MIN:
        return seq.reduce(lambda a, b: b if b < a else a)
    if terminal == TerminalOperation.MAX:
        return seq.reduce(lambda a, b: b if b > a else a)
    if terminal == TerminalOperation.FIRST:
        first = seq.take(1).to_list()
        return first[0] if first else None
    raise ValueError(f"Unknown terminal operation: {terminal}")


# ---------- Performance tracking ----------

_performance_metrics = {
    "operations": [],
    "total_time_ms": 0.0,
    "total_memory_mb": 0.0,
    "operation_count": 0
}


def _record(performance_info: Dict[str, Any]) -> None:
    _performance_metrics["operations"].append(performance_info)
    _performance_metrics["total_time_ms"] += performance_info["execution_time_ms"]
    _performance_metrics["total_memory_mb"] += performance_info["memory_usage_mb"]
    _performance_metrics["operation_count"] += 1


def _measurement(operation_name: str, start_time: float, success: bool, **extra) -> Dict[str, Any]:
    current, peak = tracemalloc.get_traced_memory()
    return {
        "operation": operation_name,
        "execution_time_ms": (time.perf_counter() - start_time) * 1000,
        "memory_usage_mb": peak / 1024 / 1024,
        "success": success,
        "timestamp": time.time(),
        **extra
    }


def measure_performance(operation_name: str, func, *args, **kwargs) -> Tuple[Any, Dict[str, Any]]:
    """
    Call func with memory tracking and record the measurement.

    Returns (result, performance_info). Failures are recorded too and then
    re-raised.
    """
    tracemalloc.start()
    gc.collect()

    start_time = time.perf_counter()

    try:
        result = func(*args, **kwargs)
    except Exception as e:
        _record(_measurement(operation_name, start_time, success=False, error=str(e)))
        raise
    else:
        performance_info = _measurement(
            operation_name, start_time, success=True,
            result_size=len(result) if isinstance(result, list) else None
        )
        _record(performance_info)
        return result, performance_info
    finally:
        tracemalloc.stop()


def get_performance_summary() -> Dict[str, Any]:
    """Get summary of all performance metrics"""
    if _performance_metrics["operation_count"] == 0:
        return {
            "total_operations": 0,
            "total_time_ms": 0.0,
            "total_memory_mb": 0.0,
            "avg_time_ms": 0.0,
            "avg_memory_mb": 0.0
        }

    return {
        "total_operations": _performance_metrics["operation_count"],
        "total_time_ms": _performance_metrics["total_time_ms"],
        "total_memory_mb": _performance_metrics["total_memory_mb"],
        "avg_time_ms": _performance_metrics["total_time_ms"] / _performance_metrics["operation_count"],
        "avg_memory_mb": _performance_metrics["total_memory_mb"] / _performance_metrics["operation_count"]
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


# ---------- Pipeline evaluation ----------

def process_pipeline(request: PipelineRequest, max_result_items: int,
                     max_source_items: Optional[int] = None) -> Dict[str, Any]:
    """
    Evaluate a pipeline request.

    At most max_result_items + 1 items are pulled: the extra one only tells
    whether the result was truncated.
    """
    seq = build_source(request.source, max_source_items)
    seq, operations_applied = apply_operations(seq, request.operations, max_source_items)

    def evaluate():
        capped = seq.take(max_result_items + 1).force()
        truncated = capped.count() > max_result_items
        return run_terminal(capped.take(max_result_items), request.terminal), truncated

    operation = f"pipeline_{request.source.kind.value}_{request.terminal.value}"
    (result, truncated), performance_info = measure_performance(operation, evaluate)

    logger.info(
        f"Evaluated {operation} with {len(operations_applied)} operator(s) "
        f"in {performance_info['execution_time_ms']:.2f}ms (truncated={truncated})"
    )

    return {
        "result": result,
        "truncated": truncated,
        "item_limit": max_result_items,
        "operations_applied": operations_applied,
        "terminal": request.terminal,
        "performance": {
            "operation": operation,
            "processing_time_ms": performance_info["execution_time_ms"],
            "memory_usage_mb": performance_info["memory_usage_mb"],
            "output_size": len(result) if isinstance(result, list) else None
        }
    }


def process_pagination(request: PipelineRequest, page_number: int, page_size: int,
                       max_source_items: Optional[int] = None) -> Dict[str, Any]:
    """Return one page of the pipeline's items (the terminal is ignored)"""
    if page_number < 1:
        raise ValueError("Page number must be >= 1")

    seq = build_source(request.source, max_source_items)
    seq, operations_applied = apply_operations(seq, request.operations, max_source_items)

    offset = (page_number - 1) * page_size
    operation = f"pagination_page_{page_number}_size_{page_size}"

    # One extra item decides has_next_page
    page_data, performance_info = measure_performance(
        operation, seq.skip(offset).take(page_size + 1).to_list
    )
    has_next_page = len(page_data) > page_size
    page_data = page_data[:page_size]

    logger.info(f"Served {operation} with {len(page_data)} item(s)")

    return {
        "page_data": page_data,
        "current_page": page_number,
        "page_size": page_size,
        "has_next_page": has_next_page,
        "has_previous_page": page_number > 1,
        "operations_applied": operations_applied,
        "performance": {
            "operation": operation,
            "processing_time_ms": performance_info["execution_time_ms"],
            "memory_usage_mb": performance_info["memory_usage_mb"],
            "output_size": len(page_data)
        }
    }
