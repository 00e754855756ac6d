"""
Lazy sequences built on explicit pull pairs.

A Seq holds nothing but a factory. Every traversal calls the factory once and
gets back a fresh ``(generate, finalize)`` pair (see ``sources``). Operators
wrap the upstream pair in a new one, so a pipeline never materializes
intermediate results and every stage keeps its cursor state in plain closure
variables instead of suspended generator frames.

    >>> Seq.range(0, 20).map(lambda x: x * x).filter(lambda x: x % 2 == 0).take(3).to_list()
    [0, 4, 16]

Terminal operations (``for_each``, ``reduce``, ``to_list``, ``count``) call
``finalize`` exactly once per traversal on every exit path, including when a
callback raises.
"""

import inspect
import logging
from collections import deque
from collections.abc import Iterable
from typing import Any, Callable, List, Optional

from errors import EmptyReductionError, InvalidArgumentError
from sources import (
    EMPTY_PULL_PAIR,
    END_OF_SEQ,
    Sequencer,
    do_nothing,
    normalize_pull_pair,
    open_source,
    producer_traversal,
)

logger = logging.getLogger(__name__)

_MISSING = object()


def _require_callable(f, method_name, role):
    if not callable(f):
        raise InvalidArgumentError(
            f"Seq.{method_name}: alleged {role} is not callable: {f!r}"
        )


def _indexed(f):
    """
    Adapt ``f`` so it can always be called as ``f(item, index)``.

    Callables with a second required positional argument (or ``*args``) get
    the index; single-argument callables (``lambda x: ...``, also
    ``lambda x, n=n: ...``) and classes (``str``, ``int``) get the item only.
    """
    if isinstance(f, type):
        return lambda item, index: f(item)

    try:
        params = inspect.signature(f).parameters.values()
    except (TypeError, ValueError):
        return lambda item, index: f(item)

    # Defaulted parameters (``lambda x, n=n: ...``) are not index slots
    required = 0
    for param in params:
        if param.kind is param.VAR_POSITIONAL:
            return f
        if (param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD)
                and param.default is param.empty):
            required += 1

    if required >= 2:
        return f
    return lambda item, index: f(item)


def _create_seq(factory):
    seq = object.__new__(Seq)
    seq._factory = factory
    return seq


class Seq:
    """
    Immutable lazy sequence.

    Build one with the factory methods (``Seq.of``, ``Seq.from_``,
    ``Seq.range``, ...); the constructor itself is not callable.
    """

    __slots__ = ("_factory",)

    def __init__(self, *args, **kwargs):
        raise TypeError(
            "Seq() is not callable - use the factory methods "
            "(Seq.of, Seq.from_, Seq.range, ...) instead"
        )

    def __repr__(self):
        return "<Seq>"

    def __iter__(self):
        generate, finalize = self._open()
        try:
            item = generate()
            while item is not END_OF_SEQ:
                yield item
                item = generate()
        finally:
            finalize()

    def _open(self):
        return normalize_pull_pair(self._factory())

    # --------- operators (lazy) ----------

    def map(self, f: Callable) -> "Seq":
        """Apply ``f(item, index)`` to every item."""
        _require_callable(f, "map", "mapping function")
        call = _indexed(f)
        upstream = self

        def factory():
            generate, finalize = upstream._open()
            index = -1

            def next_item():
                nonlocal index
                item = generate()
                if item is END_OF_SEQ:
                    return END_OF_SEQ
                index += 1
                return call(item, index)

            return next_item, finalize

        return _create_seq(factory)

    def filter(self, pred: Callable) -> "Seq":
        """
        Keep the items for which ``pred(item, index)`` is truthy. The index
        counts every inspected item, accepted or not.
        """
        _require_callable(pred, "filter", "predicate")
        call = _indexed(pred)
        upstream = self

        def factory():
            generate, finalize = upstream._open()
            index = -1

            def next_item():
                nonlocal index
                item = generate()
                while item is not END_OF_SEQ:
                    index += 1
                    if call(item, index):
                        return item
                    item = generate()
                return END_OF_SEQ

            return next_item, finalize

        return _create_seq(factory)

    def flat_map(self, f: Callable) -> "Seq":
        return Seq.flatten(self.map(f))

    def take_while(self, pred: Callable) -> "Seq":
        """
        Pass items through while ``pred(item, index)`` holds. The first
        failing item ends this stage for good and the upstream traversal is
        finalized right away.
        """
        _require_callable(pred, "take_while", "predicate")
        call = _indexed(pred)
        upstream = self

        def factory():
            generate, finalize = upstream._open()
            index = -1
            done = False

            def next_item():
                nonlocal index, done
                if done:
                    return END_OF_SEQ
                item = generate()
                if item is not END_OF_SEQ:
                    index += 1
                    if call(item, index):
                        return item
                    done = True
                    finalize()
                    return END_OF_SEQ
                done = True
                return END_OF_SEQ

            return next_item, finalize

        return _create_seq(factory)

    def skip_while(self, pred: Callable) -> "Seq":
        """
        Drop items while ``pred(item, index)`` holds; everything from the
        first failing item on passes through unfiltered.
        """
        _require_callable(pred, "skip_while", "predicate")
        call = _indexed(pred)
        upstream = self

        def factory():
            generate, finalize = upstream._open()
            index = -1
            started = False

            def next_item():
                nonlocal index, started
                item = generate()
                if not started:
                    while item is not END_OF_SEQ:
                        index += 1
                        if not call(item, index):
                            break
                        item = generate()
                    started = True
                return item

            return next_item, finalize

        return _create_seq(factory)

    def take(self, n) -> "Seq":
        """
        First ``n`` items. Same result as ``take_while(index < n)``, but the
        upstream is not pulled once ``n`` items have been emitted.
        """
        upstream = self

        def factory():
            generate, finalize = upstream._open()
            taken = 0
            done = False

            def next_item():
                nonlocal taken, done
                if done:
                    return END_OF_SEQ
                if taken >= n:
                    done = True
                    finalize()
                    return END_OF_SEQ
                item = generate()
                if item is END_OF_SEQ:
                    done = True
                    return END_OF_SEQ
                taken += 1
                return item

            return next_item, finalize

        return _create_seq(factory)

    def skip(self, n) -> "Seq":
        return self.skip_while(lambda item, index: index < n)

    # --------- terminal operations (eager) ----------

    def for_each(self, action: Callable) -> None:
        """
        Call ``action(item, index)`` for every item. The traversal is
        finalized even if ``action`` (or any upstream stage) raises.
        """
        _require_callable(action, "for_each", "action")
        call = _indexed(action)
        generate, finalize = self._open()
        index = 0

        try:
            item = generate()
            while item is not END_OF_SEQ:
                call(item, index)
                index += 1
                item = generate()
        except Exception:
            logger.debug("Traversal aborted after %d item(s), finalizing", index)
            raise
        finally:
            finalize()

    def reduce(self, f: Callable, seed: Any = _MISSING) -> Any:
        """
        Fold the sequence with ``acc = f(acc, item)``.

        Without a seed the first item is the initial accumulator; reducing an
        empty sequence without a seed raises EmptyReductionError.
        """
        _require_callable(f, "reduce", "reducer")
        acc = seed

        def accumulate(item):
            nonlocal acc
            acc = item if acc is _MISSING else f(acc, item)

        self.for_each(accumulate)

        if acc is _MISSING:
            raise EmptyReductionError("Seq.reduce: empty sequence and no seed given")
        return acc

    def count(self) -> int:
        return self.reduce(lambda count, item: count + 1, 0)

    def to_list(self) -> List[Any]:
        result = []
        self.for_each(lambda item: result.append(item))
        return result

    def force(self) -> "Seq":
        """Materialize into a restartable Seq backed by a list."""
        return Seq.from_(self.to_list())

    # --------- constructors ----------

    @staticmethod
    def empty() -> "Seq":
        return _EMPTY

    @staticmethod
    def of(*items) -> "Seq":
        return Seq.from_(items)

    @staticmethod
    def from_(source) -> "Seq":
        """
        Coerce ``source`` into a Seq.

        A Seq is returned as is. Sequencers, sequences (lists, tuples,
        strings, ranges), other iterables and traversal factory callables are
        adapted; anything else becomes the empty sequence.

        Iterators the Seq obtains itself (from an iterable, or by calling a
        traversal factory such as a generator function) are closed when a
        traversal stops early. An iterator passed in directly is never
        closed, so ``Seq.from_(gen).take(2)`` leaves ``gen`` usable.
        """
        if isinstance(source, Seq):
            return source

        factory = open_source(source)
        return _EMPTY if factory is None else _create_seq(factory)

    @staticmethod
    def generate(producer: Callable[[], Any]) -> "Seq":
        """
        Seq over a zero-argument producer returning one item per call and
        END_OF_SEQ to stop. Single-pass: the producer is not restarted.
        """
        _require_callable(producer, "generate", "producer")
        return _create_seq(lambda: producer_traversal(producer))

    @staticmethod
    def sequencer(generate: Callable[[], Any], finalize: Optional[Callable[[], None]] = None) -> "Seq":
        """Seq over a batch producer; see ``sources.Sequencer``."""
        _require_callable(generate, "sequencer", "generate function")
        if finalize is not None:
            _require_callable(finalize, "sequencer", "finalize function")
        return Seq.from_(Sequencer(generate, finalize))

    @staticmethod
    def concat(*seqs) -> "Seq":
        return Seq.flatten(Seq.of(*seqs))

    @staticmethod
    def flatten(seq_of_seqs) -> "Seq":
        """
        Flatten one level. Each inner item is coerced with ``Seq.from_`` and
        its traversal is finalized as soon as it is exhausted. Finalizing the
        flattened traversal early closes the open inner traversal first, then
        the outer one.
        """
        outer = Seq.from_(seq_of_seqs)

        def factory():
            outer_generate, outer_finalize = outer._open()
            inner_generate = None
            inner_finalize = None
            done = False

            def release_inner():
                nonlocal inner_generate, inner_finalize
                finalize_inner = inner_finalize
                inner_generate = inner_finalize = None
                finalize_inner()

            def next_item():
                nonlocal inner_generate, inner_finalize, done
                while not done:
                    if inner_generate is None:
                        outer_item = outer_generate()
                        if outer_item is END_OF_SEQ:
                            done = True
                            break
                        inner_generate, inner_finalize = Seq.from_(outer_item)._open()

                    item = inner_generate()
                    if item is not END_OF_SEQ:
                        return item
                    release_inner()
                return END_OF_SEQ

            def finalize():
                nonlocal done
                done = True
                try:
                    if inner_finalize is not None:
                        release_inner()
                finally:
                    outer_finalize()

            return next_item, finalize

        return _create_seq(factory)

    @staticmethod
    def iterate(initial_values, f: Callable) -> "Seq":
        """
        Infinite sequence seeded with ``initial_values``. Each pull appends
        ``f(*window)`` and emits the oldest value, so a two-value window gives
        recurrences like Fibonacci:

            >>> Seq.iterate([0, 1], lambda a, b: a + b).take(7).to_list()
            [0, 1, 1, 2, 3, 5, 8]
        """
        _require_callable(f, "iterate", "function")
        seed = list(initial_values)

        def factory():
            window = deque(seed)

            def next_item():
                window.append(f(*window))
                return window.popleft()

            return next_item, do_nothing

        return _create_seq(factory)

    @staticmethod
    def repeat(value, n=None) -> "Seq":
        """``value`` repeated ``n`` times, or forever when ``n`` is None."""
        seq = Seq.iterate([value], lambda v: v)
        return seq if n is None else seq.take(n)

    @staticmethod
    def range(start, end=None, step=1) -> "Seq":
        """
        ``start, start + step, ...`` up to ``end`` (exclusive), unbounded
        when ``end`` is None.

            >>> Seq.range(0, -8, -2).to_list()
            [0, -2, -4, -6]

        A step whose sign points away from ``end`` never terminates.
        """
        seq = Seq.iterate([start], lambda value: value + step)

        if end is None:
            return seq
        if step < 0:
            return seq.take_while(lambda value: value > end)
        return seq.take_while(lambda value: value < end)

    # --------- capability probes ----------

    @staticmethod
    def is_seqable(value) -> bool:
        return isinstance(value, Iterable)

    @staticmethod
    def is_seqable_object(value) -> bool:
        """Like is_seqable, but strings and bytes do not count."""
        return isinstance(value, Iterable) and not isinstance(value, (str, bytes, bytearray))


_EMPTY = _create_seq(lambda: EMPTY_PULL_PAIR)

is_seqable = Seq.is_seqable
