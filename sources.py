"""
Source adapters for lazy sequences.

Every supported producer shape is turned into a *pull pair*: a
``(generate, finalize)`` tuple of zero-argument callables. ``generate()``
returns the next element or ``END_OF_SEQ``; once it has returned
``END_OF_SEQ`` it keeps doing so. ``finalize()`` releases whatever the
traversal holds and may be called any number of times.

Supported shapes, in dispatch order (``Seq`` passthrough is handled by
``Seq.from_`` before it gets here):

    Sequencer                  batch producer with optional finalize
    collections.abc.Sequence   list, tuple, str, bytes, range, ...
    collections.abc.Iterable   one iter() call per traversal
    callable                   traversal factory, called once per traversal

Anything else maps to the empty sequence.
"""

import logging
from collections import deque
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from errors import InvalidProducerError

logger = logging.getLogger(__name__)

PullPair = Tuple[Callable[[], Any], Callable[[], None]]


class _EndOfSeq:
    """Type of the END_OF_SEQ marker. There is exactly one instance."""

    __slots__ = ()
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "END_OF_SEQ"

    def __bool__(self):
        return False

    def __reduce__(self):
        return (_EndOfSeq, ())


END_OF_SEQ = _EndOfSeq()


def do_nothing():
    pass


def end_sequencing():
    return END_OF_SEQ


EMPTY_PULL_PAIR: PullPair = (end_sequencing, do_nothing)


@dataclass(frozen=True)
class Sequencer:
    """
    Batch-producing source.

    ``generate()`` returns a list (or tuple) of zero or more items per call,
    or ``None`` once the source is exhausted. Empty batches are skipped.
    ``finalize`` runs once per traversal: on exhaustion, on a producer error
    or when the consumer stops early.
    """
    generate: Callable[[], Any]
    finalize: Optional[Callable[[], None]] = None


def normalize_pull_pair(result) -> PullPair:
    """Accept a (generate, finalize) tuple or a bare generate callable."""
    if isinstance(result, tuple) and len(result) == 2:
        generate, finalize = result
        return generate or end_sequencing, finalize or do_nothing
    if callable(result):
        return result, do_nothing
    return EMPTY_PULL_PAIR


def collection_traversal(items) -> PullPair:
    index = 0

    def generate():
        nonlocal index
        if index < len(items):
            item = items[index]
            index += 1
            return item
        return END_OF_SEQ

    return generate, do_nothing


def iterator_traversal(iterator, owned: bool = True) -> PullPair:
    """
    Pull from a Python iterator. On finalize an owned iterator is close()d
    (if it has close); an iterator the caller handed in is left open.
    """
    done = False

    def generate():
        nonlocal done
        if done:
            return END_OF_SEQ
        try:
            return next(iterator)
        except StopIteration:
            done = True
            return END_OF_SEQ

    def finalize():
        nonlocal done
        done = True
        if not owned:
            return
        close = getattr(iterator, "close", None)
        if close is not None:
            close()

    return generate, finalize


def producer_traversal(producer) -> PullPair:
    """One item per call; the producer returns END_OF_SEQ to stop."""
    done = False

    def generate():
        nonlocal done
        if done:
            return END_OF_SEQ
        item = producer()
        if item is END_OF_SEQ:
            done = True
        return item

    return generate, do_nothing


def sequencer_traversal(sequencer: Sequencer) -> PullPair:
    pending = deque()
    done = False
    finalized = False

    def finalize():
        nonlocal done, finalized
        done = True
        pending.clear()
        if finalized:
            return
        finalized = True
        if sequencer.finalize is not None:
            logger.debug("Finalizing sequencer traversal")
            sequencer.finalize()

    def refill():
        while True:
            batch = sequencer.generate()
            if batch is None or batch is END_OF_SEQ:
                return False
            if not isinstance(batch, (list, tuple)):
                raise InvalidProducerError(
                    f"Sequencer returned {type(batch).__name__}, expected a list of items or None"
                )
            if batch:
                pending.extend(batch)
                return True

    def generate():
        if not pending:
            if done:
                return END_OF_SEQ
            try:
                has_items = refill()
            except Exception:
                logger.debug("Sequencer refill failed, finalizing before re-raising")
                finalize()
                raise
            if not has_items:
                finalize()
                return END_OF_SEQ
        return pending.popleft()

    return generate, finalize


def callback_traversal(result) -> PullPair:
    """Dispatch on whatever a traversal factory callback returned."""
    if isinstance(result, Sequencer):
        return sequencer_traversal(result)
    if isinstance(result, Iterator):
        return iterator_traversal(result)
    if callable(result):
        return producer_traversal(result)
    return EMPTY_PULL_PAIR


def _iterable_traversal(iterable) -> PullPair:
    iterator = iter(iterable)
    # iter() of an iterator returns it unchanged; that one belongs to the caller
    return iterator_traversal(iterator, owned=iterator is not iterable)


def open_source(source) -> Optional[Callable[[], PullPair]]:
    """
    Return a pull pair factory for ``source``, or None if the shape is not
    supported (callers treat that as the empty sequence).
    """
    if isinstance(source, Sequencer):
        return lambda: sequencer_traversal(source)
    if isinstance(source, Sequence):
        return lambda: collection_traversal(source)
    if isinstance(source, Iterable):
        return lambda: _iterable_traversal(source)
    if callable(source):
        return lambda: callback_traversal(source())
    return None
