"""
Lazy, pull-based producers.

A producer is anything with a ``next()`` method that returns the next element
or the ``EXHAUSTED`` sentinel. Sources build producers from values or
sequences; combinators wrap one (or two) upstream producers and are producers
themselves, so pipelines chain:

    from_([1, 2, 3, 4, 5]).skip(1).map(lambda x: x * 2).take(2).to_list()
    # -> [4, 6]

Nothing is pulled until a caller asks for an element.
"""

import array
import ctypes
import logging
from enum import Enum
from typing import Any, Callable, Optional, Protocol, Tuple, runtime_checkable

logger = logging.getLogger(__name__)


class _Exhausted:
    """Marker returned by ``next()`` once a producer has no more elements."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "EXHAUSTED"

    def __reduce__(self):
        return (_Exhausted, ())


EXHAUSTED = _Exhausted()


class UnsupportedSourceError(TypeError):
    """Raised by ``from_`` for values that are not contiguous, length-known sequences."""


@runtime_checkable
class SupportsNext(Protocol):
    """Structural contract: ``next()`` returns an element or ``EXHAUSTED``."""

    def next(self) -> Any:
        ...


# --------- chaining ----------

class Producer:
    """
    Base for every producer. Subclasses implement ``next()``; the combinator
    methods live here so any producer can be chained directly.
    """
    elem_type: Optional[type] = None

    def next(self):
        raise NotImplementedError

    # python iterator protocol
    def __iter__(self):
        return self

    def __next__(self):
        item = self.next()
        if item is EXHAUSTED:
            raise StopIteration
        return item

    def then(self):
        """Return self; kept for the ``producer.then().take(n)`` spelling."""
        return self

    def skip(self, n):
        """Skip the first n elements."""
        return Skip(self, n)

    def take(self, n):
        """Yield at most the first n elements."""
        return Take(self, n)

    def map(self, fn):
        """Transform every element with fn."""
        return Map(self, fn)

    def filter(self, pred):
        """Drop elements for which pred is false."""
        return Filter(self, pred)

    def zip(self, other):
        """Pair elements with another producer until either side runs out."""
        return Zip(self, chain(other))

    def fold(self, initial, fn):
        """Drain the producer, accumulating ``acc = fn(elem, acc)``."""
        return Fold(self, initial, fn).run()

    # --------- reducing helpers (force evaluation) ----------
    def to_list(self):
        return self.fold([], _append)

    def count(self):
        return self.fold(0, lambda _, acc: acc + 1)

    def sum(self, start=0):
        return self.fold(start, lambda elem, acc: acc + elem)

    def first(self, default=None):
        """Pull one element, or return default if already exhausted."""
        item = self.next()
        return default if item is EXHAUSTED else item


def _append(elem, acc):
    acc.append(elem)
    return acc


class Chain(Producer):
    """Adapts a foreign object with a ``next()`` method into a Producer."""

    def __init__(self, wrapped):
        next_fn = getattr(wrapped, "next", None)
        if not callable(next_fn):
            raise TypeError(
                f"{type(wrapped).__name__} does not provide a callable next()"
            )
        self._wrapped = wrapped
        self._next = next_fn
        self.elem_type = getattr(wrapped, "elem_type", None)

    def next(self):
        return self._next()

    def __repr__(self):
        return f"Chain({self._wrapped!r})"


def chain(producer):
    """Expose the combinator methods on any object satisfying SupportsNext."""
    if isinstance(producer, Producer):
        return producer
    return Chain(producer)


# --------- sources ----------

class Repeat(Producer):
    """Yields the same value forever."""

    def __init__(self, value):
        self.value = value
        self.elem_type = type(value)

    def next(self):
        return self.value

    def __repr__(self):
        return f"Repeat({self.value!r})"


class Once(Producer):
    """Yields one value, then is exhausted."""

    def __init__(self, value):
        self.value = value
        self.done = False
        self.elem_type = type(value)

    def next(self):
        if self.done:
            return EXHAUSTED
        self.done = True
        return self.value

    def __repr__(self):
        return f"Once({self.value!r}, done={self.done})"


def repeat(value):
    """Return a producer yielding value indefinitely. Bound it with take()."""
    logger.debug("repeat(%r)", value)
    return Repeat(value)


def once(value):
    """Return a producer yielding value exactly once."""
    logger.debug("once(%r)", value)
    return Once(value)


class SourceShape(str, Enum):
    """Sequence shapes accepted by ``from_``."""
    ARRAY = "array"
    SLICE = "slice"
    ARRAY_REF = "array_ref"
    BYTES = "bytes"


# array.array typecodes
_FLOAT_TYPECODES = frozenset("fd")


def _common_type(items):
    if len(items) == 0:
        return None
    first = type(items[0])
    for item in items:
        if type(item) is not first:
            return object
    return first


def resolve_source(seq) -> Tuple[SourceShape, Optional[type], int, Any]:
    """
    Classify seq and work out its element type and length.

    Returns ``(shape, elem_type, length, items)`` where ``items`` supports
    integer indexing in ``range(length)``. Raises UnsupportedSourceError for
    anything outside the supported shapes.
    """
    # str/bytes first: they are sequences too
    if isinstance(seq, str):
        data = seq.encode("utf-8")
        return SourceShape.BYTES, int, len(data), data
    if isinstance(seq, (bytes, bytearray)):
        return SourceShape.BYTES, int, len(seq), seq

    if isinstance(seq, tuple):
        return SourceShape.ARRAY, _common_type(seq), len(seq), seq
    if isinstance(seq, array.array):
        elem_type = float if seq.typecode in _FLOAT_TYPECODES else (
            str if seq.typecode == "u" else int
        )
        return SourceShape.ARRAY, elem_type, len(seq), seq
    if isinstance(seq, ctypes.Array):
        return SourceShape.ARRAY, seq._type_, seq._length_, seq

    if isinstance(seq, ctypes._Pointer):
        target = seq._type_
        if not (isinstance(target, type) and issubclass(target, ctypes.Array)):
            raise UnsupportedSourceError(
                f"pointer to {getattr(target, '__name__', target)} is not a pointer to an array"
            )
        if not seq:
            raise UnsupportedSourceError("cannot iterate a NULL array pointer")
        return SourceShape.ARRAY_REF, target._type_, target._length_, seq.contents

    if isinstance(seq, (list, range)):
        elem_type = type(seq[0]) if len(seq) else None
        return SourceShape.SLICE, elem_type, len(seq), seq
    if isinstance(seq, memoryview):
        if seq.ndim != 1:
            raise UnsupportedSourceError(f"{seq.ndim}-dimensional memoryview is not 1-D data")
        elem_type = type(seq[0]) if len(seq) else None
        return SourceShape.SLICE, elem_type, len(seq), seq

    raise UnsupportedSourceError(f"unsupported source type {type(seq).__name__}")


class From(Producer):
    """Walks a contiguous sequence by index."""

    def __init__(self, source):
        self.shape, self.elem_type, self.len, self._items = resolve_source(source)
        self.n = 0

    def next(self):
        if self.n < self.len:
            elem = self._items[self.n]
            self.n += 1
            return elem
        return EXHAUSTED

    def __repr__(self):
        return f"From(shape={self.shape.value}, n={self.n}, len={self.len})"


def from_(sequence):
    """Return a producer over a tuple, list, range, array, memoryview, bytes or str."""
    producer = From(sequence)
    logger.debug("from_(%s) resolved len=%d elem_type=%s",
                 producer.shape.value, producer.len, producer.elem_type)
    return producer


class FromFn(Producer):
    """
    Generator driven by an explicit state.

    Each call computes ``state = transition(state)`` and returns it; a None
    result ends the sequence. The initial state itself is never returned.
    """

    def __init__(self, initial, transition: Callable[[Any], Any]):
        self.state = initial
        self.transition = transition
        self.done = False

    def next(self):
        if self.done:
            return EXHAUSTED
        self.state = self.transition(self.state)
        if self.state is None:
            self.done = True
            return EXHAUSTED
        return self.state

    def __repr__(self):
        return f"FromFn(state={self.state!r}, done={self.done})"


def from_fn(initial, transition):
    """Return a generator producer; see FromFn."""
    logger.debug("from_fn(initial=%r)", initial)
    return FromFn(initial, transition)


# --------- combinators ----------

class Skip(Producer):
    def __init__(self, wrapped, n):
        self.wrapped = wrapped
        self.n = max(0, int(n))
        self.elem_type = getattr(wrapped, "elem_type", None)

    def next(self):
        while self.n > 0:
            if self.wrapped.next() is EXHAUSTED:
                return EXHAUSTED
            self.n -= 1
        return self.wrapped.next()


class Take(Producer):
    def __init__(self, wrapped, n):
        self.wrapped = wrapped
        self.n = max(0, int(n))
        self.elem_type = getattr(wrapped, "elem_type", None)

    def next(self):
        if self.n > 0:
            elem = self.wrapped.next()
            self.n -= 1
            return elem
        return EXHAUSTED


class Map(Producer):
    def __init__(self, wrapped, fn):
        self.wrapped = wrapped
        self.fn = fn

    def next(self):
        elem = self.wrapped.next()
        if elem is EXHAUSTED:
            return EXHAUSTED
        return self.fn(elem)


class Filter(Producer):
    def __init__(self, wrapped, pred):
        self.wrapped = wrapped
        self.pred = pred
        self.elem_type = getattr(wrapped, "elem_type", None)

    def next(self):
        while True:
            elem = self.wrapped.next()
            if elem is EXHAUSTED or self.pred(elem):
                return elem


class Zip(Producer):
    """
    Pairs one element from each side per call.

    Both sides are pulled every call, so when only one side is exhausted the
    element pulled from the other is dropped.
    """

    def __init__(self, left, right):
        self.left = left
        self.right = right
        self.elem_type = tuple

    def next(self):
        a = self.left.next()
        b = self.right.next()
        if a is EXHAUSTED or b is EXHAUSTED:
            return EXHAUSTED
        return (a, b)


class Fold:
    """Terminal reducer. Not a producer: ``run()`` drains upstream once."""

    def __init__(self, wrapped, initial, fn):
        self.wrapped = wrapped
        self.acc = initial
        self.fn = fn

    def run(self):
        consumed = 0
        while True:
            elem = self.wrapped.next()
            if elem is EXHAUSTED:
                break
            self.acc = self.fn(elem, self.acc)
            consumed += 1
        logger.debug("fold consumed %d elements", consumed)
        return self.acc
