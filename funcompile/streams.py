"""
Stream Types.

Stream and Publisher are the stream-wrapper marker types: a transform whose
declared input and output are both streams processes a whole sequence of
values per invocation instead of one value at a time.

Stream is a small lazy, re-iterable sequence with the operators snippets
typically need. Publisher is the structural contract any iterable source
satisfies.

Usage:
    from funcompile.streams import Stream

    words = Stream.just("a", "b", "c")
    words.map(str.upper).collect_list()   # ["A", "B", "C"]
"""

from __future__ import annotations

import itertools
from typing import Callable, Generic, Iterable, Iterator, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")
U = TypeVar("U")
T_co = TypeVar("T_co", covariant=True)


@runtime_checkable
class Publisher(Protocol[T_co]):
    """Anything that can be iterated for values."""

    def __iter__(self) -> Iterator[T_co]: ...


class Stream(Generic[T]):
    """
    Lazy sequence of values.

    Operators return new streams and do no work until iterated. A stream
    built from a re-iterable source (a list, another Stream) can be
    iterated any number of times.
    """

    def __init__(self, source: Iterable[T] | Callable[[], Iterable[T]] = ()):
        self._source = source

    @classmethod
    def just(cls, *values: T) -> Stream[T]:
        return cls(values)

    @classmethod
    def from_iterable(cls, values: Iterable[T]) -> Stream[T]:
        return cls(values)

    @classmethod
    def empty(cls) -> Stream[T]:
        return cls(())

    def __iter__(self) -> Iterator[T]:
        source = self._source() if callable(self._source) else self._source
        return iter(source)

    def __repr__(self) -> str:
        return f"Stream({self._source!r})"

    # =========================================================================
    # Operators
    # =========================================================================

    def map(self, fn: Callable[[T], U]) -> Stream[U]:
        return Stream(lambda: (fn(value) for value in self))

    def filter(self, predicate: Callable[[T], bool]) -> Stream[T]:
        return Stream(lambda: (value for value in self if predicate(value)))

    def flat_map(self, fn: Callable[[T], Iterable[U]]) -> Stream[U]:
        return Stream(lambda: itertools.chain.from_iterable(fn(value) for value in self))

    def take(self, count: int) -> Stream[T]:
        return Stream(lambda: itertools.islice(self, count))

    def buffer(self, size: int) -> Stream[list[T]]:
        """Group values into lists of at most size elements."""
        if size < 1:
            raise ValueError("buffer size must be positive")

        def batches() -> Iterator[list[T]]:
            iterator = iter(self)
            while batch := list(itertools.islice(iterator, size)):
                yield batch

        return Stream(batches)

    def do_on_next(self, fn: Callable[[T], object]) -> Stream[T]:
        def tapped() -> Iterator[T]:
            for value in self:
                fn(value)
                yield value

        return Stream(tapped)

    def concat_with(self, other: Iterable[T]) -> Stream[T]:
        return Stream(lambda: itertools.chain(self, other))

    # =========================================================================
    # Terminal Operations
    # =========================================================================

    def collect_list(self) -> list[T]:
        return list(self)

    def block_first(self) -> T | None:
        return next(iter(self), None)

    def block_last(self) -> T | None:
        last = None
        for value in self:
            last = value
        return last

    def subscribe(self, consumer: Callable[[T], object]) -> int:
        """Push every value to consumer; returns how many were delivered."""
        count = 0
        for value in self:
            consumer(value)
            count += 1
        return count
