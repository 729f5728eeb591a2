"""A singly ordered list with removal callbacks, and a list of strings."""

from __future__ import annotations

from typing import Callable, Generic, Iterable, Iterator, TypeVar

T = TypeVar("T")


class LinkedList(Generic[T]):
    """An insertion-ordered collection that notifies a callback on removal.

    Iteration walks over a snapshot, so items may be removed while iterating.
    """

    def __init__(self, on_remove: Callable[[T], None] | None = None, items: Iterable[T] = ()):
        self._items: list[T] = list(items)
        self._on_remove = on_remove

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._items!r})"

    def add(self, value: T) -> None:
        """Append ``value`` at the end."""
        self._items.append(value)

    def front(self) -> T:
        """Return the first item; raise IndexError when empty."""
        if not self._items:
            raise IndexError("front of an empty list")
        return self._items[0]

    def is_empty(self) -> bool:
        return not self._items

    def count_if(self, predicate: Callable[[T], bool] | None = None) -> int:
        """Count items matching ``predicate``, or all items when it is None."""
        if predicate is None:
            return len(self._items)
        return sum(1 for item in self._items if predicate(item))

    def nth(self, n: int) -> T | None:
        """Return the item at position ``n``, or None if there is none."""
        if 0 <= n < len(self._items):
            return self._items[n]
        return None

    def _remove_at(self, position: int) -> None:
        value = self._items.pop(position)
        if self._on_remove is not None:
            self._on_remove(value)

    def remove(self, value: T) -> bool:
        """Remove the first item equal to ``value``; return whether one was found."""
        for position, item in enumerate(self._items):
            if item == value:
                self._remove_at(position)
                return True
        return False

    def remove_first(self, predicate: Callable[[T], bool]) -> bool:
        """Remove the first item matching ``predicate``; return whether one was found."""
        for position, item in enumerate(self._items):
            if predicate(item):
                self._remove_at(position)
                return True
        return False

    def free(self) -> None:
        """Remove every item, front to back."""
        while self._items:
            self._remove_at(0)


class StringArray(LinkedList[str]):
    """A list of strings with case-insensitive lookup."""

    def __init__(self, items: Iterable[str] = ()):
        super().__init__(None, items)

    def contains_ignore_case(self, text: str) -> bool:
        wanted = text.lower()
        return any(item.lower() == wanted for item in self._items)