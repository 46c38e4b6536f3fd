from typing import Iterable, List, Optional, Tuple, TypeVar

T = TypeVar('T')


def ensure(value: Optional[T]) -> T:
    """Ensure a value is not None, raising RuntimeError if it is.

    Args:
        value: The value to check

    Returns:
        The value if it is not None

    Raises:
        RuntimeError: If the value is None
    """
    if value is None:
        raise RuntimeError("Value is None")
    return value


def windowed_pairs(items: Iterable[T]) -> List[Tuple[Optional[T], T]]:
    """Pair each item with its predecessor, the first one with None."""
    result: List[Tuple[Optional[T], T]] = []
    prev: Optional[T] = None
    for item in items:
        result.append((prev, item))
        prev = item
    return result


def plural(count: int, singular: str, plural_form: Optional[str] = None) -> str:
    if count == 1:
        return singular
    return plural_form if plural_form is not None else singular + "s"
