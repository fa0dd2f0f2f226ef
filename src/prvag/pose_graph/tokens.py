"""Whitespace-token reading and writing for text graph records."""

from typing import Iterable, Iterator, TextIO

import numpy as np
import numpy.typing as npt


class RecordParseError(ValueError):
    """Raised when a text record is truncated or holds a non-numeric token."""


def iter_tokens(stream: TextIO) -> Iterator[str]:
    """Yield whitespace-separated tokens from a text stream.

    Characters are consumed one at a time, so the stream is left just past
    the whitespace that ends the last token taken. Anything after it stays
    available to the next reader.

    Args:
        stream: Text stream to read from.

    Yields:
        Tokens in stream order.
    """
    chars: list[str] = []
    while True:
        char = stream.read(1)
        if not char:
            break
        if char.isspace():
            if chars:
                yield "".join(chars)
                chars = []
        else:
            chars.append(char)
    if chars:
        yield "".join(chars)


def read_floats(tokens: Iterator[str], count: int, what: str) -> npt.NDArray[np.float64]:
    """Read a fixed number of floating-point tokens.

    Args:
        tokens: Token iterator, advanced by exactly ``count`` tokens on success.
        count: Number of values to read.
        what: Name of the field being read, used in error messages.

    Returns:
        Array of ``count`` values.

    Raises:
        RecordParseError: If the iterator runs out or a token is not a number.
    """
    values = np.empty(count, dtype=np.float64)
    for k in range(count):
        try:
            token = next(tokens)
        except StopIteration:
            raise RecordParseError(
                f"Expected {count} values for {what}, got {k}"
            ) from None
        try:
            values[k] = float(token)
        except ValueError:
            raise RecordParseError(
                f"Invalid number {token!r} at position {k} of {what}"
            ) from None
    return values


def format_floats(values: Iterable[float]) -> str:
    """Format values as space-separated shortest round-trip tokens.

    Args:
        values: Numbers to format.

    Returns:
        Tokens joined by single spaces.
    """
    return " ".join(repr(float(v)) for v in values)
