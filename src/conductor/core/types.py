"""Result type for expected failures.

Dependency validation reports its outcome as a value: callers decide
whether a failed chain is an error worth raising.
"""

from dataclasses import dataclass
from typing import cast


@dataclass(frozen=True, slots=True)
class Result[T, E]:
    """Either an Ok value or an Err error.

    Usage:
        result = registry.validate_dependencies("planning")
        if result.is_ok:
            load_order = result.value
        else:
            raise result.error
    """

    _value: T | None
    _error: E | None
    _is_ok: bool

    @classmethod
    def ok(cls, value: T) -> "Result[T, E]":
        return cls(_value=value, _error=None, _is_ok=True)

    @classmethod
    def err(cls, error: E) -> "Result[T, E]":
        return cls(_value=None, _error=error, _is_ok=False)

    @property
    def is_ok(self) -> bool:
        return self._is_ok

    @property
    def is_err(self) -> bool:
        return not self._is_ok

    def __repr__(self) -> str:
        return f"Ok({self._value!r})" if self._is_ok else f"Err({self._error!r})"

    @property
    def value(self) -> T:
        """The Ok value; ValueError on an Err result."""
        if not self._is_ok:
            raise ValueError("Err result has no value")
        return cast(T, self._value)

    @property
    def error(self) -> E:
        """The Err error; ValueError on an Ok result."""
        if self._is_ok:
            raise ValueError("Ok result has no error")
        return cast(E, self._error)

    def unwrap(self) -> T:
        """Return the Ok value or raise the error.

        Exception errors are raised as-is, anything else is wrapped in
        ValueError.
        """
        if self._is_ok:
            return cast(T, self._value)
        if isinstance(self._error, BaseException):
            raise self._error
        raise ValueError(str(self._error))
