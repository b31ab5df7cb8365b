"""
Decorator helpers for rows.
"""
import functools

from recordql.exc import ViewModelError


def enforce_single_row(func):
    """
    Enforces that a method on a :class:`.ActiveRecordRow` is only used on a single hydrated row,
    raising :class:`.ViewModelError` otherwise.
    """

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        if not self.is_single_row:
            raise ViewModelError("Cannot call {}() on something that is not a single row"
                                 .format(func.__name__))
        return func(self, *args, **kwargs)

    return wrapper


def enforce_not_deleted(func):
    """
    Enforces that a method on a :class:`.ActiveRecordRow` cannot be used once the row has been
    deleted.
    """

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        if self.is_deleted:
            raise RuntimeError("This row has been deleted")
        return func(self, *args, **kwargs)

    return wrapper
