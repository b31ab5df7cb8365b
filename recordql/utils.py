"""
Miscellaneous utilities used throughout the library.
"""
import collections.abc
import typing


def is_sequence(value: typing.Any) -> bool:
    """
    Checks if a value is a sequence of parameters, as opposed to a scalar.

    Strings and bytes are scalars.
    """
    return isinstance(value, (collections.abc.Sequence, collections.abc.Set)) \
        and not isinstance(value, (str, bytes, bytearray))


def count_placeholders(sql: str) -> int:
    """
    Counts the ``?`` placeholders in a SQL fragment, skipping any inside quoted literals.
    """
    count = 0
    idx = 0
    quoted = False
    sql = "{} ".format(sql)  # padding to avoid IndexErrors
    while idx < len(sql) - 1:
        char = sql[idx]
        if not quoted:
            if char == "?":
                count += 1
            quoted = char == "'"
        else:
            if char == "'":
                if sql[idx + 1] == "'":
                    idx += 1
                else:
                    quoted = False
        idx += 1

    return count


def placeholders(n: int) -> str:
    """
    Makes a comma separated list of ``n`` placeholders.
    """
    return ", ".join("?" for _ in range(n))


def merge_filters(base: typing.Mapping, override: typing.Mapping) -> dict:
    """
    Merges two keyed filters. Keys present in both take the value of ``override``, unless both
    values are mappings, in which case they are merged in turn.
    """
    merged = dict(base)
    for key, value in override.items():
        existing = merged.get(key)
        if isinstance(existing, collections.abc.Mapping) \
                and isinstance(value, collections.abc.Mapping):
            merged[key] = merge_filters(existing, value)
        else:
            merged[key] = value

    return merged
