from typing import Any
from typer import Typer


def new_typer(**kwargs: Any) -> Typer:
    return Typer(no_args_is_help=True, pretty_exceptions_enable=False, **kwargs)


def parse_key_value_pairs(values: list[str], option: str) -> dict[str, str]:
    """
    Parse a list of `key=value` strings as given to a repeatable CLI option into a dictionary.

    Raises:
        ValueError: If one of the values has no `=` or an empty key.
    """

    result: dict[str, str] = {}
    for value in values:
        key, sep, item = value.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid value for {option}: {value!r} (expected key=value)")
        result[key] = item
    return result
