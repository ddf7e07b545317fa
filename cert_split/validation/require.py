import re
import os
from cert_split.errors.validation_error import ValidationError
from pathlib import Path
from typing import Any, Match, Type, TypeVar, Pattern, Iterable

T = TypeVar("T")


class Require():
    @staticmethod
    def present(
        field: str,
        val: Any,
        custom_err: str | None = None
    ) -> None:
        if val is None or val == "":
            Require._raise_error(
                default_err=f"Field '{field}' is required",
                custom_err=custom_err
            )

    @staticmethod
    def match(
        field: str,
        val: Any,
        pattern: str | Pattern[str],
        custom_err: str | None = None
    ) -> Match[str]:
        match = re.fullmatch(pattern, str(val))
        if not match:
            Require._raise_error(
                default_err=f"Value '{field}={val}' does not match to '{pattern}' pattern",
                custom_err=custom_err
            )
        return match

    @staticmethod
    def min(
        field: str,
        val: int | float,
        min_val: int | float,
        custom_err: str | None = None
    ) -> None:
        if val < min_val:
            Require._raise_error(
                default_err=f"Value '{field}={val}' is too small, minimal value is {min_val}",
                custom_err=custom_err
            )

    @staticmethod
    def max(
        field: str,
        val: int | float,
        max_val: int | float,
        custom_err: str | None = None
    ) -> None:
        if val > max_val:
            Require._raise_error(
                default_err=f"Value '{field}={val}' is too big, maximum value is {max_val}",
                custom_err=custom_err
            )

    @staticmethod
    def port(
        field: str,
        val: int,
        custom_err: str | None = None
    ) -> None:
        min_val = 1
        max_val = 65535
        try:
            Require.type(field, val, int)
            Require.min(field, val, min_val)
            Require.max(field, val, max_val)
        except ValidationError as _:
            Require._raise_error(
                default_err=f"Value '{field}={val}' is not valid port number, value is out of range ({min_val}-{max_val})",
                custom_err=custom_err
            )

    @staticmethod
    def email(
        field: str,
        val: str,
        custom_err: str | None = None
    ) -> None:
        email_pattern = r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$"
        Require.match(
            field=field,
            val=val,
            pattern=email_pattern,
            custom_err=custom_err or f"Value '{field}={val}' is not a valid email address"
        )

    @staticmethod
    def domain(
        field: str,
        val: str,
        custom_err: str | None = None
    ) -> None:
        # no wildcard, the domain is also used as a file name
        domain_pattern = (
            r"^(?:[a-zA-Z0-9]" # label start
            r"(?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)+" # middle labels
            r"[A-Za-z]{2,}$" # TLD
        )
        Require.match(
            field=field,
            val=val,
            pattern=domain_pattern,
            custom_err=custom_err or f"Value '{field}={val}' is not a valid domain"
        )

    @staticmethod
    def type(
        field: str,
        val: object,
        class_type: Type[T] | tuple[Type, ...],
        custom_err: str | None = None
    ) -> None:
        # bool is an int subclass, never accept it for numeric fields
        if not isinstance(val, class_type) or (isinstance(val, bool) and class_type is not bool):
            type_name = class_type.__name__ if isinstance(class_type, type) else " or ".join(t.__name__ for t in class_type)
            Require._raise_error(
                default_err=f"Value '{field}={val}' has invalid type, must be a {type_name}",
                custom_err=custom_err
            )

    @staticmethod
    def file_exists(
        field: str,
        val: str | Path,
        custom_err: str | None = None
    ) -> Path:
        path = Path(val).expanduser()
        if not path.is_file():
            Require._raise_error(
                default_err=f"No file found at path provided for '{field}={val}'",
                custom_err=custom_err
            )
        return path

    @staticmethod
    def executable(
        field: str,
        val: str | Path,
        custom_err: str | None = None
    ) -> Path:
        path = Require.file_exists(field, val, custom_err)
        if not os.access(path, os.X_OK):
            Require._raise_error(
                default_err=f"File provided for '{field}={val}' is not executable",
                custom_err=custom_err
            )
        return path

    @staticmethod
    def one_of(
        field: str,
        val: str,
        allowed_values: Iterable[Any],
        custom_err: str | None = None
    ) -> None:
        if val not in allowed_values:
            Require._raise_error(
                default_err=f"Value '{field}={val}' is invalid, allowed choices: {(', ').join(sorted(allowed_values))}",
                custom_err=custom_err
            )

    @staticmethod
    def _raise_error(
        default_err: str,
        custom_err: str | None = None
    ) -> None:
        raise ValidationError(custom_err or default_err)
