"""Invariant markers."""

from __future__ import annotations

from typing import NoReturn

from lunals.exceptions import NeverThrown


def never(reason: str = "", **env: object) -> NoReturn:
    """Mark a code path as intentionally unreachable.

    The optional env payload is attached to the raised ``NeverThrown`` so it
    ends up in the log record of whoever handles it.
    """
    raise NeverThrown(reason or "never() marker reached", env=env)
