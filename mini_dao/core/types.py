"""Shared core type aliases used across contracts, repository, and ports."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Optional, Sequence

if TYPE_CHECKING:
    from .values import Row, Value

Params = Sequence["Value"]
DriverParams = List[Any]

Rows = List["Row"]
MaybeRow = Optional["Row"]
