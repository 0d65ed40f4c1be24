from __future__ import annotations

import datetime
import decimal
import inspect
import pathlib
import uuid
from dataclasses import dataclass
from typing import Any, get_origin

from interwire.generic_types import is_closed_generic

# Value-like standard library classes are configuration, never services.
_VALUE_LIKE_TYPES: tuple[type[Any], ...] = (
    pathlib.PurePath,
    datetime.date,
    datetime.time,
    datetime.timedelta,
    uuid.UUID,
    decimal.Decimal,
)


@dataclass(frozen=True, slots=True)
class ConcreteTypeAutoregistrationPolicy:
    """Decide which requested keys the container may register on its own."""

    excluded_types: tuple[type[Any], ...] = _VALUE_LIKE_TYPES

    def is_eligible_concrete(self, candidate: object) -> bool:
        """Return true when a candidate can be registered implicitly.

        Closed generic aliases of eligible classes (``SqlRepository[Order]``)
        are eligible as well; open or builtin aliases are not.

        Args:
            candidate: Requested dependency key.

        """
        if is_closed_generic(candidate):
            candidate = get_origin(candidate)
        if not inspect.isclass(candidate) or candidate.__module__ == "builtins":
            return False
        if issubclass(candidate, type) or issubclass(candidate, self.excluded_types):
            return False
        return not (inspect.isabstract(candidate) or candidate.__dict__.get("_is_protocol", False))
