"""Things that can be curated into a user's day.

A curated row stores ``(curatable_kind, curatable_id)``; the registry maps
each kind to the lookup that loads the entity back.
"""

from __future__ import annotations

import enum
from typing import Callable, Optional

from sqlalchemy.orm import Session

from taskcurator.models.task import Task


class CuratableKind(str, enum.Enum):
    TASK = "task"


Lookup = Callable[[Session, int], Optional[object]]

_registry: dict[CuratableKind, Lookup] = {}


def register(kind: CuratableKind, lookup: Lookup) -> None:
    _registry[kind] = lookup


def resolve(db: Session, kind: CuratableKind | str, curatable_id: int):
    kind = CuratableKind(kind)
    lookup = _registry.get(kind)
    if lookup is None:
        raise KeyError(f"No lookup registered for curatable kind '{kind.value}'")
    return lookup(db, curatable_id)


def resolve_curated(db: Session, curated) -> Optional[object]:
    return resolve(db, curated.curatable_kind, curated.curatable_id)


register(CuratableKind.TASK, lambda db, task_id: db.get(Task, task_id))
