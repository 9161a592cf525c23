from __future__ import annotations

from typing import Any

from sqlalchemy import MetaData, event
from sqlalchemy.orm import DeclarativeBase, Session

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class AppendOnlyMixin:
    """Rows of mapped classes using this mixin may be inserted but never changed."""

    __append_only__ = True


@event.listens_for(Session, "before_flush")
def _reject_append_only_mutations(session: Session, flush_context: Any, instances: Any) -> None:
    for instance in session.deleted:
        if getattr(instance, "__append_only__", False):
            raise ValueError(f"{instance.__tablename__} is append-only")
    for instance in session.dirty:
        if getattr(instance, "__append_only__", False) and session.is_modified(instance):
            raise ValueError(f"{instance.__tablename__} is append-only")
