"""Delete policy for the whole schema.

Every foreign key declares an ``ondelete`` action. The same actions are applied
here, in the unit of work, before the parent row is removed, so the rules hold
on engines that do not enforce foreign keys and surface as domain errors
instead of driver exceptions.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass

from sqlalchemy import Column, MetaData, Table, delete, select, update
from sqlalchemy.orm import Session

from cellar_core.db import metadata
from cellar_core.errors import conflict

CASCADE = "CASCADE"
RESTRICT = "RESTRICT"
SET_NULL = "SET NULL"


@dataclass(frozen=True)
class Dependent:
    table: Table
    column: Column
    action: str


def build_delete_policy(meta: MetaData) -> dict[str, list[Dependent]]:
    policy: dict[str, list[Dependent]] = defaultdict(list)
    for table in meta.sorted_tables:
        for fk in sorted(table.foreign_keys, key=lambda f: f.parent.name):
            action = (fk.ondelete or RESTRICT).upper()
            policy[fk.column.table.name].append(Dependent(table, fk.parent, action))
    return dict(policy)


DELETE_POLICY = build_delete_policy(metadata)


def dependents_of(table: Table) -> list[Dependent]:
    return DELETE_POLICY.get(table.name, [])


def delete_rows(session: Session, table: Table, condition) -> int:
    deps = dependents_of(table)
    if deps:
        ids = session.execute(select(table.c.id).where(condition)).scalars().all()
        if not ids:
            return 0
        for dep in deps:
            if dep.action != RESTRICT:
                continue
            blocker = session.execute(select(dep.column).where(dep.column.in_(ids)).limit(1)).first()
            if blocker is not None:
                raise conflict(
                    "delete_restricted",
                    f"{table.name} is still referenced by {dep.table.name}",
                    {"table": table.name, "referenced_by": dep.table.name},
                )
        for dep in deps:
            if dep.action == CASCADE:
                delete_rows(session, dep.table, dep.column.in_(ids))
            elif dep.action == SET_NULL:
                session.execute(update(dep.table).where(dep.column.in_(ids)).values({dep.column.name: None}))
        condition = table.c.id.in_(ids)
    return session.execute(delete(table).where(condition)).rowcount


def delete_by_id(session: Session, table: Table, row_id: str) -> int:
    return delete_rows(session, table, table.c.id == row_id)
