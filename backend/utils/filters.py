"""Composable query predicates shared by the crud modules."""

from typing import Optional, Tuple, List
from sqlalchemy import or_, asc, desc


def by_tenant(model, tenant_id):
    return model.tenant_id == tenant_id


def not_deleted(model):
    return model.deleted_at.is_(None)


def only_deleted(model):
    return model.deleted_at.isnot(None)


def active(model):
    return model.is_active.is_(True)


def search(term: Optional[str], *columns):
    """Case-insensitive substring match over any of the given columns."""
    if not term:
        return None
    pattern = f"%{term.strip()}%"
    return or_(*[column.ilike(pattern) for column in columns])


def apply_filters(query, *predicates):
    for predicate in predicates:
        if predicate is not None:
            query = query.filter(predicate)
    return query


def apply_sort(query, model, sort: Optional[str], order: str, allowed: dict, default: str):
    """Sort by a whitelisted attribute name, falling back to ``default``."""
    column = getattr(model, allowed.get(sort or "", allowed[default]))
    direction = desc if (order or "asc").lower() == "desc" else asc
    return query.order_by(direction(column), direction(model.id))


def paginate(query, page: int, limit: int) -> Tuple[List, int]:
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, total
