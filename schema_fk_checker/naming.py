"""Foreign-key column name → referenced table name."""

from __future__ import annotations

FOREIGN_KEY_SUFFIX = "_id"


def is_foreign_key_name(column_name: str) -> bool:
    """True when ``column_name`` follows the ``<singular>_id`` convention."""
    return column_name.endswith(FOREIGN_KEY_SUFFIX)


def infer_table(column_name: str) -> str:
    """
    Guess the table a foreign-key column points at.

    The ``_id`` suffix is dropped when present, then the base is pluralised
    with one rule: a trailing ``y`` becomes ``ies``, anything else gains an
    ``s``.  There is no irregular-plural table, so ``person_id`` maps to
    ``persons``.

    >>> infer_table("company_id")
    'companies'
    >>> infer_table("application_ref")
    'application_refs'
    """
    base = column_name
    if base.endswith(FOREIGN_KEY_SUFFIX):
        base = base[: -len(FOREIGN_KEY_SUFFIX)]
    if base.endswith("y"):
        return base[:-1] + "ies"
    return base + "s"


__all__ = ["FOREIGN_KEY_SUFFIX", "is_foreign_key_name", "infer_table"]
