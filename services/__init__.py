"""Entity services: each function takes an ``AsyncSession`` and the acting user."""

from sqlalchemy import or_

LIKE_ESCAPE = "\\"


def contains(term: str, *columns):
    """Case-insensitive substring match of ``term`` on any of ``columns``.

    ``%`` and ``_`` in the term are matched literally.
    """
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    pattern = f"%{escaped}%"
    return or_(*(column.ilike(pattern, escape=LIKE_ESCAPE) for column in columns))
