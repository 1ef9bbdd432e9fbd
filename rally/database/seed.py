"""
rally.database.seed — Class Catalog Seeder
===========================================

Inserts the classes listed in ``templates.json`` so ``/character add``
has something to offer on a fresh database.

Idempotent — relies on the ``(name, sub_class)`` unique constraint, so
classes added later by hand are never overwritten.
"""

from __future__ import annotations

import logging

from rally.config import ClassTemplate
from rally.database.engine import Gateway

logger = logging.getLogger(__name__)


def seed_classes(gateway: Gateway, classes: tuple[ClassTemplate, ...]) -> int:
    """Insert any missing classes; return how many were offered."""
    if not classes:
        logger.info("No classes configured — skipping class seed.")
        return 0

    values = ", ".join("(?, ?, ?)" for _ in classes)
    params: list[object] = []
    for cls in classes:
        params.extend([cls.name, cls.sub_class, cls.role.lower()])

    gateway.execute(
        f"INSERT INTO classes (name, sub_class, role) VALUES {values} "
        "ON CONFLICT(name, sub_class) DO NOTHING;",
        params,
    )
    logger.info("Class catalog seeded (%d configured).", len(classes))
    return len(classes)
