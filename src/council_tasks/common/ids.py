"""
Генерация идентификаторов.
"""

from __future__ import annotations

import secrets
import uuid


def new_uuid() -> str:
    """UUIDv4 строкой."""
    return str(uuid.uuid4())


def new_task_id() -> str:
    return new_uuid()


def new_entity_id() -> str:
    """Идентификатор доменной записи (subject, highlight, decision ...)."""
    return f"c{secrets.token_hex(12)}"
