"""
Инициализация базы данных и сессий SQLAlchemy.

Назначение:
- Создание engine (Postgres в проде, SQLite для dev/тестов)
- Контекстный менеджер для сессий
- Единая точка доступа к хранилищу задач для всех сервисов
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from council_tasks.common.config import get_settings

# =============================================================================
# ENGINE / SESSION FACTORY
# =============================================================================
_settings = get_settings()


def _build_engine(dsn: str):
    if dsn.startswith("sqlite"):
        # Одно соединение на процесс: in-memory база живёт, пока жив engine
        return create_engine(
            dsn,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(dsn, pool_pre_ping=True)


engine = _build_engine(_settings.postgres_dsn)

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    # объекты остаются читаемыми после выхода из db_session()
    expire_on_commit=False,
)


# =============================================================================
# CONTEXT MANAGER
# =============================================================================
@contextmanager
def db_session() -> Iterator[Session]:
    """
    Контекстный менеджер для работы с БД.

    Использование:
        with db_session() as session:
            session.add(...)
    """
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
