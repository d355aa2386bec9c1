from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy.orm import Session

from app.catalog.db import build_engine, build_sessionmaker


def create_script_engine(db_url: str):
    # Same engine options as the app, including SQLite foreign-key enforcement.
    return build_engine(db_url, pool_recycle=1800)


@contextmanager
def script_session(db_url: str):
    engine = create_script_engine(db_url)
    sm = build_sessionmaker(engine)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()
