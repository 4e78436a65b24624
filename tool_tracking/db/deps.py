from collections.abc import Generator

from .session import SessionLocalTools


def get_tool_db() -> Generator:
    db = SessionLocalTools()
    try:
        yield db
    finally:
        db.close()
