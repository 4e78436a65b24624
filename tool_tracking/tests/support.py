import os
from datetime import datetime

os.environ.setdefault("TOOL_TRACKING_DB_URL", "sqlite+pysqlite:///:memory:")

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tool_tracking.db.base import Base
from tool_tracking.models.tool_models import Tool, Unit

PROJECTS = {
    "P1": {"id": "P1", "name": "Greenview Residence", "status": "In Progress"},
    "P2": {"id": "P2", "name": "Highland Residence", "status": "Completed"},
}


def fake_project_resolver(project_id):
    entry = PROJECTS.get(str(project_id))
    return dict(entry) if entry else None


def make_memory_engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    return engine


def make_file_engine(path):
    engine = create_engine(
        f"sqlite+pysqlite:///{path}",
        connect_args={"check_same_thread": False},
        future=True,
    )
    Base.metadata.create_all(engine)
    return engine


def make_session_factory(engine):
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


def seed_tool(db, name, serials, status="Available", tool_status=None):
    tool = Tool(
        ToolName=name,
        Quantity=len(serials),
        Status=tool_status or status,
        CreatedDate=datetime.now(),
        UpdatedDate=datetime.now(),
    )
    db.add(tool)
    db.flush()
    for serial in serials:
        db.add(
            Unit(
                ToolID=tool.ToolID,
                SerialNumber=serial,
                Status=status,
                CreatedDate=datetime.now(),
                UpdatedDate=datetime.now(),
            )
        )
    db.commit()
    return tool
