from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from tool_tracking.db.base import Base


class Tool(Base):
    __tablename__ = "Tools"

    ToolID = Column(Integer, primary_key=True)
    ToolName = Column(String(255), nullable=False)
    Quantity = Column(Integer, nullable=False, default=0)
    Status = Column(String(50), nullable=False, default="Available")
    LastMaintenance = Column(Date)
    ConditionNotes = Column(String(1000))
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    Units = relationship(
        "Unit",
        back_populates="Tool",
        cascade="all, delete-orphan",
        order_by="Unit.SerialNumber",
    )
    MaintenanceSchedules = relationship("MaintenanceSchedule", back_populates="Tool")


class Unit(Base):
    __tablename__ = "Units"

    UnitID = Column(Integer, primary_key=True)
    ToolID = Column(Integer, ForeignKey("Tools.ToolID"), nullable=False, index=True)
    SerialNumber = Column(String(200), nullable=False, unique=True)
    Status = Column(String(50), nullable=False, default="Available")
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    Tool = relationship("Tool", back_populates="Units")
    Assignments = relationship("Assignment", back_populates="Unit", cascade="all, delete-orphan")
    MaintenanceSchedules = relationship("MaintenanceSchedule", back_populates="Unit", cascade="all, delete-orphan")


class Assignment(Base):
    __tablename__ = "Assignments"
    __table_args__ = (
        Index(
            "UX_Assignments_ActiveUnit",
            "UnitID",
            unique=True,
            sqlite_where=text("\"Status\" = 'Active'"),
            postgresql_where=text("\"Status\" = 'Active'"),
        ),
    )

    AssignmentID = Column(Integer, primary_key=True)
    UnitID = Column(Integer, ForeignKey("Units.UnitID"), nullable=False, index=True)
    ProjectID = Column(String(50), nullable=False, index=True)
    AssignedDate = Column(Date, nullable=False)
    ExpectedReturnDate = Column(Date)
    ActualReturnDate = Column(Date)
    Status = Column(String(20), nullable=False, default="Active")
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    Unit = relationship("Unit", back_populates="Assignments")


class MaintenanceSchedule(Base):
    __tablename__ = "MaintenanceSchedules"

    ScheduleID = Column(Integer, primary_key=True)
    UnitID = Column(Integer, ForeignKey("Units.UnitID"), nullable=False, index=True)
    ToolID = Column(Integer, ForeignKey("Tools.ToolID"), nullable=False, index=True)
    MaintenanceType = Column(String(20), nullable=False)
    ScheduledDate = Column(Date, nullable=False)
    Notes = Column(String(1000))
    Status = Column(String(20), nullable=False, default="Scheduled")
    HoldsUnit = Column(Boolean, nullable=False, default=False)
    CompletedDate = Column(Date)
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    Unit = relationship("Unit", back_populates="MaintenanceSchedules")
    Tool = relationship("Tool", back_populates="MaintenanceSchedules")


class AuditLog(Base):
    __tablename__ = "AuditLogs"

    AuditID = Column(Integer, primary_key=True)
    EntityType = Column(String(50), nullable=False)
    EntityID = Column(Integer, nullable=False)
    Action = Column(String(100), nullable=False)
    Details = Column(String(2000))
    UserID = Column(Integer)
    CreatedAt = Column(DateTime, server_default=func.now())
