from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ScheduleMaintenanceRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    unitSerialNumber: str = Field(alias="serialNumber")
    maintenanceType: str
    scheduledDate: date
    notes: Optional[str] = None
    toolID: Optional[int] = None
    operatorUserID: Optional[int] = None


class MaintenanceStatusUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    status: str
    operatorUserID: Optional[int] = None
