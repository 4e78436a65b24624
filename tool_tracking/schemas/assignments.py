from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    unitSerialNumber: str = Field(alias="serialNumber")
    projectID: str = Field(alias="projectId")
    assignedDate: date
    expectedReturnDate: Optional[date] = None
    operatorUserID: Optional[int] = None


class CheckinRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    returnDate: Optional[date] = None
    operatorUserID: Optional[int] = None
