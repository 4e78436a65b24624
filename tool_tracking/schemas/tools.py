from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class ToolUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    toolName: Optional[str] = None
    conditionNotes: Optional[str] = None
    quantity: Optional[int] = None
    newSerialNumbers: List[str] = []
    operatorUserID: Optional[int] = None
