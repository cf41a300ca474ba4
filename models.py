# models.py
from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field


class InsuranceRecord(SQLModel, table=True):
    __tablename__ = "insurance"

    id: Optional[int] = Field(default=None, primary_key=True)

    name: str                  # policy holder, e.g. "Ramesh Kumar"
    model: str                 # e.g. "Mahindra 575 DI"
    vehicle_number: str        # e.g. "UP 80 XX 1234"
    contact_number: str
    insurer: str               # insurance company name
    due_date: str              # as sent by the client, usually YYYY-MM-DD
    joining_date: datetime     # set once when the record is added
