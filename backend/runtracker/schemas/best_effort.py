from pydantic import BaseModel


class BestEffortRead(BaseModel):
    milestone_name: str
    best_seconds: float
    best_display: str  # e.g. "24:51"
