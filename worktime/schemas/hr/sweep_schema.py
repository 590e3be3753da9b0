from pydantic import BaseModel
from typing import List, Optional
from datetime import date
from worktime.models.shared.enums import SweepJob

class SweepError(BaseModel):
    unit: str
    error: str

class SweepResult(BaseModel):
    """Aggregate outcome of one sweep run. Per-unit errors are reported here, never raised."""
    job: SweepJob
    run_date: date
    candidates: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    reaggregated: int = 0
    timed_out: bool = False
    errors: List[SweepError] = []
    message: Optional[str] = None
