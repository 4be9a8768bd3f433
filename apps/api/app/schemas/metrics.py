from pydantic import BaseModel, Field


class TimingSummary(BaseModel):
    count: int = Field(ge=0)
    avg_s: float
    max_s: float
    last_s: float


class MetricsResponse(BaseModel):
    """Process-local counters and latency summaries since startup."""

    counters: dict[str, int]
    timings: dict[str, TimingSummary]
