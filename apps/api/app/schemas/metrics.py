from pydantic import BaseModel, Field


class TimingMetricStats(BaseModel):
    count: int
    avg_s: float
    max_s: float


class MetricsResponse(BaseModel):
    counters: dict[str, int]
    timings: dict[str, TimingMetricStats]
    change_feed_subscribers: int = Field(ge=0)
