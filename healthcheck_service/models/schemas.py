# ================================
# FILE: healthcheck_service/models/schemas.py
# ================================

import math
from pydantic import BaseModel, Field
from typing import Dict, List, Optional

from healthcheck_service.core.metrics_registry import HistogramValue, MetricSample


class ServiceInfoResponse(BaseModel):
    """Root endpoint response model"""

    service_name: str
    version: str
    environment: str
    state: str
    uptime_seconds: float
    endpoints: Dict[str, str] = Field(default_factory=dict)


class HistogramBucket(BaseModel):
    """One cumulative histogram bucket"""

    le: str = Field(..., description="Upper bound, '+Inf' for the overflow bucket")
    count: int


class MetricSampleModel(BaseModel):
    """JSON view of a metric sample"""

    name: str
    kind: str
    labels: Dict[str, str] = Field(default_factory=dict)
    value: Optional[float] = None
    buckets: Optional[List[HistogramBucket]] = None
    sum: Optional[float] = None
    count: Optional[int] = None
    stale: bool = False

    @classmethod
    def from_sample(cls, sample: MetricSample) -> "MetricSampleModel":
        if isinstance(sample.value, HistogramValue):
            return cls(
                name=sample.name,
                kind=sample.kind.value,
                labels=sample.labels_dict,
                buckets=[
                    HistogramBucket(le="+Inf" if math.isinf(bound) else repr(bound), count=count)
                    for bound, count in sample.value.cumulative()
                ],
                sum=sample.value.sum,
                count=sample.value.count,
                stale=sample.stale,
            )
        return cls(
            name=sample.name,
            kind=sample.kind.value,
            labels=sample.labels_dict,
            value=sample.value,
            stale=sample.stale,
        )


class MetricsSnapshotResponse(BaseModel):
    """JSON metrics snapshot"""

    timestamp: float
    metrics: List[MetricSampleModel]
