"""Validated launch parameters of a reader job."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigurationError
from .models import RequestList, to_epoch_millis

MINUTES_IN_FUTURE_TO_PROCESS_FROM = 1


class JobParameters(BaseModel):
    operation_name: str
    request_list: str = Field(..., description="RequestList JSON")
    batch_size: Optional[int] = Field(None, gt=0)
    start_time: datetime

    @field_validator("request_list")
    @classmethod
    def _parse_request_list(cls, value: str) -> str:
        RequestList.from_json(value)
        return value

    @classmethod
    def from_mapping(cls, raw: Mapping[str, object]) -> "JobParameters":
        try:
            return cls(**raw)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid job parameters: {exc}") from exc

    def queries(self) -> RequestList:
        return RequestList.from_json(self.request_list)

    def start_time_millis(self) -> int:
        return to_epoch_millis(self.start_time)


def build_job_parameters(
    operation_name: str,
    batch_size: Optional[int],
    request_list: RequestList,
    minutes_in_future: int = MINUTES_IN_FUTURE_TO_PROCESS_FROM,
    now: Optional[datetime] = None,
) -> JobParameters:
    """Start slightly in the future so records written during launch are included."""
    now = now or datetime.now(timezone.utc)
    return JobParameters.from_mapping(
        {
            "operation_name": operation_name,
            "request_list": request_list.to_json(),
            "batch_size": batch_size,
            "start_time": now + timedelta(minutes=minutes_in_future),
        }
    )


def resolve_batch_size(params: JobParameters, default: int) -> int:
    return params.batch_size if params.batch_size is not None else default


__all__ = [
    "JobParameters",
    "MINUTES_IN_FUTURE_TO_PROCESS_FROM",
    "build_job_parameters",
    "resolve_batch_size",
]
