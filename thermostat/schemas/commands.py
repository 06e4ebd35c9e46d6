"""
Inbound command envelopes.

MQTT commands arrive as ``{"value": ...}`` JSON documents; the HTTP layer
posts camelCase bodies. Both are validated here before anything reaches the
control loop, so a malformed message can never apply a partial command.
"""

import math
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator


def _require_number(value: Any) -> float:
    # bool is an int subclass; a JSON true must not become 1.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("value must be a number")
    if math.isnan(value) or math.isinf(value):
        raise ValueError("value must be a finite number")
    return float(value)


class SetpointCommand(BaseModel):
    value: float

    @field_validator("value", mode="before")
    @classmethod
    def _numeric(cls, value: Any) -> float:
        return _require_number(value)


class RelayCommand(BaseModel):
    value: StrictBool


class ModeCommand(BaseModel):
    value: Literal["heat", "off"]


class StartRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    target_temperature: float | None = Field(default=None, alias="targetTemperature")
    hysteresis: float | None = None

    @field_validator("target_temperature", "hysteresis", mode="before")
    @classmethod
    def _optional_numeric(cls, value: Any) -> float | None:
        if value is None:
            return None
        return _require_number(value)


class TargetRequest(BaseModel):
    temperature: float

    @field_validator("temperature", mode="before")
    @classmethod
    def _numeric(cls, value: Any) -> float:
        return _require_number(value)


class HysteresisRequest(BaseModel):
    hysteresis: float

    @field_validator("hysteresis", mode="before")
    @classmethod
    def _numeric(cls, value: Any) -> float:
        return _require_number(value)
