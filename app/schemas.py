"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, Field

from models.records import SensorMeasurement


class MeasurementPayload(BaseModel):
    """A reading as posted by a sensor.

    Required fields default to empty values so that missing ones are reported
    by the ingestion validator as a bad request.
    """

    sensor_id: str = ""
    sensor_version: str = ""
    alias: str = ""
    temperature: float = 0.0
    humidity: float = 0.0
    ph: float = 0.0
    tds: float = 0.0
    ec: float = 0.0
    water_temperature: float = 0.0
    timestamp: float = Field(default=0.0, description="Unix epoch seconds, fractional.")

    def to_measurement(self, user_id: str) -> SensorMeasurement:
        return SensorMeasurement(user_id=user_id, **self.model_dump())


class RegisterMetricsRequest(BaseModel):
    metrics: List[MeasurementPayload] = Field(..., min_length=1)


class RegisterMetricsResponse(BaseModel):
    accepted: int = Field(..., ge=0, description="Number of measurements persisted.")


class AddDeviceRequest(BaseModel):
    device: str = Field(..., description="Identifier of the sensor to correlate.")


class DevicesResponse(BaseModel):
    user_id: str
    devices: List[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str
    message: str = ""
    details: Dict[str, Any] = Field(default_factory=dict)


class CreateAccountRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


class SignInResponse(BaseModel):
    access_token: str
