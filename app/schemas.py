"""Pydantic schemas for the HTTP API layer and remote workflow payloads."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from models.records import Coordinate, Measurement, VerificationVerdict, format_timestamp
from services.aggregator import NetworkSummary


def _round2(value: float) -> float:
    return round(value, 2)


class LocationModel(BaseModel):
    """A latitude/longitude pair."""

    model_config = ConfigDict(populate_by_name=True)

    lat: float
    lon: float = Field(..., validation_alias=AliasChoices("lon", "lng"))

    @classmethod
    def from_coordinate(cls, coordinate: Coordinate) -> "LocationModel":
        return cls(lat=coordinate.lat, lon=coordinate.lon)


class MeasurementPayload(BaseModel):
    """A measurement submitted by a client."""

    model_config = ConfigDict(populate_by_name=True)

    network_name: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("networkName", "wifiName"),
        serialization_alias="networkName",
    )
    speed_mbps: float = Field(
        ...,
        ge=0,
        allow_inf_nan=False,
        validation_alias=AliasChoices("speedMbps", "speed"),
        serialization_alias="speedMbps",
    )
    lat: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    lon: float = Field(
        ..., ge=-180, le=180, allow_inf_nan=False, validation_alias=AliasChoices("lon", "lng")
    )
    timestamp: datetime = Field(..., validation_alias=AliasChoices("timestamp", "time"))
    reporter_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("reporterId", "walletAddress"),
        serialization_alias="reporterId",
    )
    reporter_address: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("reporterAddress", "ip"),
        serialization_alias="reporterAddress",
    )

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def to_record(self) -> Measurement:
        return Measurement(
            network_name=self.network_name,
            speed_mbps=self.speed_mbps,
            lat=self.lat,
            lon=self.lon,
            timestamp=self.timestamp,
            reporter_id=self.reporter_id,
            reporter_address=self.reporter_address or None,
        )


class DataPointsRequest(BaseModel):
    """Batch of measurements submitted for aggregation or verification."""

    model_config = ConfigDict(populate_by_name=True)

    data_points: List[MeasurementPayload] = Field(
        default_factory=list,
        validation_alias=AliasChoices("dataPoints", "data_points"),
        serialization_alias="dataPoints",
    )

    def to_records(self) -> List[Measurement]:
        return [point.to_record() for point in self.data_points]


class WorkflowDataPoint(BaseModel):
    """One measurement in the field layout the remote aggregation job reads."""

    wifi_name: str = Field(..., serialization_alias="wifiName")
    speed: float
    lat: float
    lon: float
    timestamp: str
    wallet_address: str = Field(..., serialization_alias="walletAddress")
    ip: Optional[str] = None

    @classmethod
    def from_record(cls, measurement: Measurement) -> "WorkflowDataPoint":
        return cls(
            wifi_name=measurement.network_name,
            speed=measurement.speed_mbps,
            lat=measurement.lat,
            lon=measurement.lon,
            timestamp=format_timestamp(measurement.timestamp),
            wallet_address=measurement.reporter_id,
            ip=measurement.reporter_address,
        )


class WorkflowInput(BaseModel):
    data_points: List[WorkflowDataPoint] = Field(
        default_factory=list, serialization_alias="dataPoints"
    )


class NetworkStatistics(BaseModel):
    """Aggregate speed statistics for one network, rounded for presentation."""

    model_config = ConfigDict(populate_by_name=True)

    network_name: str = Field(
        ...,
        validation_alias=AliasChoices("networkName", "wifiName"),
        serialization_alias="networkName",
    )
    total_measurements: int = Field(
        ..., ge=1, validation_alias="totalMeasurements", serialization_alias="totalMeasurements"
    )
    average_speed: float = Field(
        ..., validation_alias="averageSpeed", serialization_alias="averageSpeed"
    )
    median_speed: float = Field(
        ..., validation_alias="medianSpeed", serialization_alias="medianSpeed"
    )
    min_speed: float = Field(..., validation_alias="minSpeed", serialization_alias="minSpeed")
    max_speed: float = Field(..., validation_alias="maxSpeed", serialization_alias="maxSpeed")
    speed_range: float = Field(..., validation_alias="speedRange", serialization_alias="speedRange")
    unique_locations: List[LocationModel] = Field(
        default_factory=list,
        validation_alias=AliasChoices("uniqueLocations", "locations"),
        serialization_alias="uniqueLocations",
    )
    latest_timestamp: Optional[str] = Field(
        default=None,
        validation_alias="latestTimestamp",
        serialization_alias="latestTimestamp",
    )

    @field_validator("average_speed", "median_speed", "min_speed", "max_speed", "speed_range")
    @classmethod
    def _round(cls, value: float) -> float:
        return _round2(value)

    @classmethod
    def from_summary(cls, summary: NetworkSummary) -> "NetworkStatistics":
        return cls(
            network_name=summary.network_name,
            total_measurements=summary.total_measurements,
            average_speed=summary.average_speed,
            median_speed=summary.median_speed,
            min_speed=summary.min_speed,
            max_speed=summary.max_speed,
            speed_range=summary.speed_range,
            unique_locations=[
                LocationModel.from_coordinate(location) for location in summary.unique_locations
            ],
            latest_timestamp=(
                format_timestamp(summary.latest_timestamp)
                if summary.latest_timestamp is not None
                else None
            ),
        )


class VerificationRequest(BaseModel):
    """Claimed location to check against the reporter's network address."""

    model_config = ConfigDict(populate_by_name=True)

    reporter_address: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("reporterAddress", "ip"),
        serialization_alias="reporterAddress",
    )
    lat: Optional[float] = None
    lon: Optional[float] = Field(default=None, validation_alias=AliasChoices("lon", "lng"))


class VerificationResponse(BaseModel):
    """Verdict for one claimed location."""

    claimed_location: LocationModel = Field(..., serialization_alias="claimedLocation")
    resolved_location: LocationModel = Field(..., serialization_alias="resolvedLocation")
    distance_km: float = Field(..., serialization_alias="distanceKm")
    within_threshold: bool = Field(..., serialization_alias="withinThreshold")

    @classmethod
    def from_verdict(cls, verdict: VerificationVerdict) -> "VerificationResponse":
        return cls(
            claimed_location=LocationModel.from_coordinate(verdict.claimed_location),
            resolved_location=LocationModel.from_coordinate(verdict.resolved_location),
            distance_km=_round2(verdict.distance_km),
            within_threshold=verdict.within_threshold,
        )


class VerificationOutcome(BaseModel):
    """Per-item result of a batch verification."""

    index: int = Field(..., ge=0)
    verdict: Optional[VerificationResponse] = None
    error: Optional[str] = None
