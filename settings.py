from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Optional


_PORT_ENV = "PORT"
_PUBSUB_PROJECT_ENV = "PUBSUB_PROJECT_ID"
_PUBSUB_TOPIC_ENV = "PUBSUB_TOPIC_ID"
_RELAY_VARIANT_ENV = "RELAY_VARIANT"
_PUBLISH_WORKERS_ENV = "PUBLISH_WORKER_COUNT"
_SUBSCRIPTION_TABLE_ENV = "BIGQUERY_SUBSCRIPTION_TABLE"

_BUCKET_NAME_ENV = "STORAGE_BUCKET_NAME"
_BIGQUERY_PROJECT_ENV = "BIGQUERY_PROJECT_ID"
_BIGQUERY_DATASET_ENV = "BIGQUERY_DATASET_ID"
_BIGQUERY_TABLE_ENV = "BIGQUERY_TABLE_ID"
_DATASTORE_PROJECT_ENV = "DATASTORE_PROJECT_ID"
_TIME_COLUMN_ENV = "AGGREGATOR_TIME_COLUMN"
_VALUE_COLUMN_ENV = "AGGREGATOR_VALUE_COLUMN"
_WATERMARK_KIND_ENV = "WATERMARK_KIND"
_WATERMARK_NAME_ENV = "WATERMARK_NAME"
_WATERMARK_CAS_ENV = "WATERMARK_COMPARE_AND_SWAP"

_MOCK_ROOT_ENV = "MOCK_CLOUD_ROOT_PATH"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


class ConfigurationError(RuntimeError):
    """Raised when a required environment variable is missing or invalid."""


class RelayVariant(str, Enum):
    """Publishing strategy of an ingestion relay."""

    temperature = "temperature"
    data_sequence = "data-sequence"

    @property
    def endpoint(self) -> str:
        return "/temperature" if self is RelayVariant.temperature else "/dataSequence"


@dataclass(frozen=True)
class RelaySettings:
    port: int
    pubsub_project_id: str
    pubsub_topic_id: str
    variant: RelayVariant
    publish_workers: int
    subscription_table: Optional[str]
    bigquery_project_id: Optional[str]
    mock_root_path: Optional[str]
    log_level: str


@dataclass(frozen=True)
class AggregatorSettings:
    bucket_name: str
    bigquery_project_id: str
    bigquery_dataset_id: str
    bigquery_table_id: str
    datastore_project_id: str
    time_column: str
    value_column: str
    watermark_kind: str
    watermark_name: str
    compare_and_swap: bool
    mock_root_path: Optional[str]
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_required_env(name: str) -> str:
    value = (os.getenv(name) or "").strip()
    if not value:
        raise ConfigurationError(f"Environment variable {name} is required.")
    return value


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_port(default: int) -> int:
    value = _read_str_env(_PORT_ENV, str(default))
    try:
        port = int(value)
    except ValueError as exc:
        raise ConfigurationError(f"{_PORT_ENV} must be an integer, got {value!r}.") from exc
    if not 0 < port < 65536:
        raise ConfigurationError(f"{_PORT_ENV} out of range: {port}.")
    return port


def _read_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUTHY:
        return True
    if candidate in _FALSY:
        return False
    return default


def _read_variant(default: RelayVariant) -> RelayVariant:
    value = _read_str_env(_RELAY_VARIANT_ENV, default.value).lower()
    try:
        return RelayVariant(value)
    except ValueError as exc:
        choices = ", ".join(variant.value for variant in RelayVariant)
        raise ConfigurationError(
            f"{_RELAY_VARIANT_ENV} must be one of {choices}, got {value!r}."
        ) from exc


def read_log_level(default: str = "INFO") -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


def read_mock_root_path() -> Optional[str]:
    return _read_optional_env(_MOCK_ROOT_ENV, "./tmp/mock_cloud")


@lru_cache
def get_relay_settings() -> RelaySettings:
    return RelaySettings(
        port=_read_port(8080),
        pubsub_project_id=_read_required_env(_PUBSUB_PROJECT_ENV),
        pubsub_topic_id=_read_required_env(_PUBSUB_TOPIC_ENV),
        variant=_read_variant(RelayVariant.temperature),
        publish_workers=_read_positive_int(_PUBLISH_WORKERS_ENV, 4),
        subscription_table=_read_optional_env(_SUBSCRIPTION_TABLE_ENV, None),
        bigquery_project_id=_read_optional_env(_BIGQUERY_PROJECT_ENV, None),
        mock_root_path=read_mock_root_path(),
        log_level=read_log_level(),
    )


@lru_cache
def get_aggregator_settings() -> AggregatorSettings:
    return AggregatorSettings(
        bucket_name=_read_required_env(_BUCKET_NAME_ENV),
        bigquery_project_id=_read_required_env(_BIGQUERY_PROJECT_ENV),
        bigquery_dataset_id=_read_required_env(_BIGQUERY_DATASET_ENV),
        bigquery_table_id=_read_required_env(_BIGQUERY_TABLE_ENV),
        datastore_project_id=_read_required_env(_DATASTORE_PROJECT_ENV),
        time_column=_read_str_env(_TIME_COLUMN_ENV, "publish_time"),
        value_column=_read_str_env(_VALUE_COLUMN_ENV, "temperature"),
        watermark_kind=_read_str_env(_WATERMARK_KIND_ENV, "aggregator"),
        watermark_name=_read_str_env(_WATERMARK_NAME_ENV, "lastExecution"),
        compare_and_swap=_read_bool(_WATERMARK_CAS_ENV, True),
        mock_root_path=read_mock_root_path(),
        log_level=read_log_level(),
    )
