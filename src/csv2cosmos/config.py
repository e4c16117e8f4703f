# src/csv2cosmos/config.py

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .dates import DateInputFormat, DateOutputMode

# "Use-…" app-settings switches, checked in this order
_OUTPUT_MODE_FLAGS: dict[str, DateOutputMode] = {
    "Use-YYYYMMDD": DateOutputMode.FULL,
    "Use-YYYYMMDD-WW": DateOutputMode.FULL_WITH_WEEK,
    "Use-OnlyYYYY": DateOutputMode.YEAR,
    "Use-OnlyMM": DateOutputMode.MONTH,
    "Use-OnlyDD": DateOutputMode.DAY,
    "Use-OnlyWW": DateOutputMode.WEEK,
    "Use-OnlyYYMM": DateOutputMode.YEAR_MONTH,
    "Use-OnlyYYDD": DateOutputMode.YEAR_DAY,
    "Use-OnlyYYWW": DateOutputMode.YEAR_WEEK,
    "Use-OnlyMMDD": DateOutputMode.MONTH_DAY,
    "Use-OnlyMMWW": DateOutputMode.MONTH_WEEK,
    "Use-OnlyDDWW": DateOutputMode.DAY_WEEK,
}

_INPUT_FORMAT_FLAGS: dict[str, DateInputFormat] = {
    "DateFormatInYYYY-MM-DD": DateInputFormat.DASHED,
    "DateFormatInYYYYMMDD": DateInputFormat.COMPACT,
    "DateFormatInYYYY/MM/DD": DateInputFormat.SLASHED,
}


def _env(name: str) -> str | None:
    return os.environ.get(name) or None


def _flag(settings: Mapping[str, str], key: str) -> bool:
    return str(settings.get(key, "false")).strip().lower() == "true"


def _indexed(settings: Mapping[str, str], count_key: str, prefix: str) -> list[str]:
    # "NumberOfFilesToRead"=2, "FileName1"=…, "FileName2"=…
    count = int(settings.get(count_key, "0") or 0)
    values = []
    for i in range(1, count + 1):
        key = f"{prefix}{i}"
        if key not in settings:
            raise ValueError(f"{count_key}={count} but {key} is missing")
        values.append(settings[key])
    return values


class ImportConfig(BaseModel):  # type: ignore[misc]
    model_config = ConfigDict(frozen=True, extra="forbid")

    # s3://bucket/prefix, az://container/prefix or a local folder
    source: str
    files: list[str] = Field(default_factory=list)
    gzipped: bool = False

    has_header: bool = True
    field_count: int | None = None
    field_names: list[str] = Field(default_factory=list)
    string_fields: list[str] = Field(default_factory=list)
    partition_key_fields: list[str] = Field(default_factory=list)
    partition_key_field_name: str = "pk"

    date_fields: list[str] = Field(default_factory=list)
    date_input_format: DateInputFormat = DateInputFormat.DASHED
    date_output_mode: DateOutputMode = DateOutputMode.FULL

    endpoint: str
    key: str | None = Field(default_factory=lambda: _env("COSMOS_KEY"))
    database: str
    container: str
    storage_connection_string: str | None = Field(
        default_factory=lambda: _env("AZURE_STORAGE_CONNECTION_STRING")
    )

    @field_validator(
        "files", "field_names", "string_fields", "partition_key_fields", "date_fields"
    )  # type: ignore[misc]
    @classmethod
    def no_duplicates(cls, v: list[str]) -> list[str]:
        dupes = sorted({x for x in v if v.count(x) > 1})
        if dupes:
            raise ValueError(f"duplicate entries: {dupes}")
        return v

    @field_validator("partition_key_field_name")  # type: ignore[misc]
    @classmethod
    def pk_name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("partition_key_field_name must not be empty")
        return v

    @model_validator(mode="after")  # type: ignore[misc]
    def check_consistency(self) -> ImportConfig:
        if not self.has_header and not self.field_names:
            raise ValueError("field_names are required when the files have no header row")
        if self.field_count is not None and self.field_count != len(self.field_names):
            raise ValueError(
                f"field_count={self.field_count} but {len(self.field_names)} field_names given"
            )
        if self.field_names:
            known = set(self.field_names)
            for attr in ("string_fields", "partition_key_fields", "date_fields"):
                unknown = [f for f in getattr(self, attr) if f not in known]
                if unknown:
                    raise ValueError(f"{attr} not in field_names: {unknown}")
        if self.source.startswith("az://") and not self.storage_connection_string:
            raise ValueError("az:// sources need storage_connection_string")
        return self

    @classmethod
    def from_app_settings(cls, settings: Mapping[str, str]) -> ImportConfig:
        """Build a config from flat key/value app settings (NumFieldsInCSV, Field1, …)."""
        modes = [m for k, m in _OUTPUT_MODE_FLAGS.items() if _flag(settings, k)]
        if len(modes) > 1:
            raise ValueError(f"more than one date output flag set: {[m.value for m in modes]}")
        inputs = [f for k, f in _INPUT_FORMAT_FLAGS.items() if _flag(settings, k)]

        has_header = _flag(settings, "FirstRowContainsColumnHeaders")
        field_names = [] if has_header else _indexed(settings, "NumFieldsInCSV", "Field")

        data: dict[str, object] = {
            "source": f"az://{settings.get('StorageAccountContainerName', '')}",
            "files": _indexed(settings, "NumberOfFilesToRead", "FileName"),
            "gzipped": _flag(settings, "FilesAreGZipped"),
            "has_header": has_header,
            "field_names": field_names,
            "string_fields": _indexed(settings, "NumberOfStringFieldsInDataset", "StringField"),
            "partition_key_fields": _indexed(settings, "NumberOfFieldsInPK", "PKField"),
            "partition_key_field_name": settings.get("PartitionKeyFieldName", "pk"),
            "date_input_format": inputs[0] if inputs else DateInputFormat.DASHED,
            "date_output_mode": modes[0] if modes else DateOutputMode.FULL,
            "endpoint": settings.get("EndPointUrl", ""),
            "key": settings.get("AuthorizationKey") or _env("COSMOS_KEY"),
            "database": settings.get("DatabaseName", ""),
            "container": settings.get("CollectionName", ""),
            "storage_connection_string": settings.get("StorageAccountConnectionString")
            or _env("AZURE_STORAGE_CONNECTION_STRING"),
        }
        if not has_header:
            data["field_count"] = int(settings.get("NumFieldsInCSV", "0") or 0)
        return cls.model_validate(data)


def load_config(path: str | Path) -> ImportConfig:
    return ImportConfig.model_validate_json(Path(path).read_text(encoding="utf-8"))


def load_app_settings(path: str | Path) -> ImportConfig:
    """Read a flat JSON object of app settings and build the config from it."""
    settings = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(settings, dict):
        raise ValueError(f"{path}: app settings must be a JSON object")
    return ImportConfig.from_app_settings({str(k): str(v) for k, v in settings.items()})
