# src/csv2cosmos/io.py

from __future__ import annotations

import gzip
import os
import shutil
from typing import Iterator

import boto3
import pandas as pd
from azure.storage.blob import BlobServiceClient

GZIP_SUFFIXES = (".gzip", ".gz")
DEAD_LETTER_COLUMNS = ["file", "line_number", "record", "_error"]


def _is_s3(path: str) -> bool:
    return path.startswith("s3://")


def _is_azure(path: str) -> bool:
    return path.startswith("az://")


def _split_uri(uri: str) -> tuple[str, str]:
    # "s3://bucket/prefix" -> ("bucket", "prefix") ; "az://container" -> ("container", "")
    rest = uri.split("://", 1)[1]
    parts = rest.split("/", 1)
    bucket = parts[0]
    prefix = parts[1].strip("/") if len(parts) > 1 else ""
    return bucket, prefix


def _key(prefix: str, name: str) -> str:
    return f"{prefix}/{name}" if prefix else name


def _relative(prefix: str, key: str) -> str:
    return key[len(prefix) + 1 :] if prefix else key


def _s3_client():  # type: ignore[no-untyped-def]
    return boto3.client("s3", region_name=os.environ.get("AWS_DEFAULT_REGION", "us-east-1"))


def _azure_container(container: str, connection_string: str | None):  # type: ignore[no-untyped-def]
    if not connection_string:
        raise ValueError("an Azure storage connection string is required for az:// sources")
    service = BlobServiceClient.from_connection_string(connection_string)
    return service.get_container_client(container)


def source_object_name(name: str, gzipped: bool) -> str:
    """Uncompressed inputs configured under a ``.gzip`` name are fetched as ``.csv``."""
    if not gzipped and name.endswith(".gzip"):
        return name[: -len(".gzip")] + ".csv"
    return name


def list_objects(source: str, connection_string: str | None = None) -> list[str]:
    """Names of every object under ``source``, relative to its prefix."""
    if _is_s3(source):
        bucket, prefix = _split_uri(source)
        paginator = _s3_client().get_paginator("list_objects_v2")
        names: list[str] = []
        for page in paginator.paginate(Bucket=bucket, Prefix=_key(prefix, "")):
            for obj in page.get("Contents", []):
                if not obj["Key"].endswith("/"):
                    names.append(_relative(prefix, obj["Key"]))
        return sorted(names)

    if _is_azure(source):
        container, prefix = _split_uri(source)
        client = _azure_container(container, connection_string)
        blobs = client.list_blobs(name_starts_with=_key(prefix, "") or None)
        return sorted(_relative(prefix, b.name) for b in blobs)

    return sorted(
        entry for entry in os.listdir(source) if os.path.isfile(os.path.join(source, entry))
    )


def download_object(
    source: str, name: str, dest_path: str, connection_string: str | None = None
) -> str:
    """Fetch one object from S3, Azure Blob or a local folder into ``dest_path``."""
    os.makedirs(os.path.dirname(dest_path) or ".", exist_ok=True)

    if _is_s3(source):
        bucket, prefix = _split_uri(source)
        _s3_client().download_file(bucket, _key(prefix, name), dest_path)
        return dest_path

    if _is_azure(source):
        container, prefix = _split_uri(source)
        client = _azure_container(container, connection_string)
        with open(dest_path, "wb") as f:
            client.download_blob(_key(prefix, name)).readinto(f)
        return dest_path

    shutil.copyfile(os.path.join(source, name), dest_path)
    return dest_path


def decompressed_path(path: str) -> str:
    for suffix in GZIP_SUFFIXES:
        if path.endswith(suffix):
            return path[: -len(suffix)] + ".csv"
    return path + ".csv"


def gunzip(path: str) -> str:
    out_path = decompressed_path(path)
    with gzip.open(path, "rb") as src, open(out_path, "wb") as dst:
        shutil.copyfileobj(src, dst)
    return out_path


def read_lines(path: str) -> Iterator[str]:
    # undecodable bytes read as U+FFFD
    with open(path, encoding="utf-8-sig", errors="replace", newline=None) as f:
        for line in f:
            yield line.rstrip("\n")


def append_dead_letters(rows: list[dict[str, object]], dlq_path: str) -> int:
    """Append rejected rows to the dead-letter CSV; header only on first write."""
    if not rows:
        return 0
    os.makedirs(os.path.dirname(dlq_path) or ".", exist_ok=True)
    exists = os.path.exists(dlq_path) and os.path.getsize(dlq_path) > 0
    pd.DataFrame(rows, columns=DEAD_LETTER_COLUMNS).to_csv(dlq_path, mode="a", header=not exists, index=False)
    return len(rows)
