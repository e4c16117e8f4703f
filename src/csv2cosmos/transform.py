# src/csv2cosmos/transform.py

from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass, field

from .config import ImportConfig
from .dates import format_date
from .io import (
    append_dead_letters,
    download_object,
    gunzip,
    list_objects,
    read_lines,
    source_object_name,
)
from .loader import BulkImporter
from .mapper import build_schema, map_row, split_line, to_json

log = logging.getLogger(__name__)


@dataclass
class ConvertedFile:
    documents: list[str] = field(default_factory=list)
    rejected: list[dict[str, object]] = field(default_factory=list)
    skipped: int = 0


def file_fingerprint(path: str) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1 << 20), b""):
            h.update(chunk)
    return h.hexdigest()[:16]


def _marker_path(run_state_dir: str, fp: str) -> str:
    return os.path.join(run_state_dir, f"{fp}.done")


def already_processed(run_state_dir: str, fp: str) -> bool:
    os.makedirs(run_state_dir, exist_ok=True)
    return os.path.exists(_marker_path(run_state_dir, fp))


def mark_done(run_state_dir: str, fp: str) -> None:
    os.makedirs(run_state_dir, exist_ok=True)
    open(_marker_path(run_state_dir, fp), "w").close()


def convert_file(path: str, cfg: ImportConfig, source_name: str | None = None) -> ConvertedFile:
    """Turn every data line of a CSV file into a JSON document.

    The first line is always consumed: it is the header, or it is dropped when
    the field names come from configuration. Rows of the wrong width are
    counted and skipped; rows whose values fail to convert are logged and
    returned in ``rejected``.
    """
    source_name = source_name or os.path.basename(path)
    out = ConvertedFile()
    schema = None
    date_positions: list[int] = []

    log.info("convert_start", extra={"file": source_name})
    for line_number, raw in enumerate(read_lines(path), start=1):
        values = split_line(raw)

        if schema is None:
            names = values if cfg.has_header else cfg.field_names
            schema = build_schema(
                names,
                cfg.string_fields,
                cfg.partition_key_fields,
                cfg.partition_key_field_name,
            )
            date_positions = [i for i, f in enumerate(schema) if f.name in cfg.date_fields]
            continue

        if len(values) != len(schema):
            out.skipped += 1
            continue

        try:
            for i in date_positions:
                values[i] = format_date(values[i], cfg.date_input_format, cfg.date_output_mode)
            doc = map_row(values, schema, cfg.partition_key_field_name)
        except ValueError as e:
            log.warning(
                "row_rejected",
                extra={"file": source_name, "line_number": line_number, "error": str(e)},
            )
            out.rejected.append(
                {"file": source_name, "line_number": line_number, "record": raw, "_error": str(e)}
            )
            continue

        if doc is not None:
            out.documents.append(to_json(doc))

    return out


def _remove(*paths: str) -> None:
    for p in paths:
        if os.path.exists(p):
            os.remove(p)


def import_file(
    name: str,
    cfg: ImportConfig,
    importer: BulkImporter,
    download_dir: str,
    dlq_path: str,
    run_state_dir: str,
) -> dict[str, object]:
    """Download, convert and bulk import one source file, then drop the local copy."""
    object_name = source_object_name(name, cfg.gzipped)
    local_path = os.path.join(download_dir, object_name)
    log.info("file_start", extra={"file": object_name, "source": cfg.source})

    if not os.path.exists(local_path):
        download_object(cfg.source, object_name, local_path, cfg.storage_connection_string)
        log.info("download_ok", extra={"file": object_name, "local_path": local_path})

    csv_path = gunzip(local_path) if cfg.gzipped else local_path

    fp = file_fingerprint(csv_path)
    if already_processed(run_state_dir, fp):
        payload: dict[str, object] = {
            "status": "skipped",
            "reason": "idempotent",
            "file": object_name,
            "fingerprint": fp,
        }
        log.info("file_summary", extra=payload)
        _remove(local_path, csv_path)
        return payload

    converted = convert_file(csv_path, cfg, object_name)

    # blocks until every insert has returned; only then is the local copy removed
    result = importer.import_documents(converted.documents)

    dead = converted.rejected + [
        {"file": object_name, "line_number": None, "record": doc, "_error": reason}
        for doc, reason in result.failed
    ]
    if dead:
        append_dead_letters(dead, dlq_path)
        log.warning("dead_letters", extra={"count": len(dead), "dlq": dlq_path})

    mark_done(run_state_dir, fp)
    _remove(local_path, csv_path)

    summary: dict[str, object] = {
        "status": "ok",
        "file": object_name,
        "documents": len(converted.documents),
        "rejected": len(converted.rejected),
        "skipped_rows": converted.skipped,
        "fingerprint": fp,
        **result.summary(),
    }
    log.info("file_summary", extra=summary)
    return summary


def run_import(
    cfg: ImportConfig,
    download_dir: str,
    dlq_path: str,
    run_state_dir: str,
    importer: BulkImporter | None = None,
) -> list[dict[str, object]]:
    """Import every configured file in order.

    A container that cannot be opened aborts the whole job; any other per-file failure is
    logged and the job moves on to the next file.
    """
    if importer is None:
        importer = BulkImporter.from_config(cfg)
    os.makedirs(download_dir, exist_ok=True)

    files = list(cfg.files) or list_objects(cfg.source, cfg.storage_connection_string)
    log.info("job_start", extra={"files": len(files), "source": cfg.source})

    summaries: list[dict[str, object]] = []
    imported = 0
    for name in files:
        try:
            summary = import_file(name, cfg, importer, download_dir, dlq_path, run_state_dir)
        except Exception as e:  # one bad file must not stop the job
            log.exception("file_failed", extra={"file": name, "error": str(e)})
            summaries.append({"status": "failed", "file": name, "error": str(e)})
            continue
        imported += summary.get("imported", 0)  # type: ignore[operator]
        summaries.append(summary)

    log.info(
        "job_summary",
        extra={
            "files": len(files),
            "ok": sum(1 for s in summaries if s["status"] == "ok"),
            "failed": sum(1 for s in summaries if s["status"] == "failed"),
            "imported": imported,
        },
    )
    return summaries
