# src/csv2cosmos/loader.py

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Mapping

from azure.core.exceptions import AzureError
from azure.cosmos import CosmosClient, exceptions
from azure.identity import DefaultAzureCredential

from .config import ImportConfig

log = logging.getLogger(__name__)

REQUEST_CHARGE_HEADER = "x-ms-request-charge"


class ImportAbortedError(RuntimeError):
    pass


class ContainerNotFoundError(ImportAbortedError):
    pass


@dataclass
class ImportResult:
    imported: int = 0
    failed: list[tuple[str, str]] = field(default_factory=list)
    request_units: float = 0.0
    seconds: float = 0.0

    @property
    def docs_per_sec(self) -> float:
        return self.imported / self.seconds if self.seconds > 0 else 0.0

    @property
    def ru_per_sec(self) -> float:
        return self.request_units / self.seconds if self.seconds > 0 else 0.0

    @property
    def ru_per_doc(self) -> float:
        return self.request_units / self.imported if self.imported else 0.0

    def summary(self) -> dict[str, object]:
        return {
            "imported": self.imported,
            "failed": len(self.failed),
            "docs_per_sec": round(self.docs_per_sec),
            "ru_per_sec": round(self.ru_per_sec),
            "seconds": round(self.seconds, 3),
            "ru_per_doc": round(self.ru_per_doc, 2),
        }


class BulkImporter:
    """Insert JSON documents into one Cosmos DB container, in order, one batch at a time."""

    def __init__(self, container: Any) -> None:
        self._container = container

    @classmethod
    def from_config(cls, cfg: ImportConfig) -> BulkImporter:
        credential = cfg.key or DefaultAzureCredential()
        client = CosmosClient(cfg.endpoint, credential=credential)
        container = client.get_database_client(cfg.database).get_container_client(cfg.container)
        try:
            container.read()
        except exceptions.CosmosResourceNotFoundError as e:
            raise ContainerNotFoundError(
                f"container {cfg.database}/{cfg.container} does not exist"
            ) from e
        except AzureError as e:
            # auth failures, bad endpoints, unreachable account
            raise ImportAbortedError(
                f"cannot open container {cfg.database}/{cfg.container}: {e}"
            ) from e
        return cls(container)

    def import_documents(self, documents: list[str]) -> ImportResult:
        """Create every document and return once all inserts have completed.

        Service errors fail only the offending document. A transport error
        abandons the rest of the batch; nothing is retried.
        """
        result = ImportResult()

        def _charge(headers: Mapping[str, str], _body: object) -> None:
            result.request_units += float(headers.get(REQUEST_CHARGE_HEADER, 0) or 0)

        start = time.perf_counter()
        for i, doc in enumerate(documents):
            try:
                self._container.create_item(
                    body=json.loads(doc),
                    enable_automatic_id_generation=True,
                    response_hook=_charge,
                )
                result.imported += 1
            except exceptions.CosmosHttpResponseError as e:
                log.warning("insert_failed", extra={"status": e.status_code, "error": str(e)})
                result.failed.append((doc, str(e)))
            except AzureError as e:
                log.error(
                    "batch_aborted",
                    extra={"error": str(e), "remaining": len(documents) - i},
                )
                result.failed.extend((d, str(e)) for d in documents[i:])
                break
        result.seconds = time.perf_counter() - start

        log.info("import_summary", extra=result.summary())
        return result
