"""Shared test fixtures."""

import pytest

from csv2cosmos.loader import ImportResult


class FakeImporter:
    """Stands in for BulkImporter: records every batch, charges 1 RU per document."""

    def __init__(self) -> None:
        self.batches: list[list[str]] = []

    def import_documents(self, documents: list[str]) -> ImportResult:
        self.batches.append(list(documents))
        return ImportResult(
            imported=len(documents), request_units=float(len(documents)), seconds=0.5
        )


@pytest.fixture
def importer() -> FakeImporter:
    return FakeImporter()


@pytest.fixture(autouse=True)
def _no_ambient_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("COSMOS_KEY", raising=False)
    monkeypatch.delenv("AZURE_STORAGE_CONNECTION_STRING", raising=False)
