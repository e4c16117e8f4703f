import gzip
import json
from pathlib import Path

import pandas as pd

from csv2cosmos.config import ImportConfig
from csv2cosmos.loader import ImportResult
from csv2cosmos.transform import convert_file, file_fingerprint, import_file, run_import

HEADERLESS = dict(
    endpoint="https://acct.documents.azure.com:443/",
    key="secret",
    database="logistics",
    container="shipments",
    has_header=False,
    field_names=["src_sys_id", "src_trx_dt", "src_ship_from_loc_cd", "src_ship_to_loc_cd"],
    string_fields=["src_sys_id", "src_trx_dt"],
    partition_key_fields=["src_ship_from_loc_cd"],
)


def _cfg(source: Path, **overrides: object) -> ImportConfig:
    return ImportConfig(**{**HEADERLESS, "source": str(source), **overrides})


def test_fingerprint_stable(tmp_path: Path) -> None:
    p = tmp_path / "f.csv"
    p.write_text("a,b\n1,2\n")
    assert file_fingerprint(str(p)) == file_fingerprint(str(p))


def test_convert_headerless_drops_first_line(tmp_path: Path) -> None:
    csv = tmp_path / "s.csv"
    csv.write_text('ignored,line,x,y\n"1001","2020-01-05","WH12",""\n1002,2020-01-06,WH12,42\n')

    out = convert_file(str(csv), _cfg(tmp_path))

    assert out.documents == [
        '{"src_sys_id":"1001","src_trx_dt":"2020-01-05","src_ship_to_loc_cd":0.0,"pk":"_WH12"}',
        '{"src_sys_id":"1002","src_trx_dt":"2020-01-06","src_ship_to_loc_cd":42.0,"pk":"_WH12"}',
    ]
    assert out.rejected == [] and out.skipped == 0


def test_convert_uses_header_row(tmp_path: Path) -> None:
    csv = tmp_path / "s.csv"
    csv.write_text("region,store,qty\nEU,7,3\n")
    cfg = ImportConfig(
        **{
            **HEADERLESS,
            "source": str(tmp_path),
            "has_header": True,
            "field_names": [],
            "string_fields": ["store"],
            "partition_key_fields": ["region", "store"],
            "partition_key_field_name": "partitionKey",
        }
    )
    out = convert_file(str(csv), cfg)
    assert [json.loads(d) for d in out.documents] == [{"qty": 3.0, "partitionKey": "_EU_7"}]


def test_convert_skips_and_rejects_rows(tmp_path: Path) -> None:
    csv = tmp_path / "s.csv"
    csv.write_text("h\n1,2020-01-05,WH1,1.5\n1,2020-01-05,WH1\n\n2,2020-01-05,WH2,3\n")

    out = convert_file(str(csv), _cfg(tmp_path))

    assert len(out.documents) == 1
    assert out.skipped == 2
    assert len(out.rejected) == 1
    assert out.rejected[0]["line_number"] == 2
    assert out.rejected[0]["record"] == "1,2020-01-05,WH1,1.5"


def test_convert_reformats_date_fields(tmp_path: Path) -> None:
    csv = tmp_path / "s.csv"
    csv.write_text("h\n1,2020-01-05,WH1,3\n2,05/01/2020,WH1,3\n")
    cfg = _cfg(tmp_path, date_fields=["src_trx_dt"], date_output_mode="year_month")

    out = convert_file(str(csv), cfg)

    assert json.loads(out.documents[0])["src_trx_dt"] == "2020-01"
    assert len(out.documents) == 1
    assert "Invalid date format: 05/01/2020" in str(out.rejected[0]["_error"])


def test_import_file_end_to_end(tmp_path: Path, importer) -> None:  # type: ignore[no-untyped-def]
    src = tmp_path / "landing"
    src.mkdir()
    (src / "ship.csv").write_text("h\n1,2020-01-05,WH1,3\n2,2020-01-05,WH2,x\n")
    dl, dlq, state = tmp_path / "dl", tmp_path / "dlq" / "bad.csv", tmp_path / ".state"

    res = import_file("ship.csv", _cfg(src), importer, str(dl), str(dlq), str(state))

    assert res["status"] == "ok" and res["imported"] == 1 and res["rejected"] == 1
    assert len(importer.batches) == 1
    assert not (dl / "ship.csv").exists()
    assert (state / f"{res['fingerprint']}.done").exists()
    assert pd.read_csv(dlq)["line_number"].tolist() == [3]

    again = import_file("ship.csv", _cfg(src), importer, str(dl), str(dlq), str(state))
    assert again["status"] == "skipped"
    assert len(importer.batches) == 1
    assert not (dl / "ship.csv").exists()


def test_local_copy_kept_until_import_returns(tmp_path: Path) -> None:
    src = tmp_path / "landing"
    src.mkdir()
    (src / "ship.csv").write_text("h\n1,2020-01-05,WH1,3\n")
    dl = tmp_path / "dl"
    seen: list[bool] = []

    class CheckingImporter:
        def import_documents(self, documents: list[str]) -> ImportResult:
            seen.append((dl / "ship.csv").exists())
            return ImportResult(imported=len(documents))

    importer = CheckingImporter()
    dlq, state = str(tmp_path / "dlq.csv"), str(tmp_path / ".state")
    import_file("ship.csv", _cfg(src), importer, str(dl), dlq, state)  # type: ignore[arg-type]
    assert seen == [True]
    assert not (dl / "ship.csv").exists()


def test_failed_inserts_are_dead_lettered(tmp_path: Path) -> None:
    src = tmp_path / "landing"
    src.mkdir()
    (src / "ship.csv").write_text("h\n1,2020-01-05,WH1,3\n")
    dlq = tmp_path / "dlq.csv"

    class FailingImporter:
        def import_documents(self, documents: list[str]) -> ImportResult:
            return ImportResult(failed=[(d, "Request rate is large") for d in documents])

    importer = FailingImporter()
    dl, state = str(tmp_path / "dl"), str(tmp_path / ".state")
    res = import_file("ship.csv", _cfg(src), importer, dl, str(dlq), state)  # type: ignore[arg-type]
    assert res["imported"] == 0 and res["failed"] == 1
    bad = pd.read_csv(dlq)
    assert bad["_error"].tolist() == ["Request rate is large"]
    assert json.loads(bad["record"][0])["pk"] == "_WH\ufffd1"


def test_gzipped_source(tmp_path: Path, importer) -> None:  # type: ignore[no-untyped-def]
    src = tmp_path / "landing"
    src.mkdir()
    with gzip.open(src / "ship.gzip", "wt") as f:
        f.write("h\n1,2020-01-05,WH1,3\n")
    dl = tmp_path / "dl"

    res = import_file(
        "ship.gzip", _cfg(src, gzipped=True), importer, str(dl), str(tmp_path / "dlq.csv"),
        str(tmp_path / ".state"),
    )
    assert res["imported"] == 1
    assert list(dl.iterdir()) == []


def test_uncompressed_source_configured_with_gzip_name(tmp_path: Path, importer) -> None:  # type: ignore[no-untyped-def]
    src = tmp_path / "landing"
    src.mkdir()
    (src / "ship.csv").write_text("h\n1,2020-01-05,WH1,3\n")

    res = import_file(
        "ship.gzip", _cfg(src), importer, str(tmp_path / "dl"), str(tmp_path / "dlq.csv"),
        str(tmp_path / ".state"),
    )
    assert res["file"] == "ship.csv" and res["imported"] == 1


def test_run_import_continues_past_broken_file(tmp_path: Path, importer) -> None:  # type: ignore[no-untyped-def]
    src = tmp_path / "landing"
    src.mkdir()
    (src / "a.csv").write_text("h\n1,2020-01-05,WH1,3\n")
    (src / "c.csv").write_text("h\n2,2020-01-05,WH2,4\n3,2020-01-05,WH3,5\n")
    cfg = _cfg(src, files=["a.csv", "missing.csv", "c.csv"])

    summaries = run_import(
        cfg, str(tmp_path / "dl"), str(tmp_path / "dlq.csv"), str(tmp_path / ".state"), importer
    )

    assert [s["status"] for s in summaries] == ["ok", "failed", "ok"]
    assert [len(b) for b in importer.batches] == [1, 2]


def test_run_import_lists_source_when_no_files_configured(tmp_path: Path, importer) -> None:  # type: ignore[no-untyped-def]
    src = tmp_path / "landing"
    src.mkdir()
    (src / "b.csv").write_text("h\n2,2020-01-05,WH2,4\n")
    (src / "a.csv").write_text("h\n1,2020-01-05,WH1,3\n")

    summaries = run_import(
        _cfg(src), str(tmp_path / "dl"), str(tmp_path / "dlq.csv"), str(tmp_path / ".state"), importer
    )

    assert [s["file"] for s in summaries] == ["a.csv", "b.csv"]
    assert [json.loads(b[0])["pk"] for b in importer.batches] == ["_WH1", "_WH2"]


def test_undecodable_bytes_do_not_fail_the_file(tmp_path: Path, importer) -> None:  # type: ignore[no-untyped-def]
    src = tmp_path / "landing"
    src.mkdir()
    (src / "ship.csv").write_bytes(b"h\n1,2020-01-05,WH\xff1,3\n2,2020-01-05,WH2,4\n")

    summaries = run_import(
        _cfg(src), str(tmp_path / "dl"), str(tmp_path / "dlq.csv"), str(tmp_path / ".state"), importer
    )

    assert [s["status"] for s in summaries] == ["ok"]
    assert len(importer.batches[0]) == 2
    assert json.loads(importer.batches[0][0])["pk"] == "_WH\ufffd1"
