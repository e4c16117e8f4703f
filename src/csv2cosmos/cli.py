# src/csv2cosmos/cli.py

import argparse
import logging

from .config import load_app_settings, load_config
from .loader import ImportAbortedError
from .logging_conf import configure_logging
from .transform import run_import

log = logging.getLogger(__name__)


def main() -> None:
    """Blob storage CSV → Cosmos DB bulk import, driven by a JSON job config."""
    configure_logging()
    ap = argparse.ArgumentParser(
        description="Blob storage CSV → Cosmos DB bulk import, driven by a JSON job config."
    )
    source = ap.add_mutually_exclusive_group(required=True)
    source.add_argument("--config", help="path to the JSON import configuration")
    source.add_argument(
        "--app-settings", help="path to a flat JSON object of app settings (NumFieldsInCSV, Field1, …)"
    )
    ap.add_argument("--download-dir", default="DownloadFromBlob")
    ap.add_argument("--dlq-path", default="dlq/rejected_rows.csv")
    ap.add_argument("--state-dir", default=".state")
    args = ap.parse_args()

    path = args.config or args.app_settings
    try:
        cfg = load_config(path) if args.config else load_app_settings(path)
    except ValueError as e:
        # pydantic ValidationError and json.JSONDecodeError are both ValueErrors
        log.error("invalid_config", extra={"config": path, "error": str(e)})
        raise SystemExit(2)

    try:
        run_import(cfg, args.download_dir, args.dlq_path, args.state_dir)
    except ImportAbortedError as e:
        log.error("job_aborted", extra={"error": str(e)})
        raise SystemExit(1)
    log.info("job_complete")


if __name__ == "__main__":
    main()
