"""Bulk-submit document descriptors from a JSONL file.

Each line is one descriptor: {"url": ..., "desc": ..., "metadata": {...}}.
Lines are sent in batches of BATCH_SIZE; every per-item outcome is logged.
"""

import json
import logging
import os
import sys
from typing import Any, Dict, Iterator, List

from dotenv import load_dotenv

from docsearch.client import Client

# --- Configuration ---
INPUT_FILE = "documents.jsonl"
BATCH_SIZE = 50
TIMEOUT_SECONDS = 300

# --- Logging ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler("ingest_jsonl.log"),
    ],
)
logger = logging.getLogger(__name__)


def read_descriptors(path: str) -> Iterator[Dict[str, Any]]:
    with open(path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                item = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning("Skipping line %d: %s", lineno, e)
                continue
            yield item


def batches(items: Iterator[Dict[str, Any]], size: int) -> Iterator[List[Dict[str, Any]]]:
    batch: List[Dict[str, Any]] = []
    for item in items:
        batch.append(item)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


def main() -> int:
    load_dotenv(override=True)
    client = Client(
        api_key=os.getenv("DOCSEARCH_API_KEY", ""),
        base_url=os.getenv("DOCSEARCH_URL", "http://localhost:8000"),
        timeout=TIMEOUT_SECONDS,
    )
    stored = failed = 0
    with client:
        for n, batch in enumerate(batches(read_descriptors(INPUT_FILE), BATCH_SIZE), start=1):
            res = client.create_documents(batch)
            if not res.ok:
                logger.error("Batch %d rejected (%s): %s", n, res.status, res.error)
                failed += len(batch)
                continue
            for result in res.data:
                if result["success"]:
                    stored += 1
                else:
                    failed += 1
                    logger.warning(
                        "Not stored url=%s desc=%r: %s",
                        result.get("url"),
                        result.get("desc"),
                        result.get("errors"),
                    )
            logger.info("Batch %d done (%d items)", n, len(batch))

    logger.info("Finished: %d stored, %d failed", stored, failed)
    return 0 if failed == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
