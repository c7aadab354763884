"""Text search against a running docsearch service.

Configuration via constants below (no CLI args). Run:
	python scripts/search.py

Environment:
	DOCSEARCH_URL      (default http://localhost:8000)
	DOCSEARCH_API_KEY  (required by the service)
"""

from __future__ import annotations

import json
import logging
import os
from typing import List

from dotenv import load_dotenv

from docsearch.client import Client
from docsearch.vectorstore.schemas import SearchHit, format_search_hit


# ---------------------------------------------------------------------------
# Configuration Constants
# ---------------------------------------------------------------------------
QUERY_TEXT: str = "a red bicycle leaning on a wall"
QUERY_URL: str = ""
TOP_K: int = 5
THRESHOLD: float = 0.0
LOG_LEVEL: str = "INFO"


def search(query: str, top_k: int = TOP_K) -> List[SearchHit]:
	"""Query the service and log an aggregated multi-line block with the hits."""
	logger = logging.getLogger(__name__)

	load_dotenv(override=True)
	base_url = os.getenv("DOCSEARCH_URL", "http://localhost:8000")
	with Client(api_key=os.getenv("DOCSEARCH_API_KEY", ""), base_url=base_url) as client:
		res = client.search(url=QUERY_URL or None, desc=query, threshold=THRESHOLD, top_k=top_k)
	if not res.ok:
		raise RuntimeError(f"search failed ({res.status}): {res.error}")

	hits = [SearchHit.from_dict(h) for h in res.data["hits"]]
	header = f"Returned {len(hits)} of K={top_k} results. \nQuery: {query!r} \n"
	lines: List[str] = [header]
	for idx, hit in enumerate(hits, start=1):
		lines.append(f"{idx}. {format_search_hit(hit)}")
		if hit.document.metadata:
			lines.append(f"    metadata: {json.dumps(hit.document.metadata, ensure_ascii=False)}")
	logger.info("\n".join(lines))
	return hits


def main() -> int:
	logging.basicConfig(
		level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
		format="%(asctime)s %(levelname)s %(name)s - %(message)s",
	)
	try:
		search(QUERY_TEXT, TOP_K)
		return 0
	except Exception as e:  # pragma: no cover
		logging.exception("Search failed: %s", e)
		return 1

if __name__ == "__main__":  # pragma: no cover
	raise SystemExit(main())
