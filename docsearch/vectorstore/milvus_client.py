import time
from typing import Optional

from pymilvus import MilvusClient

from ..config import get_settings


def get_milvus_client(
    uri: Optional[str] = None,
    token: Optional[str] = None,
    wait_ready: bool = True,
    retries: int = 10,
    backoff_sec: float = 1.0,
) -> MilvusClient:
    """Create a Milvus client from settings if not provided and optionally wait for readiness.

    Settings/env overrides:
      - MILVUS_URI (default http://localhost:19530)
      - MILVUS_TOKEN (default root:Milvus)
    """
    settings = get_settings()
    client = MilvusClient(uri=uri or settings.milvus_uri, token=token or settings.milvus_token)

    if wait_ready:
        for i in range(max(1, retries)):
            try:
                # A light call to verify connectivity
                client.list_collections()
                break
            except Exception:  # pragma: no cover
                if i == retries - 1:
                    raise
                time.sleep(backoff_sec * (i + 1))
    return client
