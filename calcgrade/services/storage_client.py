# calcgrade/services/storage_client.py
import logging

from supabase import Client, create_client

from calcgrade.core.config import settings
from calcgrade.services.exceptions import StorageError

logger = logging.getLogger(__name__)

_client: Client | None = None


def get_supabase_client() -> Client:
    global _client
    if _client is None:
        if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
            raise StorageError("Supabase is not configured: SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY missing")
        _client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    return _client


class StorageClient:
    """Thin wrapper over one Supabase Storage bucket."""

    def __init__(self, bucket: str | None = None, client: Client | None = None):
        self.bucket = bucket or settings.STORAGE_BUCKET
        self._client = client

    def _bucket(self):
        client = self._client or get_supabase_client()
        return client.storage.from_(self.bucket)

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        try:
            self._bucket().upload(
                path=path,
                file=data,
                file_options={"content-type": content_type, "upsert": "false"},
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"upload of {path} failed: {e}") from e
        logger.info(f"Stored {path} in bucket {self.bucket} ({len(data)} bytes)")
        return path

    def download(self, path: str) -> bytes:
        try:
            data = self._bucket().download(path)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"download of {path} failed: {e}") from e
        if not data:
            raise StorageError(f"download of {path} returned no data")
        return data

    def remove(self, path: str) -> None:
        try:
            self._bucket().remove([path])
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"remove of {path} failed: {e}") from e


def get_storage_client() -> StorageClient:
    """FastAPI dependency; overridden in tests."""
    return StorageClient()
