"""
Blob storage adapters for card images.

Uploads are synchronous and raise StorageError; removals are best-effort and
report their outcome as a BestEffortResult instead of raising.
"""

import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import requests
from werkzeug.utils import secure_filename

from .errors import BestEffortResult, StorageError, best_effort

logger = logging.getLogger(__name__)


@dataclass
class StoredBlob:
    key: str
    public_url: str = ""


def build_object_key(file_name: str, user_id: Optional[str]) -> str:
    """cards/<user>/<millis>-<basename><ext>"""
    name = Path(file_name)
    ext = name.suffix.lower() or ".jpg"
    base = secure_filename(name.stem) or "card"
    owner = secure_filename(str(user_id)) if user_id else ""
    return f"cards/{owner or 'anonymous'}/{int(time.time() * 1000)}-{base}{ext}"


class BlobStorage:
    """Interface every storage backend implements."""

    name = "storage"

    def upload(
        self,
        file_path: Path,
        file_name: str,
        user_id: Optional[str],
        content_type: Optional[str] = None
    ) -> StoredBlob:
        raise NotImplementedError

    def _delete(self, key: str) -> None:
        raise NotImplementedError

    def remove(self, key: Optional[str]) -> BestEffortResult:
        """Delete a blob; never raises."""
        if not key:
            return BestEffortResult(operation="remove blob")
        return best_effort(f"remove blob {key}", self._delete, key)


class LocalBlobStorage(BlobStorage):
    """Stores blobs under a local directory. Useful for development and tests."""

    name = "local"

    def __init__(self, root: str):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise StorageError(f"Invalid blob key: {key}")
        return path

    def upload(self, file_path, file_name, user_id, content_type=None) -> StoredBlob:
        key = build_object_key(file_name, user_id)
        try:
            target = self._path_for(key)
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(file_path, target)
        except OSError as e:
            raise StorageError(f"Failed to upload image: {e}") from e
        logger.info(f"Stored blob {key}")
        return StoredBlob(key=key, public_url=target.as_uri())

    def exists(self, key: str) -> bool:
        return self._path_for(key).exists()

    def _delete(self, key: str) -> None:
        # Removing an absent blob is not an error
        self._path_for(key).unlink(missing_ok=True)


class SupabaseBlobStorage(BlobStorage):
    """Supabase Storage over its REST API."""

    name = "supabase"

    # Request timeout in seconds
    TIMEOUT = 15

    def __init__(self, url: str, service_key: str, bucket: str = "card-images"):
        if not url or not service_key:
            raise StorageError("Supabase environment variables are not set")
        self.base_url = url.rstrip("/")
        self.bucket = bucket
        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {service_key}",
            "apikey": service_key
        })

    def _object_url(self, key: str = "") -> str:
        url = f"{self.base_url}/storage/v1/object/{self.bucket}"
        return f"{url}/{key}" if key else url

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{key}"

    def upload(self, file_path, file_name, user_id, content_type=None) -> StoredBlob:
        key = build_object_key(file_name, user_id)
        try:
            data = Path(file_path).read_bytes()
            response = self.session.post(
                self._object_url(key),
                data=data,
                headers={
                    "Content-Type": content_type or "application/octet-stream",
                    "x-upsert": "false"
                },
                timeout=self.TIMEOUT
            )
            response.raise_for_status()
        except (OSError, requests.exceptions.RequestException) as e:
            raise StorageError(f"Failed to upload image: {e}") from e
        logger.info(f"Uploaded blob {key} to bucket {self.bucket}")
        return StoredBlob(key=key, public_url=self.public_url(key))

    def _delete(self, key: str) -> None:
        try:
            response = self.session.delete(
                self._object_url(),
                json={"prefixes": [key]},
                timeout=self.TIMEOUT
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise StorageError(f"Failed to remove image: {e}") from e
