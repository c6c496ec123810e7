from abc import ABC, abstractmethod
from datetime import timedelta
import hashlib
import hmac
from pathlib import Path, PurePosixPath
import time
from typing import Any, Dict
from urllib.parse import urlencode

from app.core.settings import settings

LOCAL_CONTENT_PATH = "/api/v1/documents/local-content"


def _sign_local_url(secret_key: str, object_key: str, expires: int) -> str:
    message = f"{object_key}:{expires}".encode("utf-8")
    return hmac.new(secret_key.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_local_url_signature(secret_key: str, object_key: str, expires: int, signature: str) -> bool:
    """False when the URL has expired or was signed for another key."""
    if int(time.time()) > expires:
        return False
    return hmac.compare_digest(_sign_local_url(secret_key, object_key, expires), signature)


def _upload_instructions(url: str, content_type: str) -> Dict[str, Any]:
    return {"upload_url": url, "method": "PUT", "headers": {"Content-Type": content_type}}


class StorageAdapter(ABC):
    """Where application documents live; clients upload straight to it with a signed PUT."""

    provider: str = "local"
    bucket: str | None = None

    @abstractmethod
    def generate_upload_url(self, object_key: str, content_type: str, expires_in: int) -> Dict[str, Any]:
        """Return ``{"upload_url", "method", "headers"}`` for a single PUT of ``object_key``."""

    @abstractmethod
    def object_exists(self, object_key: str) -> bool:
        pass


class LocalFileSystemAdapter(StorageAdapter):
    """Documents on local disk under ``<base_path>/<bucket>``, uploaded through the API itself."""

    def __init__(self, base_path: str, base_url: str, *, bucket: str, signing_key: str = ""):
        self.provider = "local"
        self.bucket = bucket
        self.base_path = Path(base_path)
        self.base_url = base_url.rstrip("/")
        self.signing_key = signing_key
        self.base_path.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return (self.base_path / self.bucket).resolve()

    def resolve_path(self, object_key: str) -> Path:
        key_path = PurePosixPath(object_key)
        if "\\" in object_key or key_path.is_absolute() or ".." in key_path.parts:
            raise ValueError("Invalid object key")
        resolved = (self.root / Path(object_key)).resolve()
        if resolved != self.root and self.root not in resolved.parents:
            raise ValueError("Invalid object key")
        return resolved

    def generate_upload_url(self, object_key: str, content_type: str, expires_in: int) -> Dict[str, Any]:
        expires = int(time.time()) + expires_in
        query = urlencode(
            {
                "key": object_key,
                "expires": expires,
                "signature": _sign_local_url(self.signing_key, object_key, expires),
            }
        )
        return _upload_instructions(f"{self.base_url}{LOCAL_CONTENT_PATH}?{query}", content_type)

    def object_exists(self, object_key: str) -> bool:
        try:
            return self.resolve_path(object_key).is_file()
        except ValueError:
            return False

    def write_file(self, object_key: str, content: bytes) -> Path:
        path = self.resolve_path(object_key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path


class GCSStorageAdapter(StorageAdapter):
    """Documents in a Cloud Storage bucket, uploaded with V4 signed URLs."""

    def __init__(self, bucket: str):
        # Imported here so local deployments need neither the package's credentials nor a bucket.
        import google.auth
        import google.auth.transport.requests
        from google.cloud import storage

        self.provider = "gcs"
        self.bucket = bucket
        self.credentials, _ = google.auth.default()
        self._auth_request = google.auth.transport.requests.Request()
        self._bucket_ref = storage.Client(credentials=self.credentials).bucket(bucket)

    def _signing_kwargs(self) -> Dict[str, Any]:
        if hasattr(self.credentials, "sign_bytes"):
            return {"credentials": self.credentials}
        # Metadata-server credentials cannot sign locally; sign through IAM with a fresh token.
        if not self.credentials.valid or not self.credentials.token:
            self.credentials.refresh(self._auth_request)
        email = getattr(self.credentials, "service_account_email", None)
        if not email:
            raise RuntimeError("Signed document URLs require a service account email")
        return {"service_account_email": email, "access_token": self.credentials.token}

    def generate_upload_url(self, object_key: str, content_type: str, expires_in: int) -> Dict[str, Any]:
        url = self._bucket_ref.blob(object_key).generate_signed_url(
            version="v4",
            expiration=timedelta(seconds=expires_in),
            method="PUT",
            content_type=content_type,
            **self._signing_kwargs(),
        )
        return _upload_instructions(url, content_type)

    def object_exists(self, object_key: str) -> bool:
        return self._bucket_ref.blob(object_key).exists()


def get_storage_adapter() -> StorageAdapter:
    if settings.storage_provider == "gcs":
        return GCSStorageAdapter(bucket=settings.gcs_bucket or settings.document_bucket)
    return LocalFileSystemAdapter(
        base_path=settings.local_upload_dir,
        base_url=settings.public_base_url,
        bucket=settings.document_bucket,
        signing_key=settings.secret_key,
    )
