"""
Storage Providers: 완성된 트레일러(mp4) / 자막(vtt) 저장

- local: STORAGE_PATH 아래 디렉토리에 저장, URL 은 "<public_prefix>/<key>"
- r2:    Cloudflare R2 (S3 호환, boto3)
"""

import os
from abc import ABC, abstractmethod
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from utils.errors import StorageError
from utils.logger import get_logger

logger = get_logger("storage")

CONTENT_TYPES = {
    ".mp4": "video/mp4",
    ".vtt": "text/vtt",
    ".json": "application/json",
}


def guess_content_type(key: str) -> str:
    return CONTENT_TYPES.get(os.path.splitext(key)[1].lower(), "application/octet-stream")


class StorageProvider(ABC):
    """저장소 공통 인터페이스 (동기; 파이프라인에서는 asyncio.to_thread 로 호출)"""

    @abstractmethod
    def save(self, key: str, data: bytes, content_type: Optional[str] = None) -> str:
        """저장 후 공개 URL 반환"""

    @abstractmethod
    def load(self, key: str) -> bytes:
        ...

    @abstractmethod
    def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    def get_url(self, key: str) -> str:
        ...


class LocalStorageProvider(StorageProvider):
    def __init__(self, base_path: Optional[str] = None, public_prefix: Optional[str] = None):
        self.base_path = base_path or os.getenv("STORAGE_PATH", "./storage/videos")
        self.public_prefix = (public_prefix or os.getenv("STORAGE_PUBLIC_PREFIX", "/videos")).rstrip("/")
        os.makedirs(self.base_path, exist_ok=True)

    def _path(self, key: str) -> str:
        safe_key = key.replace("\\", "/").lstrip("/")
        if ".." in safe_key.split("/"):
            raise StorageError(f"Invalid storage key: {key}")
        return os.path.join(self.base_path, safe_key)

    def save(self, key: str, data: bytes, content_type: Optional[str] = None) -> str:
        path = self._path(key)
        try:
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            raise StorageError(f"Failed to write {key}: {e}") from e
        logger.info(f"[Storage] Saved {key} ({len(data)} bytes) to {path}")
        return self.get_url(key)

    def load(self, key: str) -> bytes:
        path = self._path(key)
        try:
            with open(path, "rb") as f:
                return f.read()
        except OSError as e:
            raise StorageError(f"Failed to read {key}: {e}") from e

    def exists(self, key: str) -> bool:
        return os.path.exists(self._path(key))

    def get_url(self, key: str) -> str:
        return f"{self.public_prefix}/{key.lstrip('/')}"


class R2StorageProvider(StorageProvider):
    """
    Cloudflare R2 (S3 compatible).

    R2_ACCOUNT_ID / R2_ACCESS_KEY_ID / R2_SECRET_ACCESS_KEY / R2_BUCKET_NAME 필요.
    R2_PUBLIC_URL 이 있으면 공개 URL 에 사용합니다.
    """

    def __init__(
        self,
        account_id: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        bucket_name: Optional[str] = None,
        public_url: Optional[str] = None,
        client=None,
    ):
        self.account_id = account_id or os.getenv("R2_ACCOUNT_ID")
        self.access_key = access_key or os.getenv("R2_ACCESS_KEY_ID")
        self.secret_key = secret_key or os.getenv("R2_SECRET_ACCESS_KEY")
        self.bucket_name = bucket_name or os.getenv("R2_BUCKET_NAME")
        self.public_url = (public_url or os.getenv("R2_PUBLIC_URL", "")).rstrip("/")

        if client is not None:
            self.s3_client = client
            return

        if not all([self.account_id, self.access_key, self.secret_key, self.bucket_name]):
            raise StorageError("R2 credentials missing (R2_ACCOUNT_ID, R2_ACCESS_KEY_ID, R2_SECRET_ACCESS_KEY, R2_BUCKET_NAME)")

        self.s3_client = boto3.client(
            service_name="s3",
            endpoint_url=f"https://{self.account_id}.r2.cloudflarestorage.com",
            aws_access_key_id=self.access_key,
            aws_secret_access_key=self.secret_key,
            region_name="auto",  # R2 는 'auto' 고정
        )
        logger.info(f"[Storage] Initialized R2 client for bucket: {self.bucket_name}")

    def save(self, key: str, data: bytes, content_type: Optional[str] = None) -> str:
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type or guess_content_type(key),
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"R2 upload failed for {key}: {e}") from e
        logger.info(f"[Storage] Uploaded {key} to R2://{self.bucket_name}")
        return self.get_url(key)

    def load(self, key: str) -> bytes:
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
            return response["Body"].read()
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"R2 download failed for {key}: {e}") from e

    def exists(self, key: str) -> bool:
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
            return True
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError(f"R2 head_object failed for {key}: {e}") from e

    def get_url(self, key: str) -> str:
        if self.public_url:
            return f"{self.public_url}/{key}"
        return f"https://{self.account_id}.r2.cloudflarestorage.com/{self.bucket_name}/{key}"


def get_storage_provider(storage_type: Optional[str] = None, **kwargs) -> StorageProvider:
    """
    STORAGE_TYPE (local | r2) 에 맞는 저장소 생성.

    Raises:
        StorageError: 알 수 없는 타입 또는 R2 자격 증명 누락
    """
    storage_type = (storage_type or os.getenv("STORAGE_TYPE", "local")).lower()
    if storage_type == "local":
        return LocalStorageProvider(**kwargs)
    if storage_type == "r2":
        return R2StorageProvider(**kwargs)
    raise StorageError(f"Unknown storage type: {storage_type}")
