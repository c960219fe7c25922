from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Iterator, Optional
from contextlib import contextmanager
from urllib.parse import quote_plus

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from providers.errors import (
    LocalIOError,
    NotReadyError,
    RemoteError,
    StorageConnectionError,
    ValidationError,
)
from providers.impl.temp_stream import TempStream
from providers.keys import file_ext, object_path
from providers.storage import (
    BrowseOption,
    DownloadOption,
    FetchOption,
    File,
    Health,
    Instance,
    RemoveOption,
    StorageConnection,
    StorageDriver,
    UploadOption,
)

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"
DEFAULT_BUCKET = "default"
DEFAULT_BROWSE_EXPIRES = timedelta(hours=1)


@dataclass(frozen=True)
class S3Setting:
    region: str = DEFAULT_REGION
    bucket: str = DEFAULT_BUCKET
    access_key: str = ""
    secret_key: str = ""
    session_token: str = ""
    endpoint: str = ""
    use_path_style: bool = False


def _str(setting: Dict[str, Any], name: str) -> str:
    v = setting.get(name)
    if isinstance(v, str) and v != "":
        return v
    return ""


def load_s3_setting(setting: Optional[Dict[str, Any]]) -> S3Setting:
    """
    Normalize the instance's loosely-typed setting map.

    Only non-empty strings are taken; for synonyms the later key wins
    ("access" < "accesskey" < "access_key"). Never fails.
    """
    setting = setting or {}

    region = _str(setting, "region") or DEFAULT_REGION
    bucket = _str(setting, "bucket") or DEFAULT_BUCKET

    access_key = ""
    for name in ("access", "accesskey", "access_key"):
        access_key = _str(setting, name) or access_key

    secret_key = ""
    for name in ("secret", "secretkey", "secret_key"):
        secret_key = _str(setting, name) or secret_key

    use_path_style = False
    for name in ("path_style", "force_path_style"):
        v = setting.get(name)
        if isinstance(v, bool):
            use_path_style = v

    return S3Setting(
        region=region,
        bucket=bucket or DEFAULT_BUCKET,
        access_key=access_key,
        secret_key=secret_key,
        session_token=_str(setting, "session_token"),
        endpoint=_str(setting, "endpoint"),
        use_path_style=use_path_style,
    )


def encode_tagging(tags: Optional[Dict[str, Any]]) -> str:
    """
    URL-encoded S3 tagging string. Keys are sorted, so equal tag sets always
    encode identically: {"b": 2, "a": 1} -> "a=1&b=2".
    """
    if not tags:
        return ""
    return "&".join(
        f"{quote_plus(str(k))}={quote_plus(str(tags[k]))}" for k in sorted(tags, key=str)
    )


def _endpoint_url(endpoint: str) -> str:
    if not endpoint.startswith("http://") and not endpoint.startswith("https://"):
        return "https://" + endpoint
    return endpoint


def _error_code(exc: Exception) -> Optional[str]:
    if isinstance(exc, ClientError):
        return (exc.response.get("Error") or {}).get("Code")
    return None


@contextmanager
def _remote(action: str, key: str) -> Iterator[None]:
    try:
        yield
    except (ClientError, BotoCoreError) as exc:
        raise RemoteError(f"s3 {action} failed for {key!r}: {exc}", code=_error_code(exc)) from exc


class S3Driver(StorageDriver):
    def connect(self, instance: Instance) -> "S3Connection":
        return S3Connection(instance, load_s3_setting(instance.setting))


class S3Connection(StorageConnection):
    """
    StorageConnection backed by an S3-compatible object store (AWS S3, MinIO, R2, ...).

    Instance setting keys:
      - region (default "us-east-1")
      - bucket (default "default")
      - access / accesskey / access_key
      - secret / secretkey / secret_key
      - session_token
      - endpoint (scheme optional, "https://" assumed)
      - path_style / force_path_style (bool)

    Without static credentials the boto3 default chain is used (env, profile, IRSA).
    The client handle is set by open() and only read afterwards; close() must not
    race with in-flight operations.
    """

    def __init__(self, instance: Instance, setting: S3Setting):
        self.instance = instance
        self.setting = setting
        self._client = None

    @property
    def bucket(self) -> str:
        return self.setting.bucket

    # -----------------------------
    # Lifecycle
    # -----------------------------

    def _build_client(self):
        s = self.setting
        cfg = Config(
            region_name=s.region,
            signature_version="s3v4",
            s3={"addressing_style": "path" if s.use_path_style else "auto"},
        )
        kwargs: Dict[str, Any] = {"config": cfg, "region_name": s.region}
        if s.access_key or s.secret_key or s.session_token:
            kwargs["aws_access_key_id"] = s.access_key or None
            kwargs["aws_secret_access_key"] = s.secret_key or None
            kwargs["aws_session_token"] = s.session_token or None
        if s.endpoint:
            kwargs["endpoint_url"] = _endpoint_url(s.endpoint)
        return boto3.client("s3", **kwargs)

    def _ensure_bucket(self, client) -> None:
        try:
            client.head_bucket(Bucket=self.bucket)
            return
        except (ClientError, BotoCoreError) as exc:
            logger.info("[S3] bucket %s not reachable (%s); trying to create it", self.bucket, exc)

        kwargs: Dict[str, Any] = {"Bucket": self.bucket}
        if self.setting.region != DEFAULT_REGION:
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.setting.region}
        try:
            client.create_bucket(**kwargs)
        except (ClientError, BotoCoreError) as exc:
            raise StorageConnectionError(
                f"s3 bucket init failed (bucket={self.bucket}): {exc}"
            ) from exc
        logger.info("[S3] created bucket %s", self.bucket)

    def open(self) -> None:
        try:
            client = self._build_client()
        except (BotoCoreError, ValueError) as exc:
            raise StorageConnectionError(f"s3 client init failed: {exc}") from exc

        self._ensure_bucket(client)
        self._client = client
        logger.info(
            "[S3] opened instance=%s bucket=%s region=%s endpoint=%s",
            self.instance.name, self.bucket, self.setting.region, self.setting.endpoint or "-",
        )

    def health(self) -> Health:
        if self._client is None:
            return Health(workload=1)
        return Health(workload=0)

    def close(self) -> None:
        if self._client is not None:
            logger.info("[S3] closed instance=%s", self.instance.name)
        self._client = None

    def _require_client(self):
        client = self._client
        if client is None:
            raise NotReadyError("s3 client not ready")
        return client

    # -----------------------------
    # File operations
    # -----------------------------

    def upload(self, original: str, opt: UploadOption) -> File:
        client = self._require_client()

        try:
            st = os.stat(original)
        except FileNotFoundError as exc:
            raise ValidationError(f"upload source not found: {original}") from exc
        except OSError as exc:
            raise LocalIOError(f"cannot stat {original}: {exc}") from exc
        if stat.S_ISDIR(st.st_mode):
            raise ValidationError("directory upload not supported")
        if not opt.key:
            raise ValidationError("missing upload key")

        ext = file_ext(original)
        file = self.instance.new_file(opt.prefix, opt.key, ext, st.st_size)
        key = object_path(file)

        kwargs: Dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        if opt.mimetype:
            kwargs["ContentType"] = opt.mimetype
        if opt.expires is not None:
            kwargs["Expires"] = opt.expires
        if opt.metadata:
            # S3 metadata values must be strings
            kwargs["Metadata"] = {str(k): str(v) for k, v in opt.metadata.items()}
        if opt.tags:
            kwargs["Tagging"] = encode_tagging(opt.tags)

        try:
            f = open(original, "rb")
        except OSError as exc:
            raise LocalIOError(f"cannot open {original}: {exc}") from exc
        with f:
            with _remote("put_object", key):
                client.put_object(Body=f, **kwargs)

        logger.debug("[S3] uploaded %s -> s3://%s/%s (%s bytes)", original, self.bucket, key, st.st_size)
        return file

    def fetch(self, file: File, opt: FetchOption) -> TempStream:
        client = self._require_client()
        key = object_path(file)

        kwargs: Dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        if opt.start is not None or opt.end is not None:
            start = opt.start or 0
            if opt.end is not None:
                kwargs["Range"] = f"bytes={start}-{opt.end}"
            else:
                kwargs["Range"] = f"bytes={start}-"

        with _remote("get_object", key):
            resp = client.get_object(**kwargs)
        body = resp["Body"]

        try:
            try:
                stream = TempStream.create()
            except OSError as exc:
                raise LocalIOError(f"cannot create temp file: {exc}") from exc
            try:
                with _remote("get_object", key):
                    stream.fill(body)
            except OSError as exc:
                stream.close()
                raise LocalIOError(f"cannot buffer s3://{self.bucket}/{key}: {exc}") from exc
            except BaseException:
                stream.close()
                raise
        finally:
            try:
                body.close()
            except Exception as exc:
                logger.debug("[S3] closing response body failed: %s", exc)

        logger.debug("[S3] fetched s3://%s/%s into %s", self.bucket, key, stream.path)
        return stream

    def download(self, file: File, opt: DownloadOption) -> str:
        client = self._require_client()
        target = opt.target
        if not target:
            raise ValidationError("invalid target")
        if os.path.isfile(target):
            return target

        key = object_path(file)
        try:
            parent = os.path.dirname(target)
            if parent:
                os.makedirs(parent, exist_ok=True)
            f = open(target, "wb")
        except OSError as exc:
            raise LocalIOError(f"cannot create {target}: {exc}") from exc

        try:
            with f:
                with _remote("download", key):
                    client.download_fileobj(self.bucket, key, f)
        except BaseException:
            # an existing target is trusted by later calls, so never leave a partial one
            try:
                os.remove(target)
            except OSError:
                pass
            raise

        logger.debug("[S3] downloaded s3://%s/%s -> %s", self.bucket, key, target)
        return target

    def remove(self, file: File, opt: Optional[RemoveOption] = None) -> None:
        client = self._require_client()
        key = object_path(file)
        with _remote("delete_object", key):
            client.delete_object(Bucket=self.bucket, Key=key)
        logger.debug("[S3] removed s3://%s/%s", self.bucket, key)

    def browse(self, file: File, opt: BrowseOption) -> str:
        client = self._require_client()
        key = object_path(file)

        expires = opt.expires
        if expires is None or expires.total_seconds() <= 0:
            expires = DEFAULT_BROWSE_EXPIRES

        with _remote("presign", key):
            return client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=max(1, int(expires.total_seconds())),
            )


def driver() -> S3Driver:
    return S3Driver()
