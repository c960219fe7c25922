import io
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest
from botocore.exceptions import ClientError

REPO_ROOT = Path(__file__).resolve().parents[1]

# Ensure repo root is importable when running pytest from a checkout
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from core.settings import get_settings  # noqa: E402
from providers.impl import storage_s3  # noqa: E402
from providers.storage import Instance  # noqa: E402


def client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeBody:
    """Streaming body stand-in; optionally raises after `fail_after` bytes."""

    def __init__(self, data: bytes, fail_after: Optional[int] = None, error: Optional[BaseException] = None):
        self._buf = io.BytesIO(data)
        self._fail_after = fail_after
        self._error = error or OSError("connection reset")
        self.closed = False

    def read(self, size: int = -1) -> bytes:
        if self._fail_after is not None and self._buf.tell() >= self._fail_after:
            raise self._error
        if self._fail_after is not None:
            limit = self._fail_after - self._buf.tell()
            if size < 0 or size > limit:
                size = limit
        return self._buf.read(size)

    def close(self) -> None:
        self.closed = True


class FakeS3Client:
    """
    In-memory S3 client covering the calls the s3 driver makes.
    Every call is recorded in `calls` as (operation, kwargs).
    """

    def __init__(self, buckets: Optional[Set[str]] = None, fail_create: bool = False):
        self.buckets: Set[str] = set(buckets or ())
        self.fail_create = fail_create
        self.objects: Dict[Tuple[str, str], bytes] = {}
        self.puts: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.bodies: List[FakeBody] = []
        self.body_fail_after: Optional[int] = None
        self.body_error: Optional[BaseException] = None
        self.download_error: Optional[BaseException] = None

    def head_bucket(self, Bucket: str):
        self.calls.append(("head_bucket", {"Bucket": Bucket}))
        if Bucket not in self.buckets:
            raise client_error("404", "HeadBucket")
        return {}

    def create_bucket(self, **kwargs):
        self.calls.append(("create_bucket", kwargs))
        if self.fail_create:
            raise client_error("AccessDenied", "CreateBucket")
        self.buckets.add(kwargs["Bucket"])
        return {}

    def put_object(self, Bucket: str, Key: str, Body, **kwargs):
        self.calls.append(("put_object", dict(kwargs, Bucket=Bucket, Key=Key)))
        self.objects[(Bucket, Key)] = Body.read()
        self.puts[(Bucket, Key)] = kwargs
        return {"ETag": '"etag"'}

    def _data(self, Bucket: str, Key: str, operation: str) -> bytes:
        try:
            return self.objects[(Bucket, Key)]
        except KeyError:
            raise client_error("NoSuchKey", operation) from None

    def get_object(self, Bucket: str, Key: str, Range: Optional[str] = None):
        self.calls.append(("get_object", {"Bucket": Bucket, "Key": Key, "Range": Range}))
        data = self._data(Bucket, Key, "GetObject")
        if Range:
            start, _, end = Range[len("bytes="):].partition("-")
            data = data[int(start): int(end) + 1] if end else data[int(start):]
        body = FakeBody(data, fail_after=self.body_fail_after, error=self.body_error)
        self.bodies.append(body)
        return {"Body": body, "ContentLength": len(data)}

    def delete_object(self, Bucket: str, Key: str):
        self.calls.append(("delete_object", {"Bucket": Bucket, "Key": Key}))
        if Bucket not in self.buckets:
            raise client_error("NoSuchBucket", "DeleteObject")
        self.objects.pop((Bucket, Key), None)
        return {}

    def download_fileobj(self, Bucket: str, Key: str, Fileobj):
        self.calls.append(("download_fileobj", {"Bucket": Bucket, "Key": Key}))
        data = self._data(Bucket, Key, "HeadObject")
        if self.download_error is not None:
            Fileobj.write(data[: len(data) // 2])
            raise self.download_error
        Fileobj.write(data)

    def generate_presigned_url(self, ClientMethod: str, Params: Dict[str, Any], ExpiresIn: int):
        self.calls.append(("generate_presigned_url", {"ClientMethod": ClientMethod, "ExpiresIn": ExpiresIn, **Params}))
        return f"https://s3.test/{Params['Bucket']}/{Params['Key']}?X-Amz-Expires={ExpiresIn}"

    def operations(self) -> List[str]:
        return [name for name, _ in self.calls]


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_s3(monkeypatch):
    """
    Patch boto3.client as seen by the s3 driver. The created client's kwargs
    are kept on `client.init_kwargs`.
    """
    client = FakeS3Client(buckets={"default"})

    def _client(service_name, **kwargs):
        assert service_name == "s3"
        client.init_kwargs = kwargs
        return client

    monkeypatch.setattr(storage_s3.boto3, "client", _client)
    return client


@pytest.fixture
def instance():
    return Instance(name="test", driver="s3", setting={"bucket": "default"})


@pytest.fixture
def connection(fake_s3, instance):
    conn = storage_s3.driver().connect(instance)
    conn.open()
    fake_s3.calls.clear()
    yield conn
    conn.close()
