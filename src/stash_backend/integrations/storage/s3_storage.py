from __future__ import annotations

from dataclasses import dataclass

from botocore.config import Config
from botocore.exceptions import ClientError
from starlette.concurrency import run_in_threadpool


@dataclass(frozen=True)
class S3Config:
    endpoint_url: str
    region: str
    bucket: str
    force_path_style: bool


class S3ObjectStorage:
    """S3-compatible backend (AWS, R2, MinIO, COS). boto3 is blocking; calls run in a threadpool."""

    def __init__(
        self,
        *,
        endpoint_url: str,
        region: str,
        bucket: str,
        access_key_id: str,
        secret_access_key: str,
        force_path_style: bool,
    ) -> None:
        self._cfg = S3Config(
            endpoint_url=endpoint_url,
            region=region,
            bucket=bucket,
            force_path_style=force_path_style,
        )

        import boto3

        addressing_style = "path" if force_path_style else "virtual"
        self._client = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=region or None,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=Config(s3={"addressing_style": addressing_style}),
        )

    async def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        def _put() -> None:
            kwargs: dict[str, object] = {
                "Bucket": self._cfg.bucket,
                "Key": key,
                "Body": data,
            }
            if content_type:
                kwargs["ContentType"] = content_type
            self._client.put_object(**kwargs)

        await run_in_threadpool(_put)

    async def get_bytes(self, key: str) -> bytes:
        def _get() -> bytes:
            resp = self._client.get_object(Bucket=self._cfg.bucket, Key=key)
            body = resp.get("Body")
            return body.read() if body is not None else b""

        return await run_in_threadpool(_get)

    async def delete(self, key: str) -> None:
        def _delete() -> None:
            self._client.delete_object(Bucket=self._cfg.bucket, Key=key)

        await run_in_threadpool(_delete)

    async def exists(self, key: str) -> bool:
        def _head() -> bool:
            try:
                self._client.head_object(Bucket=self._cfg.bucket, Key=key)
            except ClientError as exc:
                code = str(exc.response.get("Error", {}).get("Code", ""))
                if code in {"404", "NoSuchKey", "NotFound"}:
                    return False
                raise
            return True

        return await run_in_threadpool(_head)
