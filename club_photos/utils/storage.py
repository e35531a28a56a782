from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    ConnectTimeoutError,
    ReadTimeoutError,
)

from club_photos.config import (
    AWS_REGION,
    PRESIGNED_URL_EXPIRY,
    S3_BUCKET,
    S3_ENDPOINT_URL,
    logger,
    s3_client,
)
from club_photos.errors import StorageError, TransientIO

_TRANSIENT = (BotoConnectionError, ConnectTimeoutError, ReadTimeoutError)


def _wrap(op: str, key: str, exc: Exception) -> StorageError:
    if isinstance(exc, _TRANSIENT):
        return TransientIO(f"{op} {key}: {exc}")
    return StorageError(f"{op} {key}: {exc}")


class S3Storage:
    def __init__(self, bucket: str = S3_BUCKET, region: str = AWS_REGION,
                 endpoint_url: str | None = S3_ENDPOINT_URL, client=None):
        self.bucket       = bucket
        self.region       = region
        self.endpoint_url = endpoint_url
        self.client       = client or s3_client

    def public_url(self, key: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def presigned_upload_url(self, key: str, expiry: int = PRESIGNED_URL_EXPIRY) -> str:
        try:
            return self.client.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expiry,
            )
        except (BotoCoreError, ClientError) as e:
            raise _wrap("presign", key, e) from e

    def presigned_download_url(self, key: str, expiry: int = PRESIGNED_URL_EXPIRY) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expiry,
            )
        except (BotoCoreError, ClientError) as e:
            raise _wrap("presign", key, e) from e

    def get_object(self, key: str) -> bytes:
        logger.info("Downloading key=%s", key)
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=key)
            return resp["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise _wrap("get", key, e) from e

    def put_object(self, key: str, data: bytes, content_type: str = "image/jpeg") -> str:
        logger.info("Uploading %d bytes → %s", len(data), key)
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            raise _wrap("put", key, e) from e
        return self.public_url(key)

    def delete_file(self, key: str) -> None:
        logger.info("Deleting key=%s from S3", key)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise _wrap("delete", key, e) from e
