from typing import Callable, Optional
from urllib.parse import quote

import aioboto3

from src.constants.env import (
    R2_ACCESS_KEY_ID,
    R2_BUCKET_NAME,
    R2_ENDPOINT_URL,
    R2_PUBLIC_URL,
    R2_REGION_NAME,
    R2_SECRET_ACCESS_KEY,
)
from src.utils.exceptions import UpstreamError
from src.utils.logger import logger


def original_key(user_id: str, document_id: str, filename: str) -> str:
    return f"{user_id}/{document_id}/{filename}"


def page_image_key(user_id: str, document_id: str, page_number: int) -> str:
    return f"{user_id}/{document_id}/pages/page-{page_number}.jpg"


def document_prefix(user_id: str, document_id: str) -> str:
    return f"{user_id}/{document_id}/"


class S3ClientWrapper:
    def __init__(self, bucket: str = R2_BUCKET_NAME):
        self.bucket = bucket
        self.session = aioboto3.Session(
            aws_access_key_id=R2_ACCESS_KEY_ID,
            aws_secret_access_key=R2_SECRET_ACCESS_KEY,
            region_name=R2_REGION_NAME,
        )
        self.s3_client = None
        self._client_cm = None

    async def __aenter__(self):
        try:
            self._client_cm = self.session.client(
                "s3",
                region_name=R2_REGION_NAME,
                aws_access_key_id=R2_ACCESS_KEY_ID,
                aws_secret_access_key=R2_SECRET_ACCESS_KEY,
                endpoint_url=R2_ENDPOINT_URL,
            )
            # Keep the context manager open to hold on to the client
            self.s3_client = await self._client_cm.__aenter__()
            return self
        except Exception as e:
            logger.error(f"S3 connection could not be established: {e}")
            raise UpstreamError("S3 connection could not be established") from e

    async def __aexit__(self, exc_type, exc_value, traceback):
        if self._client_cm is not None:
            await self._client_cm.__aexit__(exc_type, exc_value, traceback)

    def public_url(self, key: str) -> str:
        return f"{R2_PUBLIC_URL.rstrip('/')}/{quote(key)}"

    async def upload_fileobj(
        self,
        fileobj,
        key: str,
        content_type: str = "application/octet-stream",
        callback: Optional[Callable[[int], None]] = None,
    ) -> str:
        """Upload a file object and return its public URL.

        ``callback`` receives the number of bytes sent by each chunk.
        """
        try:
            await self.s3_client.upload_fileobj(
                Fileobj=fileobj,
                Bucket=self.bucket,
                Key=key,
                ExtraArgs={"ContentType": content_type, "CacheControl": "3600"},
                Callback=callback,
            )
        except Exception as e:
            logger.error(f"Error uploading file to S3: {e}", exc_info=True)
            raise UpstreamError(f"Error uploading file to S3: {e}") from e
        return self.public_url(key)

    async def put_object(
        self, key: str, body: bytes, content_type: str = "application/octet-stream"
    ) -> str:
        try:
            await self.s3_client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
            )
        except Exception as e:
            logger.error(f"Error putting object to S3: {e}", exc_info=True)
            raise UpstreamError(f"Error uploading file to S3: {e}") from e
        return self.public_url(key)

    async def get_object(self, key: str) -> bytes:
        try:
            obj = await self.s3_client.get_object(Bucket=self.bucket, Key=key)
            return await obj["Body"].read()
        except Exception as e:
            logger.error(f"Error getting object from S3: {e}", exc_info=True)
            raise UpstreamError(f"Error getting object from S3: {e}") from e

    async def delete_prefix(self, prefix: str) -> int:
        """Delete every object under ``prefix``; returns the number removed."""
        removed = 0
        try:
            paginator = self.s3_client.get_paginator("list_objects_v2")
            async for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys = [{"Key": item["Key"]} for item in page.get("Contents", [])]
                if not keys:
                    continue
                await self.s3_client.delete_objects(
                    Bucket=self.bucket, Delete={"Objects": keys}
                )
                removed += len(keys)
        except Exception as e:
            logger.error(f"Error deleting objects from S3: {e}", exc_info=True)
            raise UpstreamError(f"Error deleting objects from S3: {e}") from e
        return removed
