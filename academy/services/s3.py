"""AWS S3: PDF receipts."""
import asyncio

import boto3

from academy.config import settings

_s3 = None


def get_s3():
    global _s3
    if _s3 is None:
        _s3 = boto3.client(
            "s3",
            region_name=settings.aws_region,
            aws_access_key_id=settings.aws_access_key_id or None,
            aws_secret_access_key=settings.aws_secret_access_key or None,
        )
    return _s3


def _put_object_sync(bucket: str, key: str, body: bytes, content_type: str) -> None:
    get_s3().put_object(Bucket=bucket, Key=key, Body=body, ContentType=content_type)


async def upload_receipt_to_s3(key: str, body: bytes, content_type: str = "application/pdf") -> str:
    bucket = settings.s3_bucket_receipts
    await asyncio.to_thread(_put_object_sync, bucket, key, body, content_type)
    return f"https://{bucket}.s3.{settings.aws_region}.amazonaws.com/{key}"
