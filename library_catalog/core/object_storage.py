import boto3
from botocore.client import Config
from library_catalog.core.config import settings

_s3_client = None


def create_s3_client():
    scheme = 'https' if settings.minio_secure else 'http'
    endpoint_url = f'{scheme}://{settings.minio_endpoint}'

    return boto3.client(
        's3',
        endpoint_url=endpoint_url,
        aws_access_key_id=settings.minio_access_key,
        aws_secret_access_key=settings.minio_secret_key,
        region_name=settings.minio_region or 'us-east-1',
        config=Config(signature_version='s3v4'),
        use_ssl=settings.minio_secure
    )


def get_s3_client():
    """Lazily build the shared S3/MinIO client."""
    global _s3_client
    if _s3_client is None:
        _s3_client = create_s3_client()
    return _s3_client


BUCKET_NAME = settings.minio_bucket
