import logging

from minio import Minio
from minio.error import S3Error

from .config import settings

logger = logging.getLogger("vaultshare")

minio_client = Minio(
    settings.MINIO_ENDPOINT,
    access_key=settings.MINIO_ACCESS_KEY,
    secret_key=settings.MINIO_SECRET_KEY,
    secure=settings.MINIO_SECURE
)

def check_minio_bucket():
    """Documents are uploaded by the authoring side; only verify the bucket is there."""
    try:
        if minio_client.bucket_exists(settings.MINIO_BUCKET):
            logger.info(f"Bucket '{settings.MINIO_BUCKET}' is available")
            return True
        logger.warning(f"Bucket '{settings.MINIO_BUCKET}' does not exist, signed URLs will not resolve")
        return False
    except S3Error as e:
        logger.error(f"MinIO error: {e}")
        raise RuntimeError(f"Failed to reach MinIO bucket: {e}")
