"""
MinIO storage utilities for medical-record attachments, backups and exports.
Provides presigned URL generation and JSON object upload.
"""
import io
import json
import uuid
from datetime import timedelta

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from minio import Minio
from minio.error import S3Error


class StorageError(Exception):
    """Object storage operation failed."""


def get_minio_client():
    """Get configured MinIO client instance."""
    return Minio(
        settings.MINIO_ENDPOINT,
        access_key=settings.MINIO_ACCESS_KEY,
        secret_key=settings.MINIO_SECRET_KEY,
        secure=settings.MINIO_USE_SSL
    )


def generate_presigned_get_url(bucket_name: str, object_key: str, expires: timedelta = timedelta(hours=1)) -> str:
    """
    Generate presigned GET URL for downloading a file from MinIO.

    Args:
        bucket_name: MinIO bucket name
        object_key: Object key/path in bucket
        expires: URL expiration time (default 1 hour)

    Raises:
        StorageError: If MinIO operation fails
    """
    client = get_minio_client()
    try:
        return client.presigned_get_object(
            bucket_name=bucket_name,
            object_name=object_key,
            expires=expires
        )
    except S3Error as e:
        raise StorageError(f'Failed to generate presigned GET URL: {e}') from e


def generate_presigned_put_url(
    bucket_name: str,
    object_key: str,
    expires: timedelta = timedelta(minutes=15)
) -> str:
    """
    Generate presigned PUT URL for uploading a file to MinIO.

    Raises:
        StorageError: If MinIO operation fails
    """
    client = get_minio_client()
    try:
        return client.presigned_put_object(
            bucket_name=bucket_name,
            object_name=object_key,
            expires=expires
        )
    except S3Error as e:
        raise StorageError(f'Failed to generate presigned PUT URL: {e}') from e


def generate_object_key(prefix: str, filename: str) -> str:
    """
    Generate unique object key for MinIO storage.

    Args:
        prefix: Folder prefix (e.g., 'records/REC-...')
        filename: Original filename
    """
    unique_id = uuid.uuid4().hex[:12]
    safe_filename = ''.join(c for c in filename if c.isalnum() or c in '._-')
    return f'{prefix}/{unique_id}_{safe_filename}'


def backup_key(patient_id, record_id, version_number) -> str:
    return f'patients/{patient_id}/records/{record_id}/v{version_number}.json'


def export_key(patient_id, timestamp) -> str:
    return f'exports/{patient_id}/complete-history-{timestamp}.json'


def put_json(bucket_name: str, object_key: str, data: dict, metadata: dict = None) -> dict:
    """
    Upload ``data`` as a JSON object.

    Returns:
        {'key', 'etag', 'version_id', 'size'}
    """
    body = json.dumps(data, cls=DjangoJSONEncoder, indent=2).encode('utf-8')
    client = get_minio_client()
    try:
        result = client.put_object(
            bucket_name,
            object_key,
            io.BytesIO(body),
            length=len(body),
            content_type='application/json',
            metadata=metadata or {},
        )
    except S3Error as e:
        raise StorageError(f'Failed to upload object to MinIO: {e}') from e
    return {
        'key': object_key,
        'etag': result.etag,
        'version_id': result.version_id,
        'size': len(body),
    }


def list_objects(bucket_name: str, prefix: str, limit: int = 100) -> list:
    """Objects under ``prefix`` (at most ``limit``)."""
    client = get_minio_client()
    objects = []
    try:
        for obj in client.list_objects(bucket_name, prefix=prefix, recursive=True):
            objects.append({
                'key': obj.object_name,
                'last_modified': obj.last_modified,
                'size': obj.size,
                'etag': obj.etag,
            })
            if len(objects) >= limit:
                break
    except S3Error as e:
        raise StorageError(f'Failed to list objects in MinIO: {e}') from e
    return objects

