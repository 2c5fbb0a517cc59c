import os
import random
import re
import time

import boto3
from botocore.client import Config
from flask import current_app
from werkzeug.utils import secure_filename

# audio/mp3, audio/mpeg, audio/wav, audio/x-wav, audio/wave, audio/m4a, audio/x-m4a,
# audio/aac, audio/ogg, audio/webm, audio/mp4 (parameters such as ;codecs=opus allowed)
AUDIO_MIME = re.compile(r"^audio/(x-)?(mp3|mpeg|wav|wave|m4a|aac|ogg|webm|mp4)(;.*)?$", re.IGNORECASE)


def is_allowed_audio(mimetype) -> bool:
    return bool(mimetype) and AUDIO_MIME.match(mimetype.strip()) is not None


def _ensure_local_dir():
    d = current_app.config['LOCAL_STORAGE_DIR']
    os.makedirs(d, exist_ok=True)
    return d


def _s3_client():
    # endpoint_url may be empty for AWS-managed S3
    s3_kwargs = {}
    endpoint = current_app.config.get('S3_ENDPOINT')
    if endpoint:
        s3_kwargs['endpoint_url'] = endpoint
    region = current_app.config.get('S3_REGION')
    if region:
        s3_kwargs['region_name'] = region
    return boto3.client(
        's3',
        aws_access_key_id=current_app.config.get('S3_ACCESS_KEY'),
        aws_secret_access_key=current_app.config.get('S3_SECRET_KEY'),
        config=Config(signature_version='s3v4', s3={'addressing_style': 'virtual'}),
        **s3_kwargs,
    )


def unique_name(original_filename):
    ext = os.path.splitext(secure_filename(original_filename or ''))[1].lower()
    return f"recording-{int(time.time() * 1000)}-{random.randint(0, 10**9)}{ext}"


def save_audio(file_storage, prefix=""):
    """Persist an uploaded audio file and return its artifact reference."""
    backend = current_app.config.get('STORAGE_BACKEND', 'local')
    filename = unique_name(file_storage.filename)
    key = f"{prefix}/{filename}" if prefix else filename

    if backend == 's3':
        bucket = current_app.config.get('S3_BUCKET')
        stream = getattr(file_storage, 'stream', file_storage)
        _s3_client().upload_fileobj(stream, bucket, key)
        return f"s3://{bucket}/{key}"

    d = _ensure_local_dir()
    path = os.path.join(d, key)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    file_storage.save(path)
    return f"file://{os.path.abspath(path)}"


def download_bytes(url: str) -> bytes:
    if url.startswith('s3://'):
        bucket, key = url.replace('s3://', '', 1).split('/', 1)
        obj = _s3_client().get_object(Bucket=bucket, Key=key)
        return obj['Body'].read()
    elif url.startswith('file://'):
        path = url.replace('file://', '', 1)
        with open(path, 'rb') as f:
            return f.read()
    else:
        raise ValueError(f"Unsupported artifact URL scheme: {url!r}")


def filename_of(url: str) -> str:
    return url.rstrip('/').rsplit('/', 1)[-1]
