"""S3-backed object store.

Backups are stored one gzipped object per captured file, so a listing of
the keyspace prefix is the whole catalogue (see prium.snapshot.keys for the
layout). Uploads go through boto3's managed transfer, which reads the gzip
stream in parts and never holds a whole file in memory.

Credentials come from the usual boto3 chain; `prium auth` stores them in
~/.prium/credentials and they are exported into the environment at startup.
"""

from contextlib import contextmanager

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from prium.snapshot.base import ObjectStore


class S3ObjectStore(ObjectStore):

    def __init__(self, bucket, region=None, endpoint_url=None, client=None):
        if client is None:
            kwargs = {}
            if region:
                kwargs["region_name"] = region
            if endpoint_url:
                kwargs["endpoint_url"] = endpoint_url
            client = boto3.client("s3", **kwargs)
        self._s3 = client
        self.bucket = bucket

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def list_keys(self, prefix):
        paginator = self._s3.get_paginator("list_objects_v2")
        keys = []
        try:
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    keys.append(obj["Key"])
        except ClientError as e:
            raise self._translate(e) from e
        return keys

    def put_object(self, key, stream):
        try:
            self._s3.upload_fileobj(stream, self.bucket, key)
        except ClientError as e:
            raise self._translate(e) from e
        except BotoCoreError as e:
            raise RuntimeError(f"Upload of {key} to S3 failed: {e}") from e

    @contextmanager
    def get_object(self, key):
        try:
            response = self._s3.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            raise self._translate(e, key) from e
        body = response["Body"]
        try:
            yield body
        finally:
            body.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _translate(self, error, key=None):
        """Turn the common S3 error codes into readable messages."""
        code = (getattr(error, "response", None) or {}).get("Error", {}).get("Code", "")
        if code == "NoSuchBucket":
            return RuntimeError(
                f"S3 bucket '{self.bucket}' does not exist. "
                "Create it first or set aws_bucket in your config."
            )
        if code in ("NoSuchKey", "404") and key:
            return KeyError(f"Key {key} not found in s3://{self.bucket}")
        if code in ("AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch"):
            return RuntimeError(
                f"Access to s3://{self.bucket} denied ({code}). "
                "Check credentials with 'prium auth'."
            )
        return RuntimeError(f"S3 request failed: {error}")
