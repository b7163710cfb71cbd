from prium.snapshot.local import LocalObjectStore


def create_object_store(config=None):
    """Create an object store from config.

    Config keys:
        object_store: "s3" (default) or "local"
        aws_bucket: required when object_store is "s3"
        local_store_path: root directory for the "local" backend
    """
    config = config or {}
    backend = config.get("object_store", "s3")

    if backend == "s3":
        from prium.snapshot.s3 import S3ObjectStore
        bucket = config.get("aws_bucket")
        if not bucket:
            raise ValueError(
                "aws_bucket is required when object_store is 's3'. "
                "Add it to your config: {\"aws_bucket\": \"my-backups\"}"
            )
        return S3ObjectStore(
            bucket,
            region=config.get("aws_region"),
            endpoint_url=config.get("aws_endpoint_url"),
        )

    if backend == "local":
        return LocalObjectStore(config.get("local_store_path"))

    raise ValueError(f"Unknown object store: {backend!r}. Use 's3' or 'local'.")

