import shutil
from abc import ABC, abstractmethod
from pathlib import Path

from prium.snapshot.compress import GzipStream, gunzip_stream


class ObjectStore(ABC):
    """Base interface for object store backends.

    Implementations: S3ObjectStore, LocalObjectStore.
    """

    @abstractmethod
    def list_keys(self, prefix):
        """Every key starting with prefix. Pagination is handled here, not by callers."""
        pass

    @abstractmethod
    def put_object(self, key, stream):
        """Store everything readable from stream under key."""
        pass

    @abstractmethod
    def get_object(self, key):
        """Context manager yielding a readable byte stream for key."""
        pass

    def upload_compressed(self, key, stream):
        """Gzip stream on the fly while storing it."""
        self.put_object(key, GzipStream(stream))

    def download_decompressed(self, key, dest):
        """Fetch key, gunzip it and write it to dest. Returns dest as a Path."""
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        with self.get_object(key) as body, open(dest, "wb") as f:
            shutil.copyfileobj(gunzip_stream(body), f)
        return dest
