import shutil
from contextlib import contextmanager
from pathlib import Path

from prium.snapshot.base import ObjectStore

LOCAL_STORE_DIR = Path.home() / ".prium" / "store"

# Suffix of objects still being written. Never listed.
PARTIAL_SUFFIX = ".part"


class LocalObjectStore(ObjectStore):
    """Object store kept in a directory tree. Keys map to paths under root.

    Keys are always reported with a leading slash, matching the layout
    written by the key codec.
    """

    def __init__(self, root=None):
        self.root = Path(root) if root else LOCAL_STORE_DIR

    def _path(self, key):
        rel = key.lstrip("/")
        if not rel:
            raise ValueError("empty key")
        path = (self.root / rel).resolve()
        if not str(path).startswith(str(self.root.resolve()) + "/"):
            raise ValueError(f"Unsafe key: {key!r}")
        return path

    def list_keys(self, prefix):
        if not self.root.exists():
            return []
        prefix = "/" + prefix.lstrip("/")
        keys = []
        for f in sorted(self.root.rglob("*")):
            if not f.is_file() or f.name.endswith(PARTIAL_SUFFIX):
                continue
            key = "/" + f.relative_to(self.root).as_posix()
            if key.startswith(prefix):
                keys.append(key)
        return keys

    def put_object(self, key, stream):
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + PARTIAL_SUFFIX)
        try:
            with open(tmp, "wb") as f:
                shutil.copyfileobj(stream, f)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
        tmp.replace(path)

    @contextmanager
    def get_object(self, key):
        path = self._path(key)
        if not path.exists():
            raise KeyError(f"Key {key} not found in {self.root}")
        with open(path, "rb") as f:
            yield f
