from topclients.io import DataFolderLike, get_datafolder
from topclients.pipeline.sinks.base import ResultSink, Snapshot
from topclients.utils.typeshelper import ExtensionHelperTC


class FolderResultSink(ResultSink):
    """Stores each key as `{key}.json` in a DataFolder (local or remote). Writes go through a temporary file.

    Args:
        folder: a str, tuple or DataFolder where snapshots are stored
    """

    def __init__(self, folder: DataFolderLike):
        self.folder = get_datafolder(folder)

    def _path(self, key: str) -> str:
        return f"{key}{ExtensionHelperTC.snapshot}"

    def _put(self, key: str, snapshot: Snapshot):
        self.folder.write_atomically(self._path(key), snapshot.to_json())

    def read(self, key: str) -> Snapshot | None:
        if not self.folder.isfile(self._path(key)):
            return None
        with self.folder.open(self._path(key), "rt") as f:
            return Snapshot.from_json(f.read())

    def __repr__(self):
        return f"FolderResultSink({self.folder.path})"
