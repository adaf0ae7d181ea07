from glob import has_magic
from typing import TypeAlias

from fsspec import AbstractFileSystem
from fsspec.core import url_to_fs
from fsspec.implementations.dirfs import DirFileSystem
from fsspec.implementations.local import LocalFileSystem


class DataFolder(DirFileSystem):
    """A thin wrapper around fsspec's DirFileSystem: all file operations are relative to `path`, which can be local
        or any fsspec url (s3://, gs://, memory://...). Also handles sharding files across tasks.

    Args:
        path: the path to the folder (local or remote)
        fs: the filesystem to use (see fsspec for more details)
        auto_mkdir: whether to automatically create the parent directories when opening a file in write mode
        **storage_options: additional options to pass to the filesystem. Ignored if fs is given
    """

    def __init__(
        self,
        path: str,
        fs: AbstractFileSystem | None = None,
        auto_mkdir: bool = True,
        **storage_options,
    ):
        super().__init__(path=path, fs=fs if fs else url_to_fs(path, **storage_options)[0])
        self.auto_mkdir = auto_mkdir

    def list_files(self, subdirectory: str = "", recursive: bool = True, glob_pattern: str | None = None) -> list[str]:
        """
        Sorted list of the files in this folder (or in `subdirectory`), relative to `self.path`. A `glob_pattern`
        without any magic characters is treated as an extension, so "log" matches "*log".

        Args:
          subdirectory: str:  (Default value = "")
          recursive: bool:  (Default value = True)
          glob_pattern: str | None:  (Default value = None)

        Returns: a list of file paths, relative to `self.path`

        """
        if glob_pattern and not has_magic(glob_pattern):
            glob_pattern = f"*{glob_pattern}"
        maxdepth = None if recursive else 1
        found = (
            self.glob(
                self.fs.sep.join([subdirectory, glob_pattern]) if subdirectory else glob_pattern,
                maxdepth=maxdepth,
                detail=True,
            )
            if glob_pattern
            else self.find(subdirectory, maxdepth=maxdepth, detail=True)
        )
        return sorted(f for f, info in found.items() if info["type"] != "directory")

    def get_shard(self, rank: int, world_size: int, **kwargs) -> list[str]:
        """Files [rank, rank+world_size, rank+2*world_size, ...] of `list_files(**kwargs)`. Deterministic, so no two
        ranks ever share a file.

        Args:
          rank: int: rank of the shard to fetch
          world_size: int: total number of shards
          **kwargs: passed to list_files

        Returns: a list of file paths
        """
        return self.list_files(**kwargs)[rank::world_size]

    def resolve_paths(self, paths) -> list[str] | str:
        """
            Transform relative paths into complete paths (including fs protocol and base path)
        """
        if isinstance(paths, str):
            if isinstance(self.fs, LocalFileSystem):
                return self.fs._strip_protocol(self._join(paths))
            return self.fs.unstrip_protocol(self._join(paths))
        return list(map(self.resolve_paths, paths))

    def open(self, path, mode="rb", *args, **kwargs):
        """Open a file locally or remote, creating its parent directories first when writing and `auto_mkdir` is set.

        Args:
            path: the path to the file
            mode: the mode to open the file with (Default value = "rb")
            *args: additional arguments to pass to the open
            **kwargs: additional arguments to pass to the open (`compression`, `block_size`...)
        """
        if self.auto_mkdir and ("w" in mode or "a" in mode):
            self.fs.makedirs(self.fs._parent(self._join(path)), exist_ok=True)
        return super().open(path, mode=mode, *args, **kwargs)

    def write_atomically(self, path: str, data: str):
        """Write `data` to `path` through a temporary sibling file, so `path` either holds the full content or
        its previous state.

        Args:
            path: destination path, relative to this folder
            data: text to write
        """
        tmp_path = f"{path}.tmp"
        with self.open(tmp_path, "wt") as f:
            f.write(data)
        self.mv(tmp_path, path)


def get_datafolder(data: DataFolder | str | tuple[str, dict] | tuple[str, AbstractFileSystem]) -> DataFolder:
    """
    `DataFolder` factory.
    Possible input combinations:
    - `str`: a single path or url. Example: `/var/log/access`, `s3://mybucket/logs`
    - `(str, fsspec filesystem instance)`: a string path and a fully initialized filesystem object
    - `(str, dict)`: a string path and a dictionary with options to initialize a fs
    - `DataFolder`: returned as is

    Returns: `DataFolder` instance
    """
    if isinstance(data, DataFolder):
        return data
    if isinstance(data, str):
        return DataFolder(data)
    if isinstance(data, tuple) and isinstance(data[0], str) and isinstance(data[1], dict):
        return DataFolder(data[0], **data[1])
    if isinstance(data, tuple) and isinstance(data[0], str) and isinstance(data[1], AbstractFileSystem):
        return DataFolder(data[0], fs=data[1])
    raise ValueError(
        "You must pass a DataFolder instance, a str path, a (str path, fs_init_kwargs) or (str path, fs object)"
    )


DataFolderLike: TypeAlias = str | tuple[str, dict] | DataFolder
