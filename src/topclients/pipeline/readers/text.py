from topclients.io import DataFolderLike
from topclients.pipeline.readers.base import BaseDiskReader
from topclients.utils.logging import logger


class TextLogReader(BaseDiskReader):
    """Read plain text access logs, one record per line. Trailing newlines are stripped, everything else is kept
    as is so the key extractor sees the raw line. Lines are decoded one by one: a line that is not valid text is
    dropped (and counted in the "invalid_lines" stat) without losing the rest of the file.

    Args:
        data_folder: the data folder to read from
        compression: the compression to use (default: "infer")
        limit: limit the number of lines to read
        file_progress: show progress bar for files
        default_metadata: default metadata to add to all records
        recursive: if True, will read files recursively in subfolders (default: True)
        glob_pattern: a glob pattern to filter files to read (default: None)
        encoding: text encoding of the log files (default: "utf-8")
    """

    name = "📜 Text log"

    def __init__(
        self,
        data_folder: DataFolderLike,
        compression: str | None = "infer",
        limit: int = -1,
        file_progress: bool = False,
        default_metadata: dict = None,
        recursive: bool = True,
        glob_pattern: str | None = None,
        encoding: str = "utf-8",
    ):
        super().__init__(data_folder, compression, limit, file_progress, default_metadata, recursive, glob_pattern)
        self.encoding = encoding

    def read_file(self, filepath: str):
        with self.data_folder.open(filepath, "rb", compression=self.compression) as f:
            for li, raw_line in enumerate(f):
                try:
                    line = raw_line.decode(self.encoding)
                except UnicodeDecodeError as e:
                    logger.warning(f"Dropping line {li} of `{filepath}`: raised UnicodeDecodeError ({e})")
                    self.stat_update("invalid_lines")
                    continue
                yield self.new_record(line.rstrip("\r\n"), filepath, li)
