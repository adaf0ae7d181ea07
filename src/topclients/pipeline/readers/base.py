from abc import abstractmethod

from tqdm import tqdm

from topclients.data import LogRecord, RecordsPipeline
from topclients.io import DataFolderLike, get_datafolder
from topclients.pipeline.base import PipelineStep
from topclients.utils.logging import logger


class BaseDiskReader(PipelineStep):
    """Base module for fsspec based Readers. Readers read raw log records from a source (local or remote) and are
        usually the first step of the counting stage. Files are sharded across tasks, so each file is one
        partition's worth of input for exactly one rank.

    Args:
        data_folder: a str, tuple or DataFolder object representing a path/filesystem
        compression: the compression of the input files (default: "infer", guessed from the extension)
        limit: limit the number of records to read. Useful for debugging
        file_progress: show progress bar for files
        default_metadata: a dictionary with any data that should be added to all records' metadata
        recursive: whether to search files recursively
        glob_pattern: pattern that all files must match exactly to be included (relative to data_folder)
    """

    type = "📖 - READER"

    def __init__(
        self,
        data_folder: DataFolderLike,
        compression: str | None = "infer",
        limit: int = -1,
        file_progress: bool = False,
        default_metadata: dict = None,
        recursive: bool = True,
        glob_pattern: str | None = None,
    ):
        super().__init__()
        self.data_folder = get_datafolder(data_folder)
        self.compression = compression
        self.limit = limit
        self.file_progress = file_progress
        self.default_metadata = default_metadata
        self.recursive = recursive
        self.glob_pattern = glob_pattern

    def new_record(self, text: str, source_file: str, id_in_file: int, **metadata) -> LogRecord:
        record = LogRecord(text=text, id=f"{source_file}/{id_in_file}", metadata=metadata)
        record.metadata.setdefault("file_path", self.data_folder.resolve_paths(source_file))
        if self.default_metadata:
            record.metadata = self.default_metadata | record.metadata
        return record

    @abstractmethod
    def read_file(self, filepath: str) -> RecordsPipeline:
        """
        Subclasses only need to implement this method. Should open the filepath given and yield one LogRecord per
        raw record in the file.
        Args:
            filepath: path of the file to read

        Returns: generator of LogRecord

        """
        raise NotImplementedError

    def read_files_shard(self, shard: list[str]) -> RecordsPipeline:
        read = 0
        with tqdm(total=len(shard), desc="File progress", unit="file", disable=not self.file_progress) as file_pbar:
            for i, filepath in enumerate(shard):
                self.stat_update("input_files")
                logger.info(f"Reading input file {filepath}, {i + 1}/{len(shard)}")
                nrecords = 0
                for record in self.read_file(filepath):
                    if self.limit != -1 and read >= self.limit:
                        break
                    yield record
                    read += 1
                    nrecords += 1
                file_pbar.update()
                self.stat_update("records", value=nrecords, unit="input_file")
                if self.limit != -1 and read >= self.limit:
                    break

    def run(self, data: RecordsPipeline = None, rank: int = 0, world_size: int = 1) -> RecordsPipeline:
        """
        Will get this rank's shard and sequentially read each file in the shard, yielding LogRecord.
        """
        if data:
            yield from data
        files_shard = self.data_folder.get_shard(
            rank, world_size, recursive=self.recursive, glob_pattern=self.glob_pattern
        )
        if len(files_shard) == 0:
            logger.warning(f"No files found on {self.data_folder.path} for {rank=}")
        yield from self.read_files_shard(files_shard)
