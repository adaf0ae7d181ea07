import json
from json import JSONDecodeError

from topclients.data import TimeWindow
from topclients.io import DataFolderLike
from topclients.pipeline.readers.base import BaseDiskReader
from topclients.utils.logging import logger


class StreamLogReader(BaseDiskReader):
    """Read timestamped log events from JSONL stream dumps and keep the ones inside a time window.
        Each line is an event such as `{"timestamp": 1700000000000, "body": "1.2.3.4 - - [...] \\"GET / HTTP/1.1\\""}`
        with the timestamp in epoch milliseconds.

    Args:
        data_folder: the data folder to read from
        window: only events with `window.start <= timestamp < window.end` are read. None reads everything
        body_key: key holding the raw log line (default: "body")
        timestamp_key: key holding the event time in epoch ms (default: "timestamp")
        compression: the compression to use (default: "infer")
        limit: limit the number of records to read
        file_progress: show progress bar for files
        default_metadata: default metadata to add to all records
        recursive: if True, will read files recursively in subfolders (default: True)
        glob_pattern: a glob pattern to filter files to read (default: None)
    """

    name = "🌊 Stream"

    def __init__(
        self,
        data_folder: DataFolderLike,
        window: TimeWindow | None = None,
        body_key: str = "body",
        timestamp_key: str = "timestamp",
        compression: str | None = "infer",
        limit: int = -1,
        file_progress: bool = False,
        default_metadata: dict = None,
        recursive: bool = True,
        glob_pattern: str | None = None,
    ):
        super().__init__(data_folder, compression, limit, file_progress, default_metadata, recursive, glob_pattern)
        self.window = window
        self.body_key = body_key
        self.timestamp_key = timestamp_key

    def read_file(self, filepath: str):
        with self.data_folder.open(filepath, "rb", compression=self.compression) as f:
            for li, line in enumerate(f):
                if not line.strip():
                    continue
                try:
                    event = json.loads(line)
                    timestamp = int(event[self.timestamp_key])
                except (JSONDecodeError, KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Error when reading `{filepath}` line {li}: {e}")
                    self.stat_update("invalid_events")
                    continue
                body = event.get(self.body_key) or ""
                if not isinstance(body, str):
                    logger.warning(f"Error when reading `{filepath}` line {li}: {self.body_key!r} is not a string")
                    self.stat_update("invalid_events")
                    continue
                if self.window is not None and timestamp not in self.window:
                    self.stat_update("out_of_window")
                    continue
                yield self.new_record(body, filepath, li, timestamp=timestamp)
