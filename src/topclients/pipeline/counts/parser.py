from topclients.data import KeyCount, KeyCountsPipeline, RecordsPipeline
from topclients.errors import MalformedRecordError
from topclients.pipeline.base import PipelineStep
from topclients.utils.logging import logger
from topclients.utils.typeshelper import StatHints


KEY_DELIMITER = " "


def extract_client_ip(text: str) -> str:
    """
    Client IP of a raw access log line: everything before the first space.

    Args:
        text: the raw log line

    Returns: the client key

    Raises:
        MalformedRecordError: the record is not text, is empty, has no space or starts with one
    """
    if not isinstance(text, str):
        raise MalformedRecordError(f"expected a text line, got {type(text).__name__}")
    if not text:
        raise MalformedRecordError("empty record")
    key, delimiter, _ = text.partition(KEY_DELIMITER)
    if not delimiter:
        raise MalformedRecordError(f"no {KEY_DELIMITER!r} delimiter after the client key")
    if not key:
        raise MalformedRecordError("record starts with the delimiter")
    return key


class ClientIPExtractor(PipelineStep):
    """Map step: turns each LogRecord into a `KeyCount(client_ip, 1)`.
    Malformed records are dropped (and counted in the "dropped" stat), they never fail the task.
    """

    type = "🔑 - KEYS"
    name = "🌐 Client IP"

    def run(self, data: RecordsPipeline, rank: int = 0, world_size: int = 1) -> KeyCountsPipeline:
        for record in data:
            self.stat_update(StatHints.total)
            with self.track_time():
                try:
                    key = extract_client_ip(record.text)
                except MalformedRecordError as e:
                    logger.debug(f"Dropping record {record.id}: {e}")
                    self.stat_update(StatHints.dropped)
                    continue
            self.stat_update(StatHints.forwarded)
            yield KeyCount(key, 1)
