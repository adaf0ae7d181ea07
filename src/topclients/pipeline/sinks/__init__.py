from .base import RESULT_KEY, InMemoryResultSink, ResultSink, Snapshot
from .folder import FolderResultSink
