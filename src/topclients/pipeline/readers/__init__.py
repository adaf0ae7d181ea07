from .stream import StreamLogReader
from .text import TextLogReader
