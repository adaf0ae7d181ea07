class TopClientsError(Exception):
    """Base class for errors raised by topclients."""


class MalformedRecordError(TopClientsError, ValueError):
    """A record has no usable client key. Dropped by the parser step, never fatal for a run."""


class PartitionFailure(TopClientsError):
    """A partition could not be fully counted. The whole run fails and nothing is written to the sink."""


class ShuffleRoutingViolation(TopClientsError, AssertionError):
    """Counts for one key reached more than one aggregation instance."""


class SinkWriteFailure(TopClientsError):
    """The result set could not be persisted."""


class SelectorStateError(TopClientsError, RuntimeError):
    """A TopNSelector was used after it was closed."""
