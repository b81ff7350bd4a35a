"""Exceptions raised across the coordinator and the worker."""


class HotrunError(Exception):
    """Base class for every hotrun error."""


class ChannelAllocationError(HotrunError):
    """The Source Bridge channel could not be created. Fatal to the coordinator."""


class WorkerSpawnError(HotrunError):
    """The worker process could not be started or never opened its channel. Fatal."""


class ChannelClosed(HotrunError):
    """The Source Bridge channel closed in the middle of a frame."""


class TransformerLoadError(HotrunError):
    """The configured transformer import string could not be resolved."""
