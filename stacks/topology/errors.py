"""Errors raised while assembling a stage topology.

All of them are raised at synthesis time, before or instead of emitting a
template. Nothing here is retried: a raised error aborts the whole stage.
"""


class TopologyError(Exception):
    """Base class for stage topology assembly failures."""


class ConfigurationError(TopologyError, ValueError):
    """Stage parameters are invalid (capacity bounds, domain, zone, CIDR...)."""


class AvailabilityError(TopologyError):
    """The target region does not offer enough availability zones."""


class AttachmentError(TopologyError):
    """A resource references a dependency that is unknown or not built yet."""
