"""Failure taxonomy shared by rate sources, the event builder and the publisher."""


class RatePublisherError(Exception):
    """Base error carrying a short kind used in structured log context."""

    kind = "error"


class ConfigError(RatePublisherError):
    """Startup configuration is missing or unusable. Fatal."""

    kind = "config_error"


class FetchError(RatePublisherError):
    """Upstream rate API could not be reached or returned an unusable body."""

    kind = "fetch_error"


class BuildError(RatePublisherError):
    """Snapshot does not carry what the feed declares."""

    kind = "build_error"


class PublishError(RatePublisherError):
    kind = "publish_error"


class PublishTimeout(PublishError):
    """Relay did not acknowledge within the publish timeout."""

    kind = "publish_timeout"


class TransportError(PublishError):
    """Signing or relay send-layer failure."""

    kind = "transport_error"
