class DvmReviewError(Exception):
    """Base class for all dvmreview errors."""


class CapabilityError(DvmReviewError):
    """A signer, wallet or transport capability is absent or cannot be loaded."""


class MalformedEventError(DvmReviewError):
    """A relay delivered something that is not a structurally valid event."""


class DiffError(DvmReviewError):
    """The local diff could not be acquired."""
