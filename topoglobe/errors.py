"""Exception hierarchy shared by the projection, decoding and loading code."""


class GlobeError(Exception):
    """Base class for every error raised by topoglobe"""


class ValidationError(GlobeError, ValueError):
    """Input rejected before any work was done"""


class CoordinateError(ValidationError):
    """Longitude or latitude outside of its valid range"""


class TopologyError(ValidationError):
    """Structurally malformed topology document"""


class LoadError(GlobeError):
    """Base class for asset loading failures"""


class TransientLoadError(LoadError):
    """Network or fetch failure, worth retrying"""


class DecodeError(LoadError):
    """Asset bytes could not be decoded, retrying will not help"""


class LoadCancelled(LoadError):
    """Load abandoned because its consumer was torn down"""
