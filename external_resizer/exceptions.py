class ResizerError(Exception):
    """Base exception for external resizer errors."""


class ResizerKubernetesError(ResizerError):
    """Error interacting with Kubernetes"""


class ResizerConflictError(ResizerKubernetesError):
    """The object was modified concurrently and the precondition failed"""


class ResizerNotFoundError(ResizerKubernetesError):
    """The object no longer exists"""


class ResizerBackendError(ResizerError):
    """The backend failed to expand the volume"""


class ResizerConfigurationError(ResizerError):
    """Invalid or missing process configuration"""


class ResizerCacheSyncError(ResizerError):
    """Object caches did not sync before shutdown was requested"""


class ResizerLeadershipLostError(ResizerError):
    """This instance stopped being the leader"""
