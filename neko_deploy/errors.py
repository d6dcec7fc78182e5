"""Error taxonomy for neko_deploy.

Every failure the tool can surface derives from NekoDeployError so the CLI
can catch one type and still print a specific message.
"""

from typing import Optional


class NekoDeployError(Exception):
    """Base class for all neko_deploy errors."""


class ConfigError(NekoDeployError):
    """A required setting is missing or invalid. Nothing was transferred."""


class ChunkPlanError(NekoDeployError, ValueError):
    """The chunk planner was given input it cannot plan."""


class ArtifactError(NekoDeployError):
    """Archive creation or local artifact I/O failed."""


class TransferCancelled(NekoDeployError):
    """The caller abandoned the transfer between two steps."""


# ---------------------------------------------------------------------------
# Remote errors
# ---------------------------------------------------------------------------

class RemoteError(NekoDeployError):
    """A call to the hosting API did not succeed."""

    def __init__(
        self,
        operation: str,
        message: str,
        status_code: Optional[int] = None,
    ) -> None:
        self.operation = operation
        self.status_code = status_code
        detail = f"{operation} failed"
        if status_code is not None:
            detail += f" (HTTP {status_code})"
        super().__init__(f"{detail}: {message}")


class TransportError(RemoteError):
    """Network-level failure: connection refused, timeout, reset."""


class LimitsQueryError(RemoteError):
    pass


class SessionCreateError(RemoteError):
    pass


class ChunkAppendError(RemoteError):
    def __init__(
        self,
        index: int,
        message: str,
        status_code: Optional[int] = None,
    ) -> None:
        self.index = index
        super().__init__(f"append chunk {index}", message, status_code)


class FinalizeError(RemoteError):
    pass
