"""Error taxonomy shared by the CAD side, the viewer side and the wire format.

Every error carries a stable ``code`` (its class name) so that an error raised
on one side of the bridge can be rebuilt on the other from an
``{"error": ..., "code": ...}`` response.
"""

from typing import Optional


class McAtlasError(RuntimeError):
    """Base class for all synchronization errors."""

    fatal = True

    @property
    def code(self) -> str:
        return type(self).__name__


class AnchorNotSet(McAtlasError):
    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message or "No earth anchor is set for this document. "
                       "Set an earth anchor before syncing."
        )


class NoSourceGeometry(McAtlasError):
    pass


class ExportFailed(McAtlasError):
    pass


class TransportUnavailable(McAtlasError):
    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message or "Could not connect to the CAD application. "
                       "Make sure it is running with the McAtlas bridge loaded."
        )


class InvalidPayload(McAtlasError):
    pass


class ImagerySourceUnavailable(McAtlasError):
    pass


class SyncSuperseded(McAtlasError):
    """A cycle was discarded because a newer sync request arrived."""


class SyncRejected(McAtlasError):
    """A sync request was refused because another cycle is in flight."""


# Absorbed locally with a log entry; never abort a cycle.

class TerrainUnavailable(McAtlasError):
    fatal = False


class TileFetchFailed(McAtlasError):
    fatal = False


class DegenerateCurve(McAtlasError):
    fatal = False


_BY_CODE = {
    cls.__name__: cls
    for cls in (
        McAtlasError,
        AnchorNotSet,
        NoSourceGeometry,
        ExportFailed,
        TransportUnavailable,
        InvalidPayload,
        ImagerySourceUnavailable,
        SyncSuperseded,
        SyncRejected,
        TerrainUnavailable,
        TileFetchFailed,
        DegenerateCurve,
    )
}


def error_from_code(code: Optional[str], message: str) -> McAtlasError:
    """Rebuild an error from its wire code; unknown codes give McAtlasError."""
    cls = _BY_CODE.get(code or "", McAtlasError)
    return cls(message)
