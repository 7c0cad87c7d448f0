"""화면 상태 컨트롤러 - export only."""

from .capture_session import CaptureSession, CaptureSessionMachine, CaptureState, ImageSource
from .paged_search import ListingSource, PagedSearchController, PageSlice, PageState
from .state_stream import StateStream

__all__ = [
    "CaptureSessionMachine",
    "CaptureSession",
    "CaptureState",
    "ImageSource",
    "PagedSearchController",
    "PageState",
    "PageSlice",
    "ListingSource",
    "StateStream",
]
