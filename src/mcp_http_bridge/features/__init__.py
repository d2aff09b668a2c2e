"""
Features sans I/O du bridge.
"""

from .framing import FrameDecoder, iter_frames, is_candidate_frame

__all__ = [
    "FrameDecoder",
    "iter_frames",
    "is_candidate_frame",
]
