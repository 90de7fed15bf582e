"""Audit pipeline: coordinator and progress streaming."""

from .streaming import FrameStream, encode_frame, error_message, run_section
from .coordinator import AuditContext, AuditPipeline, PipelineState, image_mime_type

__all__ = [
    'FrameStream',
    'encode_frame',
    'error_message',
    'run_section',
    'AuditContext',
    'AuditPipeline',
    'PipelineState',
    'image_mime_type',
]
