"""
Constants shared across the workflow execution runtime.
"""

from config import DEFAULT_LLM_MODEL


class Handle:
    """
    Well-known handle names.

    Shared between the validator, the resolver and the editing session so
    all of them agree on the defaults of an edge that omits its handles.
    """

    OUTPUT = "output"
    INPUT = "input"
    # Multi-valued: every edge into it appends instead of overwriting
    IMAGES = "images"


# Node types whose output is read straight from their own data field
PASSTHROUGH_FIELDS = {
    'textNode': 'text',
    'imageUploadNode': 'image_url',
    'videoUploadNode': 'video_url',
}

CROP_DEFAULTS = {
    'x_percent': 0,
    'y_percent': 0,
    'width_percent': 100,
    'height_percent': 100,
}

DEFAULT_FRAME_TIMESTAMP = "0"

__all__ = ['Handle', 'PASSTHROUGH_FIELDS', 'CROP_DEFAULTS', 'DEFAULT_FRAME_TIMESTAMP', 'DEFAULT_LLM_MODEL']
