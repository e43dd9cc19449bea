"""
Ordering callbacks: the host-side hooks the dispatcher drives.

Usage:
    from voice_ordering.services.ordering import RecordingOrderingCallbacks

    service = create_voice_service(callbacks=MyHostCallbacks())
"""

from voice_ordering.services.ordering.base import BaseOrderingCallbacks
from voice_ordering.services.ordering.mock import CallbackCall, RecordingOrderingCallbacks

__all__ = [
    "BaseOrderingCallbacks",
    "CallbackCall",
    "RecordingOrderingCallbacks",
]
