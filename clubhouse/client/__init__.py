from .api import ClubhouseAPIError, ClubhouseClient
from .presenter import MeetingRoomPresenter, Notification
from .voice import DEFAULT_AUDIO_CONSTRAINTS, VoiceCapture, VoiceCaptureError

__all__ = [
    "ClubhouseAPIError",
    "ClubhouseClient",
    "MeetingRoomPresenter",
    "Notification",
    "DEFAULT_AUDIO_CONSTRAINTS",
    "VoiceCapture",
    "VoiceCaptureError",
]
