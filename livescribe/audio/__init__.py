"""Audio pipeline: capture, activity detection, segmentation and encoding."""
from .activity_monitor import VoiceActivityMonitor
from .capture import (
    CaptureConstraints,
    CaptureSource,
    CaptureStream,
    MicrophoneCaptureSource,
    PushCaptureSource,
)
from .encoder import (
    DEFAULT_MIME_TYPE,
    MIME_PREFERENCES,
    PydubEncoder,
    SegmentEncoder,
    WavEncoder,
    create_encoder,
    create_encoder_with_fallback,
    select_mime_type,
)
from .receiver import AudioReceiver
from .segment_recorder import SegmentRecorder, TimerFired, TimerKind
from .timers import LoopScheduler, Scheduler, TimerSet
from .types import ActivityEvent, ActivityKind, ActivityScore, RecorderState, Segment
from .vad import FrameEnergyAnalyzer, load_detector

__all__ = [
    "ActivityEvent",
    "ActivityKind",
    "ActivityScore",
    "AudioReceiver",
    "CaptureConstraints",
    "CaptureSource",
    "CaptureStream",
    "DEFAULT_MIME_TYPE",
    "FrameEnergyAnalyzer",
    "LoopScheduler",
    "MIME_PREFERENCES",
    "MicrophoneCaptureSource",
    "PushCaptureSource",
    "PydubEncoder",
    "RecorderState",
    "Scheduler",
    "Segment",
    "SegmentEncoder",
    "SegmentRecorder",
    "TimerFired",
    "TimerKind",
    "TimerSet",
    "VoiceActivityMonitor",
    "WavEncoder",
    "create_encoder",
    "create_encoder_with_fallback",
    "load_detector",
    "select_mime_type",
]
