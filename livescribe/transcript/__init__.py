"""Session transcript: append-only aggregation and optional file persistence."""
from .aggregator import TranscriptAggregator, TranscriptEntry, UnstructuredBlock, entry_to_dict
from .writer import NoOpTranscriptWriter, TranscriptWriter, TranscriptWriterBase, create_transcript_writer

__all__ = [
    "NoOpTranscriptWriter",
    "TranscriptAggregator",
    "TranscriptEntry",
    "TranscriptWriter",
    "TranscriptWriterBase",
    "UnstructuredBlock",
    "create_transcript_writer",
    "entry_to_dict",
]
