"""Live speech segmentation, transcription and heuristic speaker labelling."""
