"""Audio processing: PCM16 codec, spectrum and VAD, capture and playback pipelines."""
