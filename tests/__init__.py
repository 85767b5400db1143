"""
Test package for adaptive_encoder.

No real ffmpeg/ffprobe is needed: the prober, encoder process, frame
extractor and crop sampler are replaced by fakes.
"""
