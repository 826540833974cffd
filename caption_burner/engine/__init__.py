"""Adapters for the external media engine (ffprobe / ffmpeg subprocesses)."""
