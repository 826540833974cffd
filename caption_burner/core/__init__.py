"""Core caption data structures and timing derivation.

WHY: The core package holds the stable heart of the tool — the caption
IR and the transcript segmenter. Both are consumed by the compiler, the
export jobs, the CLI, and the HTTP API.

HOW: ir.py defines CaptionSegment and SegmentOptions; segmenter.py turns
raw transcript text into timed segments.

RULES:
- IR dataclasses are the contract — change with care
- Nothing in core imports from formatters, engine, export, or server
"""
