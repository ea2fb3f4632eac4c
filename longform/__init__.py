"""
Longform Render Worker

Turns declarative longform video requests (background images/videos plus a
sequence of audio tracks) into a single MP4 with ffmpeg:

- Spec validation (pydantic)
- Duration / canvas planning and ffmpeg filter graph compilation
- A polling worker that claims jobs from the job store, encodes, uploads
  the result to S3-compatible storage and records the outcome
"""

__version__ = "0.1.0"
