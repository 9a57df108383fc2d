"""vodstream: upload-to-HLS ingestion and streaming service.

Accepts an uploaded MP4, transcodes it into an HLS manifest plus
fixed-duration segments, and serves the result over HTTP.

Modules:
    - core: Configuration, logging, metrics, tracing, middleware
    - modules.media: Upload validation, asset identity, media store,
      upload handler and streaming responder
    - modules.transcoding: Transcode engine interface, ffmpeg engine and
      the job orchestrator
"""

__version__ = "0.1.0"
