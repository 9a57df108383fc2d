"""Transcoding module for HLS packaging.

Drives an external engine (ffmpeg by default) that turns one staged upload
into an HLS manifest plus numbered segments, and tracks the job's progress
and completion.
"""
