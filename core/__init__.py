"""
Core module for the YouTube Transcript Pipeline

Infrastructure and external collaborators used by the pipeline stages:
persistence, the error taxonomy, retry, media tools and service clients.
"""

__all__ = [
    'audio_tools',
    'captions',
    'database',
    'downloader',
    'errors',
    'logging_setup',
    'models',
    'object_storage',
    'retry',
    'speech_client',
    'text_client',
    'transcript_store',
    'video_metadata',
    'youtube_validators',
]
