"""
Pipeline stages for the YouTube Transcript Pipeline
"""

from workers.base import BaseStage
from workers.audio_acquirer import AudioAcquirer
from workers.audio_preprocessor import AudioPreprocessor
from workers.transcriber import SpeechTranscriber
from workers.stitcher import OffsetStitcher
from workers.refiner import TextRefiner, repartition
from workers.orchestrator import PipelineOrchestrator, PipelineState, build_orchestrator

__all__ = [
    'BaseStage',
    'AudioAcquirer',
    'AudioPreprocessor',
    'SpeechTranscriber',
    'OffsetStitcher',
    'TextRefiner',
    'repartition',
    'PipelineOrchestrator',
    'PipelineState',
    'build_orchestrator',
]
