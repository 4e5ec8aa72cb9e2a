"""Vision extraction of quantities, termination points and crossings from plan pages."""

from plansearch.services.vision.batch import VisionBatchProcessor
from plansearch.services.vision.vision_pipeline import VisionPipeline, is_vision_available, should_auto_process

__all__ = [
    "VisionBatchProcessor",
    "VisionPipeline",
    "is_vision_available",
    "should_auto_process",
]
