from .image_processor import ImageProcessor, PreparedImage
from .polling import PollingPolicy, PredictionPoller
from .style_transfer import StyleTransferService

__all__ = [
    "ImageProcessor",
    "PollingPolicy",
    "PredictionPoller",
    "PreparedImage",
    "StyleTransferService",
]
