"""
Podcast Receiver

Subscribes to podcast feeds, discovers new episodes on a schedule,
downloads them with a bounded worker pool and keeps each channel's
library within its retention cap.
"""

__version__ = "0.1.0"
__author__ = "Podcast Receiver Team"

from podcast_receiver.config import Config
from podcast_receiver.service import PodcastService

__all__ = ["Config", "PodcastService", "__version__"]
