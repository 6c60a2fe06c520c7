"""Bucket Mirror - Publish a local directory tree to an S3 bucket."""

__version__ = "0.1.0"
__author__ = "Bucket Mirror Team"

from bucket_mirror.config import Config
from bucket_mirror.sync_engine import MirrorSync

__all__ = ["MirrorSync", "Config", "__version__"]
