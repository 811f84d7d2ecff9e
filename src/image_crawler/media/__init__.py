"""Image validation, fetching and content-hash storage."""

from image_crawler.media.fetcher import CandidateFetcher, FetchOutcome, FetchStatus
from image_crawler.media.store import DedupSet, sha256_bytes

__all__ = ["CandidateFetcher", "DedupSet", "FetchOutcome", "FetchStatus", "sha256_bytes"]
