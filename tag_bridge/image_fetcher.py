"""
Image downloads for queued jobs.
"""

from typing import List, Optional, Sequence
import httpx
from .config import settings
from .logging import get_logger


class NoImagesAvailable(Exception):
    """Raised when a job has no images or none of them could be downloaded."""
    pass


class ImageFetcher:
    """Downloads job screenshots into memory, skipping the ones that fail."""

    def __init__(self, client: Optional[httpx.Client] = None):
        self.logger = get_logger("image_fetcher")
        self._owns_client = client is None
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(settings.image_read_timeout, connect=settings.image_connect_timeout),
            follow_redirects=True,
        )

    def fetch(self, url: str) -> bytes:
        """Download a single image, raising httpx errors on failure."""
        response = self.client.get(url)
        response.raise_for_status()
        return response.content

    def fetch_all(self, urls: Sequence[str]) -> List[bytes]:
        """Download every URL in order and return the payloads that succeeded.

        Raises:
            NoImagesAvailable: if ``urls`` is empty or every download failed.
        """
        if not urls:
            raise NoImagesAvailable("No image URLs provided")

        self.logger.info(f"📥 Downloading {len(urls)} image(s)...")
        images = []
        for url in urls:
            try:
                images.append(self.fetch(url))
            except httpx.HTTPStatusError as e:
                self.logger.warning(f"⚠️  Skipping image {url}: HTTP {e.response.status_code}")
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                self.logger.warning(f"⚠️  Skipping image {url}: {e}")

        if not images:
            raise NoImagesAvailable(f"Failed to download any of {len(urls)} image(s)")

        self.logger.info(f"✅ Downloaded {len(images)}/{len(urls)} image(s)")
        return images

    def close(self):
        """Close the HTTP client if this fetcher created it."""
        if self._owns_client:
            self.client.close()
