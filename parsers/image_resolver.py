"""
External image resolver for delimited-text imports.

CSV files cannot embed pictures, so the image column holds a reference:
an http(s) URL, a filesystem path, or an inline data URI. Each reference is
turned into a data URI. A reference that cannot be resolved leaves the row
without an image; it never fails the row.
"""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Collection, Optional, Union
import requests
import structlog

from config.settings import settings
from exceptions import DownloadFailureError
from parsers.tabular_reader import RawGrid, is_empty_row
from utils.image_utils import (
    is_data_uri,
    mime_type_for,
    normalize_content_type,
    to_data_uri,
)

logger = structlog.get_logger(__name__)

URL_SCHEMES = ("http://", "https://")


class ImageResolver:
    """
    Resolves image references to data URIs.

    One GET per URL, no retries. Downloads for a whole grid run through a
    bounded thread pool.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_workers: Optional[int] = None
    ):
        self.timeout = timeout or settings.image_download_timeout_seconds
        self.max_workers = max_workers or settings.image_download_workers

    def resolve(
        self,
        value: Optional[str],
        base_dir: Optional[Union[str, Path]] = None
    ) -> Optional[str]:
        """
        Resolve one cell value.

        Args:
            value: Raw image cell
            base_dir: Directory that relative paths are resolved against

        Returns:
            Data URI, or None if the reference is empty or unresolvable
        """
        value = (value or "").strip()
        if not value:
            return None

        if is_data_uri(value):
            return value

        if value.lower().startswith(URL_SCHEMES):
            try:
                return self.download(value)
            except DownloadFailureError as e:
                logger.warning(
                    "image_download_failed",
                    url=value,
                    status=e.details.get("status"),
                    error=e.message
                )
                return None

        return self.read_local(value, base_dir)

    def download(self, url: str) -> str:
        """
        Fetch an image URL and encode it.

        Raises:
            DownloadFailureError: Transport error, non-2xx status, empty body,
                or a non-image content type
        """
        try:
            response = requests.get(url, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise DownloadFailureError(url, str(e))

        if not 200 <= response.status_code < 300:
            raise DownloadFailureError(
                url,
                f"HTTP {response.status_code}",
                status=response.status_code
            )

        mime_type = normalize_content_type(response.headers.get("Content-Type"))
        if not mime_type.startswith("image/"):
            raise DownloadFailureError(
                url,
                f"unexpected content type {mime_type}",
                status=response.status_code
            )

        data_uri = to_data_uri(response.content, mime_type)
        if data_uri is None:
            raise DownloadFailureError(url, "empty response body", status=response.status_code)

        logger.debug("image_downloaded", url=url, mime_type=mime_type, size=len(response.content))
        return data_uri

    def read_local(
        self,
        value: str,
        base_dir: Optional[Union[str, Path]] = None
    ) -> Optional[str]:
        """Read an absolute path, or a path relative to base_dir."""
        path = Path(value)
        if not path.is_absolute():
            if base_dir is None:
                logger.debug("image_path_unresolved", path=value, reason="no base directory")
                return None
            path = Path(base_dir) / path

        try:
            if not path.is_file():
                logger.debug("image_file_missing", path=str(path))
                return None
            content = path.read_bytes()
        except (OSError, ValueError) as e:
            logger.warning("image_file_unreadable", path=str(path), error=str(e))
            return None

        return to_data_uri(content, mime_type_for(path.name, default="image/jpeg"))

    def resolve_rows(
        self,
        grid: RawGrid,
        image_column: int,
        base_dir: Optional[Union[str, Path]] = None,
        rows: Optional[Collection[int]] = None
    ) -> dict[int, str]:
        """
        Resolve the image column of every non-empty data row, or only of
        the given row numbers.

        Returns:
            Dict of row_number -> data URI for rows that got an image
        """
        pending = [
            (row_number, grid.cell(cells, image_column))
            for row_number, cells in grid.data_rows()
            if (rows is None or row_number in rows)
            and not is_empty_row(cells)
            and grid.cell(cells, image_column)
        ]
        if not pending:
            return {}

        logger.info("resolving_images", references=len(pending), workers=self.max_workers)

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            resolved = list(pool.map(
                lambda item: self._resolve_row(item[0], item[1], base_dir),
                pending
            ))

        images = {
            row_number: data_uri
            for (row_number, _), data_uri in zip(pending, resolved)
            if data_uri is not None
        }

        logger.info(
            "images_resolved",
            references=len(pending),
            resolved=len(images),
            unresolved=len(pending) - len(images)
        )

        return images

    def _resolve_row(
        self,
        row_number: int,
        value: str,
        base_dir: Optional[Union[str, Path]]
    ) -> Optional[str]:
        """resolve() for one pooled row; a failure leaves that row without an image."""
        try:
            return self.resolve(value, base_dir)
        except Exception as e:
            logger.warning(
                "image_resolution_failed",
                row=row_number,
                reference=value[:200],
                error=str(e),
                error_type=type(e).__name__
            )
            return None
