"""
Embedded image extraction for spreadsheet archives.

Floating pictures in an xlsx are not stored in cells; they sit in a drawing
part with an anchor describing which cells they cover. Anchor metadata is
often missing or incomplete, so each data row is resolved through an ordered
chain of strategies and the first one that finds an image wins:

1. Anchor range: the picture's anchor covers (row, image column).
2. Media position: no anchors at all, so the n-th raster file in the archive
   goes to the n-th data row. Only right if pictures were inserted in row
   order; results are flagged as low confidence.
3. First available: early rows that tier 2 could not serve take the first
   unused raster file. Least reliable.

A picture that cannot be read leaves its row without an image. Extraction
never fails the import.
"""

import posixpath
import xml.etree.ElementTree as ET
import zipfile
from dataclasses import dataclass, field
from enum import Enum
from io import BytesIO
from typing import Callable, Optional
import structlog

from openpyxl import load_workbook
from openpyxl.utils.cell import column_index_from_string, coordinate_from_string

from config.settings import settings
from exceptions import ImageExtractionError
from parsers.tabular_reader import RawGrid, is_empty_row
from utils.image_utils import RASTER_EXTENSIONS, extension_of, mime_type_for, to_data_uri

logger = structlog.get_logger(__name__)

NS = {
    "main": "http://schemas.openxmlformats.org/spreadsheetml/2006/main",
    "r": "http://schemas.openxmlformats.org/officeDocument/2006/relationships",
    "rel": "http://schemas.openxmlformats.org/package/2006/relationships",
    "xdr": "http://schemas.openxmlformats.org/drawingml/2006/spreadsheetDrawing",
    "a": "http://schemas.openxmlformats.org/drawingml/2006/main",
}
R_ID = f"{{{NS['r']}}}id"
R_EMBED = f"{{{NS['r']}}}embed"
ANCHOR_TAGS = frozenset(
    f"{{{NS['xdr']}}}{kind}" for kind in ("twoCellAnchor", "oneCellAnchor", "absoluteAnchor")
)

MEDIA_PREFIX = "xl/media/"
DEFAULT_DRAWING_PATH = "xl/drawings/drawing1.xml"

# openpyxl hands back these formats untouched and re-encodes anything else as PNG
OPENPYXL_PASSTHROUGH_FORMATS = ("gif", "jpeg", "png")


class ImageTier(str, Enum):
    """Which strategy located an image."""
    ANCHOR = "anchor"
    MEDIA_POSITION = "media_position"
    FIRST_AVAILABLE = "first_available"


@dataclass(frozen=True)
class AnchorRange:
    """1-based, inclusive cell range a picture covers."""
    top: int
    bottom: int
    left: int
    right: int

    def covers(self, row: int, col: int) -> bool:
        return self.top <= row <= self.bottom and self.left <= col <= self.right


@dataclass
class FloatingImage:
    """A picture object from the sheet's drawing part."""
    source: str
    anchor: Optional[AnchorRange]
    extension: str
    content: Optional[bytes] = None
    error: Optional[str] = None
    media_path: Optional[str] = None


@dataclass(frozen=True)
class MediaEntry:
    """A raster file stored under xl/media/, in archive order."""
    path: str
    content: Optional[bytes] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class ExtractedImage:
    """An image bound to a data row."""
    row_number: int
    content: bytes
    mime_type: str
    tier: ImageTier
    source: str

    @property
    def confident(self) -> bool:
        """Only anchor matches are authoritative."""
        return self.tier == ImageTier.ANCHOR

    @property
    def data_uri(self) -> Optional[str]:
        return to_data_uri(self.content, self.mime_type)


@dataclass
class ExtractionContext:
    """Everything the strategies need for one workbook."""
    image_column: int  # zero-based
    floating_images: list[FloatingImage] = field(default_factory=list)
    media: list[MediaEntry] = field(default_factory=list)
    used_media: set[str] = field(default_factory=set)
    fallback_row_limit: int = 5

    @property
    def target_column(self) -> int:
        """1-based column the anchors are compared against."""
        return self.image_column + 1

    @property
    def anchors_available(self) -> bool:
        return any(image.anchor is not None for image in self.floating_images)


Strategy = Callable[[ExtractionContext, int], Optional[ExtractedImage]]


# ===================
# STRATEGIES
# ===================

def locate_by_anchor(ctx: ExtractionContext, row_number: int) -> Optional[ExtractedImage]:
    """
    Tier 1: picture whose anchor covers (row_number, image column).

    A picture anchored at this row beats one that merely spans into it;
    otherwise document order decides.

    Raises:
        ImageExtractionError: The matching picture's data could not be read
    """
    col = ctx.target_column
    candidates = [
        (image.anchor.top != row_number, index, image)
        for index, image in enumerate(ctx.floating_images)
        if image.anchor is not None and image.anchor.covers(row_number, col)
    ]
    if not candidates:
        return None

    _, _, image = min(candidates, key=lambda c: (c[0], c[1]))
    if image.content is None:
        raise ImageExtractionError(image.source, image.error or "image data unavailable", row=row_number)

    if image.media_path:
        ctx.used_media.add(image.media_path)

    return ExtractedImage(
        row_number=row_number,
        content=image.content,
        mime_type=mime_type_for(image.extension),
        tier=ImageTier.ANCHOR,
        source=image.source,
    )


def locate_by_media_position(ctx: ExtractionContext, row_number: int) -> Optional[ExtractedImage]:
    """
    Tier 2: n-th archive medium for the n-th data row.

    Only used when no picture has anchor metadata.

    Raises:
        ImageExtractionError: The medium at this position is unreadable
    """
    if ctx.anchors_available:
        return None

    position = row_number - 2  # header occupies row 1
    if position < 0 or position >= len(ctx.media):
        return None

    entry = ctx.media[position]
    if entry.path in ctx.used_media:
        return None
    if entry.content is None:
        raise ImageExtractionError(entry.path, entry.error or "media entry unreadable", row=row_number)

    ctx.used_media.add(entry.path)
    return ExtractedImage(
        row_number=row_number,
        content=entry.content,
        mime_type=mime_type_for(entry.path),
        tier=ImageTier.MEDIA_POSITION,
        source=entry.path,
    )


def locate_first_available(ctx: ExtractionContext, row_number: int) -> Optional[ExtractedImage]:
    """Tier 3: first unused readable medium, early rows only."""
    if ctx.anchors_available:
        return None
    if row_number - 2 >= ctx.fallback_row_limit:
        return None

    for entry in ctx.media:
        if entry.path in ctx.used_media or entry.content is None:
            continue
        ctx.used_media.add(entry.path)
        return ExtractedImage(
            row_number=row_number,
            content=entry.content,
            mime_type=mime_type_for(entry.path),
            tier=ImageTier.FIRST_AVAILABLE,
            source=entry.path,
        )
    return None


IMAGE_STRATEGIES: tuple[Strategy, ...] = (
    locate_by_anchor,
    locate_by_media_position,
    locate_first_available,
)


# ===================
# ORCHESTRATOR
# ===================

def extract_embedded_images(
    content: bytes,
    grid: RawGrid,
    image_column: int,
    fallback_row_limit: Optional[int] = None,
    strategies: tuple[Strategy, ...] = IMAGE_STRATEGIES,
) -> dict[int, ExtractedImage]:
    """
    Bind embedded pictures to data rows.

    Args:
        content: Raw xlsx bytes
        grid: Grid read from the same file
        image_column: Zero-based index of the image column
        fallback_row_limit: Data rows eligible for tier 3 (settings default)
        strategies: Ordered strategy chain

    Returns:
        Dict of row_number -> ExtractedImage for rows that got an image
    """
    if fallback_row_limit is None:
        fallback_row_limit = settings.image_fallback_row_limit

    ctx = load_extraction_context(content, image_column, fallback_row_limit)
    logger.info(
        "embedded_images_loaded",
        floating_images=len(ctx.floating_images),
        anchored=sum(1 for i in ctx.floating_images if i.anchor is not None),
        media=len(ctx.media),
        image_column=image_column
    )

    if not ctx.floating_images and not ctx.media:
        return {}

    extracted: dict[int, ExtractedImage] = {}
    failures = 0

    for row_number, cells in grid.data_rows():
        if is_empty_row(cells):
            continue
        try:
            image = _run_chain(strategies, ctx, row_number)
        except ImageExtractionError as e:
            failures += 1
            logger.warning(
                "image_extraction_failed",
                row=row_number,
                source=e.details.get("source"),
                error=e.message
            )
            continue

        if image is not None:
            extracted[row_number] = image
            logger.debug("image_located", row=row_number, tier=image.tier.value, source=image.source)

    heuristic = [img for img in extracted.values() if not img.confident]
    if heuristic:
        logger.warning(
            "positional_image_heuristic_used",
            rows=[img.row_number for img in heuristic],
            tiers=sorted({img.tier.value for img in heuristic}),
            note="images were assigned by archive order, not by cell anchor"
        )

    logger.info(
        "embedded_images_extracted",
        rows_with_images=len(extracted),
        low_confidence=len(heuristic),
        failures=failures
    )

    return extracted


def _run_chain(
    strategies: tuple[Strategy, ...],
    ctx: ExtractionContext,
    row_number: int,
) -> Optional[ExtractedImage]:
    for strategy in strategies:
        image = strategy(ctx, row_number)
        if image is not None:
            return image
    return None


# ===================
# ARCHIVE LOADING
# ===================

def load_extraction_context(
    content: bytes,
    image_column: int,
    fallback_row_limit: int = 5,
) -> ExtractionContext:
    """
    Collect floating pictures and raster media from an xlsx.

    openpyxl is tried first; if it exposes no pictures, the first sheet's
    drawing XML is parsed directly. An unreadable archive yields an empty
    context.
    """
    ctx = ExtractionContext(image_column=image_column, fallback_row_limit=fallback_row_limit)

    try:
        archive = zipfile.ZipFile(BytesIO(content))
    except (zipfile.BadZipFile, OSError) as e:
        logger.error("image_archive_unreadable", error=str(e))
        return ctx

    with archive:
        ctx.media = list_media(archive)
        ctx.floating_images = load_openpyxl_images(content)
        if not ctx.floating_images:
            ctx.floating_images = load_drawing_images(archive)

    return ctx


def list_media(archive: zipfile.ZipFile) -> list[MediaEntry]:
    """Raster files under xl/media/, in stored order."""
    entries = []
    for info in archive.infolist():
        name = info.filename
        if not name.startswith(MEDIA_PREFIX) or info.is_dir():
            continue
        if extension_of(name) not in RASTER_EXTENSIONS:
            continue
        try:
            data = archive.read(name)
        except (zipfile.BadZipFile, OSError, ValueError) as e:
            entries.append(MediaEntry(path=name, error=str(e)))
            continue
        if not data:
            entries.append(MediaEntry(path=name, error="empty media entry"))
            continue
        entries.append(MediaEntry(path=name, content=data))
    return entries


def load_openpyxl_images(content: bytes) -> list[FloatingImage]:
    """Pictures openpyxl attached to the first worksheet."""
    try:
        workbook = load_workbook(BytesIO(content))
    except Exception as e:
        logger.warning("openpyxl_image_load_failed", error=str(e))
        return []

    try:
        if not workbook.worksheets:
            return []
        worksheet = workbook.worksheets[0]
        images = list(getattr(worksheet, "_images", []) or [])

        floating = []
        for idx, img in enumerate(images, start=1):
            source = f"openpyxl:{idx}"
            fmt = (getattr(img, "format", None) or "png").lower()
            extension = fmt if fmt in OPENPYXL_PASSTHROUGH_FORMATS else "png"
            image = FloatingImage(
                source=source,
                anchor=anchor_range(getattr(img, "anchor", None)),
                extension=extension,
            )
            try:
                # _data() closes the underlying buffer, so it is read once
                image.content = img._data() or None
                if image.content is None:
                    image.error = "empty image data"
            except Exception as e:
                image.error = str(e)
            floating.append(image)
        return floating
    finally:
        workbook.close()


def anchor_range(anchor) -> Optional[AnchorRange]:
    """
    Convert an openpyxl anchor into a 1-based cell range.

    Accepts "B2"-style strings, one-cell and two-cell anchors. Absolute
    anchors have no cell position and yield None.
    """
    if anchor is None:
        return None

    if isinstance(anchor, str):
        try:
            letters, row = coordinate_from_string(anchor)
        except ValueError:
            return None
        col = column_index_from_string(letters)
        return AnchorRange(top=row, bottom=row, left=col, right=col)

    start = getattr(anchor, "_from", None)
    if start is None:
        return None

    end = getattr(anchor, "to", None)
    return _marker_range(
        start.row, start.col,
        getattr(end, "row", None), getattr(end, "col", None),
        getattr(end, "rowOff", None), getattr(end, "colOff", None),
    )


def _marker_range(
    from_row: int,
    from_col: int,
    to_row: Optional[int] = None,
    to_col: Optional[int] = None,
    to_row_off: Optional[int] = None,
    to_col_off: Optional[int] = None,
) -> AnchorRange:
    """
    Build a range from zero-based DrawingML markers.

    A "to" marker with zero offset sits on the boundary of that cell, so the
    cell itself is not covered.
    """
    top, left = from_row + 1, from_col + 1
    if to_row is None or to_col is None:
        return AnchorRange(top=top, bottom=top, left=left, right=left)

    bottom = to_row + 1
    if not to_row_off and to_row > from_row:
        bottom -= 1
    right = to_col + 1
    if not to_col_off and to_col > from_col:
        right -= 1

    return AnchorRange(top=top, bottom=max(top, bottom), left=left, right=max(left, right))


# ===================
# DRAWING XML
# ===================

def load_drawing_images(archive: zipfile.ZipFile) -> list[FloatingImage]:
    """
    Pictures from the first sheet's drawing part, read straight from XML.

    Used when openpyxl exposes nothing (for example, drawing parts it
    cannot load).
    """
    names = set(archive.namelist())
    drawing_paths = _first_sheet_drawing_paths(archive, names)
    if not drawing_paths and DEFAULT_DRAWING_PATH in names:
        drawing_paths = [DEFAULT_DRAWING_PATH]

    floating = []
    for drawing_path in drawing_paths:
        try:
            root = ET.fromstring(archive.read(drawing_path))
        except (ET.ParseError, KeyError, zipfile.BadZipFile) as e:
            logger.warning("drawing_xml_unreadable", path=drawing_path, error=str(e))
            continue

        rels = _read_relationships(archive, _rels_path_for(drawing_path), names)

        # Document order, whatever the anchor kind
        anchors = [node for node in root if node.tag in ANCHOR_TAGS]

        for node in anchors:
            blip = node.find(".//a:blip", NS)
            if blip is None:
                continue
            media_path = _resolve_zip_path(drawing_path, rels.get(blip.attrib.get(R_EMBED)))
            if not media_path:
                continue

            image = FloatingImage(
                source=f"drawing:{media_path}",
                anchor=_xml_anchor_range(node),
                extension=extension_of(media_path),
                media_path=media_path,
            )
            if media_path not in names:
                image.error = "media entry missing from archive"
            else:
                try:
                    image.content = archive.read(media_path) or None
                    if image.content is None:
                        image.error = "empty media entry"
                except (zipfile.BadZipFile, OSError, ValueError) as e:
                    image.error = str(e)
            floating.append(image)

    return floating


def _xml_anchor_range(node: ET.Element) -> Optional[AnchorRange]:
    start = node.find("xdr:from", NS)
    if start is None:
        return None
    from_row = _int_child(start, "xdr:row")
    from_col = _int_child(start, "xdr:col")
    if from_row is None or from_col is None:
        return None

    end = node.find("xdr:to", NS)
    if end is None:
        return _marker_range(from_row, from_col)

    return _marker_range(
        from_row, from_col,
        _int_child(end, "xdr:row"), _int_child(end, "xdr:col"),
        _int_child(end, "xdr:rowOff"), _int_child(end, "xdr:colOff"),
    )


def _int_child(node: ET.Element, path: str) -> Optional[int]:
    child = node.find(path, NS)
    if child is None or child.text is None:
        return None
    try:
        return int(child.text.strip())
    except ValueError:
        return None


def _first_sheet_drawing_paths(archive: zipfile.ZipFile, names: set[str]) -> list[str]:
    """Drawing parts referenced by the workbook's first sheet."""
    workbook_path = "xl/workbook.xml"
    if workbook_path not in names:
        return []

    try:
        workbook = ET.fromstring(archive.read(workbook_path))
    except ET.ParseError:
        return []

    first_sheet = workbook.find("main:sheets/main:sheet", NS)
    if first_sheet is None:
        return []

    workbook_rels = _read_relationships(archive, _rels_path_for(workbook_path), names)
    sheet_path = _resolve_zip_path(workbook_path, workbook_rels.get(first_sheet.attrib.get(R_ID)))
    if not sheet_path or sheet_path not in names:
        return []

    try:
        sheet = ET.fromstring(archive.read(sheet_path))
    except ET.ParseError:
        return []

    sheet_rels = _read_relationships(archive, _rels_path_for(sheet_path), names)
    paths = []
    for drawing in sheet.findall(".//main:drawing", NS):
        path = _resolve_zip_path(sheet_path, sheet_rels.get(drawing.attrib.get(R_ID)))
        if path and path in names:
            paths.append(path)
    return paths


def _rels_path_for(part_path: str) -> str:
    """xl/drawings/drawing1.xml -> xl/drawings/_rels/drawing1.xml.rels"""
    return posixpath.join(
        posixpath.dirname(part_path),
        "_rels",
        posixpath.basename(part_path) + ".rels",
    )


def _read_relationships(archive: zipfile.ZipFile, rels_path: str, names: set[str]) -> dict[str, str]:
    if rels_path not in names:
        return {}
    try:
        root = ET.fromstring(archive.read(rels_path))
    except ET.ParseError:
        return {}
    rels = {}
    for rel in root.findall("rel:Relationship", NS):
        rel_id = rel.attrib.get("Id")
        target = rel.attrib.get("Target")
        if rel_id and target:
            rels[rel_id] = target
    return rels


def _resolve_zip_path(base_path: str, target: Optional[str]) -> Optional[str]:
    """Resolve a relationship target relative to the part that owns it."""
    if not target:
        return None
    clean = target.replace("\\", "/")
    if clean.startswith("/"):
        return clean.lstrip("/")
    return posixpath.normpath(posixpath.join(posixpath.dirname(base_path), clean))
