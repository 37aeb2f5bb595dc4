"""Lay out card artwork as a printable PDF, one card per page with bleed."""

import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Iterator, List, Optional, Sequence, Tuple

from PIL import Image, UnidentifiedImageError
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from grimoire.concurrency import Deadline
from grimoire.config import Settings
from grimoire.errors import AssemblyError
from grimoire.image_downloader import ImageDownloader
from grimoire.logging_utils import job_logger
from grimoire.models import ResolvedCard

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageSpec:
    """One page of the document: a single face of a single copy of a card."""

    card_name: str
    copy: int
    face: str
    image_url: str


@dataclass(frozen=True)
class Document:
    """A rendered PDF and how many of its planned pages made it in."""

    data: bytes
    pages_expected: int
    pages_rendered: int


def iter_pages(cards: Sequence[ResolvedCard]) -> Iterator[PageSpec]:
    """Yield pages in print order: card, then copy, then face."""
    for card in cards:
        for copy in range(1, card.quantity + 1):
            for face, url in card.face_image_urls.items():
                yield PageSpec(card_name=card.display_name, copy=copy, face=face, image_url=url)


def normalize_image(
    data: bytes,
    background: Tuple[float, float, float] = (0.0, 0.0, 0.0),
    quality: int = 95,
) -> bytes:
    """Re-encode artwork as 8-bit RGB JPEG.

    16-bit and palette images are reduced to 8 bits per channel and any
    transparency (Scryfall PNGs have transparent rounded corners) is flattened
    onto the background colour.

    Raises:
        ValueError: If the bytes are not a decodable image

    """
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"failed to decode image: {e}") from e

    if image.mode in ("I", "I;16", "I;16B", "I;16L"):
        image = image.convert("I").point(lambda v: v * (1 / 256)).convert("L")

    if image.mode in ("RGBA", "LA", "P", "PA") or "transparency" in image.info:
        rgba = image.convert("RGBA")
        fill = tuple(int(round(channel * 255)) for channel in background)
        flattened = Image.new("RGB", rgba.size, fill)
        flattened.paste(rgba, mask=rgba.getchannel("A"))
        image = flattened
    else:
        image = image.convert("RGB")

    buffer = BytesIO()
    image.save(buffer, "JPEG", quality=quality)
    return buffer.getvalue()


class PdfGenerator:
    """Builds the printable document for a resolved decklist."""

    def __init__(self, downloader: ImageDownloader, settings: Optional[Settings] = None):
        self.downloader = downloader
        self.settings = settings or Settings()

    def fetch_images(
        self,
        pages: Sequence[PageSpec],
        deadline: Optional[Deadline] = None,
        job_id: str = "-",
    ) -> List[Optional[bytes]]:
        """Download artwork for every page; failed downloads come back as None."""
        return self.downloader.download_all(
            [page.image_url for page in pages],
            max_workers=self.settings.max_fanout,
            deadline=deadline,
            job_id=job_id,
        )

    def render(
        self,
        pages: Sequence[PageSpec],
        images: Sequence[Optional[bytes]],
        deadline: Optional[Deadline] = None,
        job_id: str = "-",
    ) -> Document:
        """Emit one page per downloaded image, in page order.

        Pages whose image is missing or undecodable are left out. With no
        images at all the result is a valid document without pages.

        Raises:
            AssemblyError: If a page cannot be drawn or the PDF cannot be written

        """
        if len(pages) != len(images):
            raise ValueError(f"{len(pages)} pages but {len(images)} images")

        settings = self.settings
        page_width, page_height = settings.page_size
        buffer = BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=(page_width, page_height))
        pdf.setCreator("grimoire")
        pdf.setTitle("Decklist")

        job_log = job_logger(log, job_id)
        rendered = 0
        for index, (page, image_data) in enumerate(zip(pages, images)):
            if deadline is not None:
                deadline.check("generate")

            if image_data is None:
                job_log.warning("Skipping page for %s due to failed image fetch", page.card_name)
                continue

            try:
                jpeg = normalize_image(image_data, settings.bleed_color, settings.jpeg_quality)
            except ValueError as e:
                job_log.warning("Skipping page for %s: %s", page.card_name, e)
                continue

            job_log.debug("Adding page %d for %s (%s, copy %d)",
                          index + 1, page.card_name, page.face, page.copy)

            try:
                pdf.setFillColorRGB(*settings.bleed_color)
                pdf.rect(0, 0, page_width, page_height, fill=1, stroke=0)
                pdf.drawImage(
                    ImageReader(BytesIO(jpeg)),
                    settings.bleed,
                    settings.bleed,
                    width=settings.card_width,
                    height=settings.card_height,
                )
                pdf.showPage()
            except Exception as e:
                raise AssemblyError(
                    f"PDF generation failed on page {index + 1} ({page.card_name}): {e}"
                ) from e
            rendered += 1

        try:
            pdf.save()
        except Exception as e:
            raise AssemblyError(f"PDF generation failed: {e}") from e

        job_log.info("Rendered %d of %d pages", rendered, len(pages))
        return Document(data=buffer.getvalue(), pages_expected=len(pages), pages_rendered=rendered)

    def generate(
        self,
        cards: Sequence[ResolvedCard],
        deadline: Optional[Deadline] = None,
        job_id: str = "-",
    ) -> Document:
        """Fetch artwork for every card and render the document."""
        pages = list(iter_pages(cards))
        images = self.fetch_images(pages, deadline, job_id)
        return self.render(pages, images, deadline, job_id)
