from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Iterator

from PIL import Image

from .job import JobPaths
from .types import Page, RasterPage
from .utils import ensure_dir


IMAGE_EXTS = {".png", ".jpg", ".jpeg", ".webp", ".bmp", ".tif", ".tiff"}


@dataclass(frozen=True)
class PageProvider:
    """Rasterize input pages into RGB grids.

    PDF pages render at ``dpi`` when given, otherwise at ``target_width``
    (default 2400) pixels wide keeping the aspect ratio. Image inputs are resized to
    ``target_width`` only when it is set.
    """
    input_path: str
    input_type: str  # pdf|images
    paths: JobPaths
    dpi: int | None = None
    target_width: int | None = None
    pages: tuple[int, ...] | None = None  # 1-based page numbers; None = all

    def iter_pages(self) -> Iterator[tuple[Page, RasterPage]]:
        if self.input_type == "pdf":
            yield from self._iter_pdf_pages()
        elif self.input_type == "images":
            yield from self._iter_image_folder()
        else:
            raise ValueError(f"Unknown input_type: {self.input_type}")

    def _wanted(self, page_num: int) -> bool:
        return self.pages is None or page_num in self.pages

    def _page_record(self, i: int, source_ref: str) -> tuple[Page, Path]:
        page_id = f"page_{i + 1:03d}"
        rel_path = f"pages/{page_id}.png"
        abs_path = self.paths.job_dir / rel_path
        abs_path.parent.mkdir(parents=True, exist_ok=True)
        return Page(page_index=i, page_id=page_id, source_ref=source_ref, image_path=rel_path), abs_path

    def _iter_pdf_pages(self) -> Iterator[tuple[Page, RasterPage]]:
        try:
            import fitz  # PyMuPDF
        except Exception as e:  # pragma: no cover
            raise RuntimeError("PyMuPDF is required for --type pdf. Install pymupdf.") from e

        pdf_path = Path(self.input_path)
        doc = fitz.open(pdf_path)

        ensure_dir(self.paths.pages_dir)
        try:
            for i in range(doc.page_count):
                if not self._wanted(i + 1):
                    continue
                page, abs_path = self._page_record(i, f"{pdf_path.name}#page={i + 1}")

                if abs_path.exists():
                    img = Image.open(abs_path).convert("RGB")
                else:
                    p = doc.load_page(i)
                    if self.dpi:
                        zoom = self.dpi / 72.0
                    else:
                        zoom = float(self.target_width or 2400) / float(p.rect.width)
                    pix = p.get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)
                    img = Image.open(BytesIO(pix.tobytes("png"))).convert("RGB")
                    img.save(abs_path, format="PNG")

                yield page, RasterPage.from_image(img)
        finally:
            doc.close()

    def _iter_image_folder(self) -> Iterator[tuple[Page, RasterPage]]:
        src = Path(self.input_path)
        if src.is_file() and src.suffix.lower() in IMAGE_EXTS:
            files = [src]
        elif src.is_dir():
            files = sorted([p for p in src.iterdir() if p.suffix.lower() in IMAGE_EXTS])
        else:
            raise ValueError(f"--type images expects an image file or a folder: {src}")

        ensure_dir(self.paths.pages_dir)
        for i, img_path in enumerate(files):
            if not self._wanted(i + 1):
                continue
            page, abs_path = self._page_record(i, f"{img_path.parent.name}/{img_path.name}")

            if abs_path.exists():
                img = Image.open(abs_path).convert("RGB")
            else:
                img = Image.open(img_path).convert("RGB")
                if self.target_width and img.width != self.target_width:
                    h = max(1, round(img.height * self.target_width / img.width))
                    img = img.resize((self.target_width, h), Image.LANCZOS)
                img.save(abs_path, format="PNG")

            yield page, RasterPage.from_image(img)
