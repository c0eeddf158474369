"""OCR engine: Tesseract integration producing offset-addressed word boxes."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from pageredact.detection.detectors import call_with_timeout
from pageredact.errors import DetectorUnavailable
from pageredact.models.schemas import Diagnostic, OcrResult, OcrWord

logger = logging.getLogger(__name__)

_tesseract_available: bool | None = None


def _check_tesseract() -> bool:
    """Check if Tesseract is available on the system."""
    global _tesseract_available
    if _tesseract_available is not None:
        return _tesseract_available

    try:
        import pytesseract
        from pageredact.config import config

        if config.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = config.tesseract_cmd
        elif shutil.which("tesseract") is None:
            common_paths = [
                r"C:\Program Files\Tesseract-OCR\tesseract.exe",
                r"C:\Program Files (x86)\Tesseract-OCR\tesseract.exe",
            ]
            for p in common_paths:
                if Path(p).exists():
                    pytesseract.pytesseract.tesseract_cmd = p
                    break

        pytesseract.get_tesseract_version()
        _tesseract_available = True
        logger.info("Tesseract OCR is available")
    except Exception as e:
        logger.warning(f"Tesseract OCR not available: {e}")
        _tesseract_available = False

    return _tesseract_available


# ---------------------------------------------------------------------------
# Transcript assembly
# ---------------------------------------------------------------------------

def build_ocr_result(
    words: Iterable[dict[str, Any]],
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> OcrResult:
    """Assemble a transcript and offset-tagged words from recognised words.

    Each item needs ``text``, ``x``, ``y``, ``w``, ``h`` and may carry a
    ``line`` key (any hashable) and a ``confidence`` in [0, 1].  Words
    on the same line are joined by a space, lines by a newline, so every
    word's ``(offset_start, offset_end)`` indexes the transcript exactly.
    Works with the output of any OCR engine, not only Tesseract.
    """
    parts: list[str] = []
    out: list[OcrWord] = []
    pos = 0
    prev_line: object = None
    first = True

    for item in words:
        text = str(item.get("text", "")).strip()
        if not text:
            continue
        line = item.get("line")
        if not first:
            sep = " " if line == prev_line else "\n"
            parts.append(sep)
            pos += len(sep)
        first = False
        prev_line = line

        start = pos
        parts.append(text)
        pos += len(text)
        out.append(OcrWord(
            text=text,
            x=float(item["x"]),
            y=float(item["y"]),
            w=float(item["w"]),
            h=float(item["h"]),
            offset_start=start,
            offset_end=pos,
            confidence=min(1.0, max(0.0, float(item.get("confidence", 1.0)))),
        ))

    return OcrResult(transcript="".join(parts), words=out, width=width, height=height)


# ---------------------------------------------------------------------------
# Tesseract
# ---------------------------------------------------------------------------

def ocr_image(image: Union[Path, str, Any]) -> OcrResult:
    """Run Tesseract on one page bitmap.

    *image* is a path or a PIL image.  Word boxes stay in the bitmap's
    own pixel space (OCR space).  Raises :class:`DetectorUnavailable`
    when Tesseract is not installed.
    """
    if not _check_tesseract():
        raise DetectorUnavailable("Tesseract OCR is not available")

    import pytesseract
    from PIL import Image
    from pageredact.config import config

    img = Image.open(image) if isinstance(image, (str, Path)) else image
    img_width, img_height = img.size

    data = pytesseract.image_to_data(
        img,
        lang=config.ocr_language,
        output_type=pytesseract.Output.DICT,
        config="--oem 1 --psm 6",
    )

    words: list[dict[str, Any]] = []
    for i in range(len(data["text"])):
        text = str(data["text"][i]).strip()
        conf = int(float(data["conf"][i]))

        # Skip empty / low-confidence entries
        if not text or conf < config.ocr_min_confidence:
            continue

        words.append({
            "text": text,
            "x": data["left"][i],
            "y": data["top"][i],
            "w": data["width"][i],
            "h": data["height"][i],
            "line": (data["block_num"][i], data["par_num"][i], data["line_num"][i]),
            "confidence": conf / 100.0,
        })

    result = build_ocr_result(words, width=img_width, height=img_height)
    logger.info(f"OCR extracted {len(result.words)} words ({img_width}x{img_height} px)")
    return result


def run_ocr(
    image: Union[Path, str, Any],
    timeout_s: Optional[float] = None,
    page: Optional[int] = None,
) -> tuple[Optional[OcrResult], list[Diagnostic]]:
    """Bounded OCR call with a degraded path.

    Returns ``(result, [])`` on success and ``(None, [diagnostic])``
    when Tesseract is missing, fails, or exceeds *timeout_s*.
    """
    from pageredact.config import config

    timeout = timeout_s if timeout_s is not None else config.ocr_timeout_s
    try:
        return call_with_timeout(ocr_image, image, timeout, what="OCR", pool="ocr"), []
    except DetectorUnavailable as exc:
        exc.page = page
        logger.warning("OCR unavailable for page %s: %s", page, exc, extra={"page": page})
        return None, [exc.to_diagnostic()]
