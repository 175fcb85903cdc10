"""
OCR Engine

Tesseract-backed text recognition over page screenshots. One engine instance
is shared by every visual caller; recognition calls are serialized and short-lived
results are cached by screenshot hash.
"""

import asyncio
import hashlib
import io
import logging
import time
from typing import Any

import pytesseract
from PIL import Image

from relocator.config import get_settings
from relocator.schemas.strategy import BoundingRect
from relocator.schemas.vision import OCRMatch, TextSearchResult

logger = logging.getLogger(__name__)


class OCREngineError(Exception):
	"""OCR engine unavailable or recognition failed."""


def match_ocr_text(text: str, target: str, exact: bool = False, case_sensitive: bool = False) -> bool:
	"""Exact compares trimmed strings; otherwise target must be a substring of text."""
	if not text or not target:
		return False
	a = text.strip()
	b = target.strip()
	if not case_sensitive:
		a = a.lower()
		b = b.lower()
	return a == b if exact else b in a


class OCREngine:
	"""
	Tesseract OCR engine with an explicit initialize/terminate lifecycle.

	Coordinates reported by find_text are divided by `scale` so callers can pass
	the device pixel ratio and get CSS-pixel click points back.
	"""

	def __init__(
		self,
		language: str | None = None,
		confidence_threshold: float | None = None,
		cache_ttl_ms: int | None = None,
		tesseract_cmd: str | None = None,
	):
		settings = get_settings()
		self.language = language or settings.ocr_language
		self.confidence_threshold = confidence_threshold if confidence_threshold is not None else settings.ocr_confidence_threshold
		self.cache_ttl_ms = cache_ttl_ms if cache_ttl_ms is not None else settings.ocr_cache_ttl_ms
		self.tesseract_cmd = tesseract_cmd
		self._ready = False
		self._lock = asyncio.Lock()
		self._cache: dict[str, tuple[float, list[OCRMatch]]] = {}
		self._recognitions = 0

	@property
	def is_ready(self) -> bool:
		return self._ready

	@property
	def recognitions(self) -> int:
		"""Number of tesseract runs (cache misses)."""
		return self._recognitions

	async def initialize(self) -> None:
		"""Verify the tesseract binary is available. Idempotent."""
		async with self._lock:
			if self._ready:
				return
			if self.tesseract_cmd:
				pytesseract.pytesseract.tesseract_cmd = self.tesseract_cmd
			try:
				version = await asyncio.to_thread(pytesseract.get_tesseract_version)
			except Exception as e:
				raise OCREngineError(f"Tesseract unavailable: {e}") from e
			self._ready = True
			logger.info(f"✅ OCR engine ready (tesseract {version}, lang={self.language})")

	async def terminate(self) -> None:
		async with self._lock:
			self._cache.clear()
			self._ready = False
			logger.debug("OCR engine terminated")

	async def recognize(self, image: bytes, scale: float = 1.0, use_cache: bool = True) -> list[OCRMatch]:
		"""
		Recognize text fragments (words and multi-word lines) in a screenshot.

		Args:
			image: PNG/JPEG bytes
			scale: Divisor applied to pixel coordinates
			use_cache: Reuse a recent result for identical bytes

		Returns:
			All fragments with non-negative confidence
		"""
		if not self._ready:
			raise OCREngineError('OCR engine not initialized')

		key = f"{hashlib.md5(image).hexdigest()}:{scale}"
		if use_cache:
			cached = self._get_cached(key)
			if cached is not None:
				return cached

		async with self._lock:
			try:
				data = await asyncio.to_thread(self._run_tesseract, image)
			except Exception as e:
				raise OCREngineError(f"Recognition failed: {type(e).__name__}: {e}") from e
			self._recognitions += 1

		fragments = self.parse_tesseract_data(data, scale)
		self._store_cached(key, fragments)
		return fragments

	async def find_text(
		self,
		image: bytes,
		target: str,
		exact: bool = False,
		case_sensitive: bool = False,
		use_cache: bool = True,
		scale: float = 1.0,
	) -> TextSearchResult:
		"""
		Search a screenshot for target text.

		Returns:
			TextSearchResult with the best confident match and every confident match
		"""
		fragments = await self.recognize(image, scale=scale, use_cache=use_cache)
		matches = [
			f for f in fragments
			if f.confidence >= self.confidence_threshold and match_ocr_text(f.text, target, exact, case_sensitive)
		]
		if not matches:
			return TextSearchResult(found=False)

		best = self._best_match(matches, target)
		return TextSearchResult(
			found=True,
			confidence=best.confidence,
			matched_text=best.text,
			click_point=best.click_point,
			bbox=best.bbox,
			all_matches=matches,
		)

	def _run_tesseract(self, image: bytes) -> dict[str, Any]:
		with Image.open(io.BytesIO(image)) as img:
			return pytesseract.image_to_data(img, lang=self.language, output_type=pytesseract.Output.DICT)

	@staticmethod
	def parse_tesseract_data(data: dict[str, Any], scale: float = 1.0) -> list[OCRMatch]:
		"""Turn image_to_data output into word fragments plus joined multi-word lines."""
		scale = scale if scale > 0 else 1.0
		fragments: list[OCRMatch] = []
		lines: dict[tuple[int, int, int], list[tuple[str, float, float, float, float, float]]] = {}

		for i, raw_text in enumerate(data.get('text', [])):
			text = (raw_text or '').strip()
			try:
				conf = float(data['conf'][i])
			except (TypeError, ValueError, KeyError, IndexError):
				continue
			if not text or conf < 0:
				continue
			left = float(data['left'][i]) / scale
			top = float(data['top'][i]) / scale
			width = float(data['width'][i]) / scale
			height = float(data['height'][i]) / scale
			fragments.append(_fragment(text, conf, left, top, left + width, top + height))

			line_key = (_at(data, 'block_num', i), _at(data, 'par_num', i), _at(data, 'line_num', i))
			lines.setdefault(line_key, []).append((text, conf, left, top, left + width, top + height))

		for words in lines.values():
			if len(words) < 2:
				continue
			text = ' '.join(w[0] for w in words)
			conf = sum(w[1] for w in words) / len(words)
			fragments.append(_fragment(
				text,
				conf,
				min(w[2] for w in words),
				min(w[3] for w in words),
				max(w[4] for w in words),
				max(w[5] for w in words),
			))

		return fragments

	def _best_match(self, matches: list[OCRMatch], target: str) -> OCRMatch:
		"""Prefer an exact (case-insensitive) hit, then the highest confidence."""
		wanted = target.strip().lower()
		exact_hits = [m for m in matches if m.text.strip().lower() == wanted]
		pool = exact_hits or matches
		return max(pool, key=lambda m: m.confidence)

	def _get_cached(self, key: str) -> list[OCRMatch] | None:
		entry = self._cache.get(key)
		if entry is None:
			return None
		stored_at, fragments = entry
		if (time.monotonic() - stored_at) * 1000 >= self.cache_ttl_ms:
			del self._cache[key]
			return None
		return fragments

	def _store_cached(self, key: str, fragments: list[OCRMatch]) -> None:
		now = time.monotonic()
		expired = [k for k, (ts, _) in self._cache.items() if (now - ts) * 1000 >= self.cache_ttl_ms]
		for k in expired:
			del self._cache[k]
		self._cache[key] = (now, fragments)


def _fragment(text: str, conf: float, x1: float, y1: float, x2: float, y2: float) -> OCRMatch:
	bbox = BoundingRect(x=x1, y=y1, width=max(0.0, x2 - x1), height=max(0.0, y2 - y1))
	return OCRMatch(text=text, confidence=min(conf, 100.0), bbox=bbox, click_point=bbox.center())


def _at(data: dict[str, Any], key: str, index: int) -> int:
	values = data.get(key) or []
	return values[index] if index < len(values) else 0
