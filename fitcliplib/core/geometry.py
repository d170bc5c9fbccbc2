#!/usr/bin/env python3

import math
from fitcliplib.core.options import ASPECT_PRESETS
from fitcliplib.core.options import CropRect
from fitcliplib.core.options import FULL_FRAME
from fitcliplib.core.options import PixelRect

#============================================

MIN_DIMENSION_PX = 2

#============================================

def clamp01(value: float) -> float:
	if value != value:
		# NaN
		return 0.0
	return max(0.0, min(1.0, float(value)))

#============================================

def round_half_up(value: float) -> int:
	return int(math.floor(value + 0.5))

#============================================

def normalize_crop(rect) -> CropRect:
	"""
	Clamp a fractional crop into the unit square.

	Width and height are clamped before the position is corrected, so one
	pass is enough after either a move or a resize.
	"""
	x, y, w, h = rect
	w = clamp01(w)
	h = clamp01(h)
	x = clamp01(x)
	y = clamp01(y)
	if x + w > 1:
		x = 1 - w
	if y + h > 1:
		y = 1 - h
	return CropRect(x, y, w, h)

#============================================

def _even_floor(value: int) -> int:
	if value % 2 != 0:
		value -= 1
	return max(MIN_DIMENSION_PX, value)

#============================================

def crop_pixels(rect, frame_width: int, frame_height: int) -> PixelRect:
	norm = normalize_crop(rect)
	x = round_half_up(norm.x * frame_width)
	y = round_half_up(norm.y * frame_height)
	w = _even_floor(round_half_up(norm.w * frame_width))
	h = _even_floor(round_half_up(norm.h * frame_height))
	# rounding both edges up can push the rect one pixel past the frame
	x = max(0, min(x, frame_width - w))
	y = max(0, min(y, frame_height - h))
	return PixelRect(x, y, w, h)

#============================================

def crop_filter(pixel_rect: PixelRect) -> str:
	return f"crop={pixel_rect.w}:{pixel_rect.h}:{pixel_rect.x}:{pixel_rect.y}"

#============================================

def describe_rect(pixel_rect: PixelRect) -> str:
	return f"{pixel_rect.w}x{pixel_rect.h}+{pixel_rect.x}+{pixel_rect.y}"

#============================================

def aspect_crop(preset: str, frame_width: int, frame_height: int) -> CropRect:
	"""
	Largest centered crop with the preset aspect ratio, in fractions.
	"""
	key = str(preset).strip().lower()
	if key not in ASPECT_PRESETS:
		raise RuntimeError(f"unknown aspect preset: {preset}")
	(ratio_w, ratio_h) = ASPECT_PRESETS[key]
	if ratio_w <= 0 or ratio_h <= 0:
		return FULL_FRAME
	if frame_width <= 0 or frame_height <= 0:
		return FULL_FRAME
	target = ratio_w / ratio_h
	frame_ratio = frame_width / frame_height
	if frame_ratio > target:
		w = (frame_height * target) / frame_width
		h = 1.0
	else:
		w = 1.0
		h = (frame_width / target) / frame_height
	return normalize_crop(CropRect((1.0 - w) / 2.0, (1.0 - h) / 2.0, w, h))
