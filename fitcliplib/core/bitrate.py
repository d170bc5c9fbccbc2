#!/usr/bin/env python3

import math
from fitcliplib.core import geometry

#============================================

MIN_VIDEO_KBPS = 50
MIN_DURATION_SECONDS = 1.0
OVERSHOOT_MARGIN = 0.95
MIN_SAFE_RATIO = 0.3

#============================================

def target_bitrate(max_bytes: float, duration: float,
	audio_kbps: int = 128) -> int:
	"""
	Video bitrate in kbps that spends max_bytes over duration seconds,
	after the audio stream takes its share.
	"""
	total_kbps = max_bytes * 8 / 1000 / max(MIN_DURATION_SECONDS, duration)
	return max(MIN_VIDEO_KBPS, int(math.floor(total_kbps - audio_kbps)))

#============================================

def ceiling_bitrate(max_bytes: float, duration: float, audio_kbps: int,
	headroom: float) -> int:
	return target_bitrate(max_bytes * headroom, duration, audio_kbps)

#============================================

def corrective_bitrate(ceiling_kbps: int, max_bytes: float,
	produced_bytes: float) -> tuple:
	if produced_bytes <= 0:
		raise ValueError("produced size must be positive")
	ratio = max_bytes / produced_bytes
	safe_ratio = max(MIN_SAFE_RATIO, ratio * OVERSHOOT_MARGIN)
	kbps = max(MIN_VIDEO_KBPS, geometry.round_half_up(ceiling_kbps * safe_ratio))
	return (kbps, safe_ratio)
