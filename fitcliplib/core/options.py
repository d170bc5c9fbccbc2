#!/usr/bin/env python3

from typing import NamedTuple, Optional
from fitcliplib.core import utils

#============================================

class CropRect(NamedTuple):
	x: float = 0.0
	y: float = 0.0
	w: float = 1.0
	h: float = 1.0

#============================================

class PixelRect(NamedTuple):
	x: int
	y: int
	w: int
	h: int

#============================================

FULL_FRAME = CropRect(0.0, 0.0, 1.0, 1.0)

AUDIO_BITRATE_KBPS = 128

QUALITY_TIERS = ('low', 'medium', 'high')

# constant-quality value per codec family, lower tier means larger value
CRF_X264 = {'low': 32, 'medium': 26, 'high': 20}
CRF_VPX = {'low': 36, 'medium': 24, 'high': 14}

# share of the budget handed to the quality pass as its soft ceiling
CEILING_HEADROOM = {'low': 0.92, 'medium': 0.95, 'high': 0.98}

CONTAINERS = {
	'mp4': {
		'video_codec': 'libx264',
		'audio_codec': 'aac',
		'crf_family': 'x264',
		'output_name': 'output.mp4',
		'mime_type': 'video/mp4',
		'extension': '.mp4',
		'extra_args': ['-movflags', '+faststart'],
	},
	'webm': {
		'video_codec': 'libvpx',
		'audio_codec': 'libvorbis',
		'crf_family': 'vpx',
		'output_name': 'output.webm',
		'mime_type': 'video/webm',
		'extension': '.webm',
		'extra_args': [],
	},
}

ASPECT_PRESETS = {
	'1:1': (1, 1),
	'9:16': (9, 16),
	'4:5': (4, 5),
	'16:9': (16, 9),
	'4:3': (4, 3),
	'21:9': (21, 9),
	'free': (0, 0),
}

#============================================

class EditOptions(NamedTuple):
	max_bytes: int
	container: str
	width: int
	height: int
	duration: float
	crop: CropRect = FULL_FRAME
	trim_start: Optional[float] = None
	trim_end: Optional[float] = None
	speed: float = 1.0
	loop: int = 1
	fps: float = 0
	quality: str = 'medium'
	audio: bool = True
	source_name: str = 'input.mp4'

	#============================
	@classmethod
	def from_megabytes(cls, max_size_mb, container: str, width: int,
		height: int, duration: float, **kwargs) -> 'EditOptions':
		megabytes = utils.parse_max_size_mb(max_size_mb)
		max_bytes = utils.megabytes_to_bytes(megabytes)
		return cls(max_bytes, container, width, height, duration, **kwargs)

	#============================
	@property
	def audio_kbps(self) -> int:
		if self.audio:
			return AUDIO_BITRATE_KBPS
		return 0

#============================================

def normalize_container(raw_container) -> str:
	if raw_container is None:
		return 'mp4'
	container = str(raw_container).strip().lower().lstrip('.')
	if container not in CONTAINERS:
		raise RuntimeError("container must be mp4 or webm")
	return container

#============================================

def normalize_quality(raw_quality) -> str:
	if raw_quality is None:
		return 'medium'
	quality = str(raw_quality).strip().lower()
	if quality not in QUALITY_TIERS:
		raise RuntimeError("quality must be low, medium, or high")
	return quality

#============================================

def container_preset(container: str) -> dict:
	return CONTAINERS[normalize_container(container)]

#============================================

def quality_crf(container: str, quality: str) -> int:
	preset = container_preset(container)
	tier = normalize_quality(quality)
	if preset['crf_family'] == 'vpx':
		return CRF_VPX[tier]
	return CRF_X264[tier]

#============================================

def ceiling_headroom(quality: str) -> float:
	return CEILING_HEADROOM[normalize_quality(quality)]
