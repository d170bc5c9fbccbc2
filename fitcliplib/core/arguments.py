#!/usr/bin/env python3

from typing import NamedTuple, Optional
from fitcliplib.core import geometry
from fitcliplib.core import options as options_module
from fitcliplib.core import tempo
from fitcliplib.core import timing
from fitcliplib.core import utils

#============================================

PRIMARY_PASS = 'primary'
CORRECTIVE_PASS = 'corrective'

#============================================

class EncodeArgs(NamedTuple):
	pass_name: str
	video_filters: str
	audio_filters: Optional[str]
	video_bitrate_kbps: int
	crf: Optional[int]
	video_codec: str
	audio_codec: Optional[str]
	output_name: str
	argv: list

#============================================

def build_video_filters(pixel_rect, speed: float = 1.0, fps: float = 0) -> str:
	filters = [geometry.crop_filter(pixel_rect)]
	setpts = tempo.build_setpts_filter(speed)
	if setpts is not None:
		filters.append(setpts)
	if fps and fps > 0:
		filters.append(f"fps={utils.format_number(fps)}")
	return ",".join(filters)

#============================================

def build_audio_filters(speed: float, audio: bool = True):
	if not audio:
		return None
	stages = tempo.build_atempo_filters(speed)
	if len(stages) == 0:
		return None
	return ",".join(stages)

#============================================

def _video_codec_args(codec: str, pass_name: str, kbps: int, crf) -> list:
	if codec == 'libvpx':
		if pass_name == PRIMARY_PASS:
			return ['-c:v', codec, '-crf', str(crf), '-b:v', f"{kbps}k"]
		return ['-c:v', codec, '-b:v', f"{kbps}k"]
	if pass_name == PRIMARY_PASS:
		return ['-c:v', codec, '-preset', 'ultrafast', '-crf', str(crf),
			'-maxrate', f"{kbps}k", '-bufsize', f"{kbps * 2}k"]
	maxrate = geometry.round_half_up(kbps * 1.1)
	return ['-c:v', codec, '-preset', 'medium', '-b:v', f"{kbps}k",
		'-maxrate', f"{maxrate}k", '-bufsize', f"{kbps * 2}k"]

#============================================

def _build_pass(options, input_name: str, pass_name: str, kbps: int,
	crf) -> EncodeArgs:
	preset = options_module.container_preset(options.container)
	pixel_rect = geometry.crop_pixels(options.crop, options.width, options.height)
	video_filters = build_video_filters(pixel_rect, options.speed, options.fps)
	audio_filters = build_audio_filters(options.speed, options.audio)
	argv = timing.input_arguments(input_name, options.trim_start, options.loop)
	argv += ['-vf', video_filters]
	if audio_filters is not None:
		argv += ['-af', audio_filters]
	argv += _video_codec_args(preset['video_codec'], pass_name, kbps, crf)
	audio_codec = None
	if options.audio:
		audio_codec = preset['audio_codec']
		argv += ['-c:a', audio_codec, '-b:a', f"{options.audio_kbps}k"]
	else:
		argv += ['-an']
	argv += timing.limit_arguments(options.duration, options.trim_start,
		options.trim_end, options.speed, options.loop)
	argv += list(preset['extra_args'])
	argv += ['-y', preset['output_name']]
	return EncodeArgs(
		pass_name=pass_name,
		video_filters=video_filters,
		audio_filters=audio_filters,
		video_bitrate_kbps=kbps,
		crf=crf,
		video_codec=preset['video_codec'],
		audio_codec=audio_codec,
		output_name=preset['output_name'],
		argv=argv,
	)

#============================================

def build_primary_args(options, input_name: str, ceiling_kbps: int) -> EncodeArgs:
	crf = options_module.quality_crf(options.container, options.quality)
	return _build_pass(options, input_name, PRIMARY_PASS, ceiling_kbps, crf)

#============================================

def build_corrective_args(options, input_name: str, kbps: int) -> EncodeArgs:
	return _build_pass(options, input_name, CORRECTIVE_PASS, kbps, None)
