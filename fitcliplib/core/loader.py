#!/usr/bin/env python3

import os
import yaml
from fitcliplib.core import geometry
from fitcliplib.core import options as options_module
from fitcliplib.core import timing
from fitcliplib.core import utils
from fitcliplib.core.options import CropRect
from fitcliplib.core.options import EditOptions
from fitcliplib.media import probe

#============================================

JOB_VERSION = 1
SECTIONS = ('source', 'output', 'budget', 'edit')

#============================================

class JobSpec():
	def __init__(self):
		self.yaml_file = None
		self.data = {}
		self.source_file = None
		self.source_info = {}
		self.output_file = None
		self.options = None

#============================================

class JobLoader():
	def __init__(self, yaml_file: str = None, overrides: dict = None,
		probe_func=None):
		self.yaml_file = yaml_file
		self.overrides = overrides or {}
		self.probe_func = probe_func or probe.probeSource

	#============================
	def load(self) -> JobSpec:
		spec = JobSpec()
		spec.yaml_file = self.yaml_file
		data = {'fitclip': JOB_VERSION}
		if self.yaml_file is not None:
			data = self._load_yaml()
		data = self._apply_overrides(data)
		self._validate_required_keys(data)
		spec.data = data
		source = self._section(data, 'source')
		spec.source_file = self._parse_source_file(source)
		spec.source_info = self._parse_source_info(source, spec.source_file)
		spec.options = self._parse_options(data, spec.source_info, spec.source_file)
		spec.output_file = self._parse_output_file(data, spec.source_file,
			spec.options.container)
		return spec

	#============================
	def _load_yaml(self) -> dict:
		file_size = os.path.getsize(self.yaml_file)
		if file_size > 10 ** 7:
			raise RuntimeError("yaml file is larger than 10MB")
		with open(self.yaml_file, 'r') as data_file:
			data = yaml.safe_load(data_file)
		if not isinstance(data, dict):
			raise RuntimeError("job yaml must be a mapping at the top level")
		return data

	#============================
	def _apply_overrides(self, data: dict) -> dict:
		merged = dict(data)
		for key, value in self.overrides.items():
			if value is None:
				continue
			current = merged.get(key)
			if isinstance(value, dict) and isinstance(current, dict):
				section = dict(current)
				for sub_key, sub_value in value.items():
					if sub_value is not None:
						section[sub_key] = sub_value
				merged[key] = section
			elif isinstance(value, dict):
				merged[key] = {k: v for k, v in value.items() if v is not None}
			else:
				merged[key] = value
		return merged

	#============================
	def _validate_required_keys(self, data: dict) -> None:
		if data.get('fitclip') != JOB_VERSION:
			raise RuntimeError(f"fitclip must be set to {JOB_VERSION}")
		if data.get('source') is None:
			raise RuntimeError("missing required key: source")
		for key in SECTIONS:
			value = data.get(key)
			if value is None or key == 'source':
				continue
			if not isinstance(value, dict):
				raise RuntimeError(f"{key} must be a mapping")

	#============================
	def _section(self, data: dict, key: str) -> dict:
		value = data.get(key)
		if value is None:
			return {}
		if key == 'source' and isinstance(value, str):
			return {'file': value}
		if not isinstance(value, dict):
			raise RuntimeError(f"{key} must be a mapping")
		return value

	#============================
	def _parse_source_file(self, source: dict) -> str:
		source_file = source.get('file')
		if source_file is None:
			raise RuntimeError("source.file is required")
		if self.yaml_file is not None and not os.path.isabs(source_file):
			base_dir = os.path.dirname(os.path.abspath(self.yaml_file))
			source_file = os.path.join(base_dir, source_file)
		utils.ensure_file_exists(source_file)
		return source_file

	#============================
	def _parse_source_info(self, source: dict, source_file: str) -> dict:
		known = ('width', 'height', 'duration')
		if all(source.get(key) is not None for key in known):
			info = {
				'width': int(source['width']),
				'height': int(source['height']),
				'duration': float(utils.parse_timecode(source['duration'])),
				'has_audio': bool(source.get('has_audio', True)),
			}
		else:
			info = dict(self.probe_func(source_file))
			for key in known:
				if source.get(key) is not None:
					info[key] = source[key]
			info['width'] = int(info['width'])
			info['height'] = int(info['height'])
			info['duration'] = float(utils.parse_timecode(info['duration']))
		if info['width'] < 2 or info['height'] < 2:
			raise RuntimeError("source width and height must be at least 2 pixels")
		if info['duration'] <= 0:
			raise RuntimeError("source duration must be positive")
		return info

	#============================
	def _parse_crop(self, crop, source_info: dict) -> CropRect:
		if crop is None:
			return options_module.FULL_FRAME
		if not isinstance(crop, dict):
			raise RuntimeError("edit.crop must be a mapping")
		if crop.get('aspect') is not None:
			return geometry.aspect_crop(str(crop['aspect']), source_info['width'],
				source_info['height'])
		rect = CropRect(
			float(crop.get('x', 0.0)),
			float(crop.get('y', 0.0)),
			float(crop.get('w', 1.0)),
			float(crop.get('h', 1.0)),
		)
		return geometry.normalize_crop(rect)

	#============================
	def _parse_trim(self, trim, duration: float) -> tuple:
		if trim is None:
			return (None, None)
		if not isinstance(trim, dict):
			raise RuntimeError("edit.trim must be a mapping")
		trim_start = None
		trim_end = None
		if trim.get('start') is not None:
			trim_start = float(utils.parse_timecode(trim['start']))
		if trim.get('end') is not None:
			trim_end = float(utils.parse_timecode(trim['end']))
		try:
			timing.validate_trim(duration, trim_start, trim_end)
		except ValueError as exc:
			raise RuntimeError(f"edit.trim: {exc}") from exc
		if trim_start is not None and trim_start <= 0:
			trim_start = None
		if trim_end is not None and trim_end >= duration:
			trim_end = None
		return (trim_start, trim_end)

	#============================
	def _parse_options(self, data: dict, source_info: dict,
		source_file: str) -> EditOptions:
		output = self._section(data, 'output')
		budget = self._section(data, 'budget')
		edit = self._section(data, 'edit')
		container = output.get('format')
		if container is None and output.get('file') is not None:
			container = os.path.splitext(output['file'])[1] or None
		container = options_module.normalize_container(container)
		quality = options_module.normalize_quality(edit.get('quality'))
		(trim_start, trim_end) = self._parse_trim(edit.get('trim'),
			source_info['duration'])
		speed = edit.get('speed')
		speed = 1.0 if speed is None else float(speed)
		loop = edit.get('loop')
		loop = 1 if loop is None else loop
		fps = float(edit.get('fps') or 0)
		try:
			timing.validate_speed(speed)
			timing.validate_loop(loop)
		except ValueError as exc:
			raise RuntimeError(f"edit: {exc}") from exc
		if fps < 0:
			raise RuntimeError("edit.fps must be zero or positive")
		audio = edit.get('audio')
		if audio is None:
			audio = source_info.get('has_audio', True)
		return EditOptions.from_megabytes(
			budget.get('max_size_mb'),
			container,
			source_info['width'],
			source_info['height'],
			source_info['duration'],
			crop=self._parse_crop(edit.get('crop'), source_info),
			trim_start=trim_start,
			trim_end=trim_end,
			speed=speed,
			loop=int(loop),
			fps=fps,
			quality=quality,
			audio=bool(audio),
			source_name=os.path.basename(source_file),
		)

	#============================
	def _parse_output_file(self, data: dict, source_file: str,
		container: str) -> str:
		output = self._section(data, 'output')
		output_file = output.get('file')
		if output_file is not None:
			if self.yaml_file is not None and not os.path.isabs(output_file):
				base_dir = os.path.dirname(os.path.abspath(self.yaml_file))
				output_file = os.path.join(base_dir, output_file)
			return output_file
		preset = options_module.container_preset(container)
		stem = os.path.splitext(os.path.basename(source_file))[0]
		name = f"{stem}-fitclip-{utils.make_timestamp()}{preset['extension']}"
		return os.path.join(os.path.dirname(os.path.abspath(source_file)), name)
