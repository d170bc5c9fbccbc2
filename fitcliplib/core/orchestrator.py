#!/usr/bin/env python3

import threading
from fitcliplib.core import arguments
from fitcliplib.core import bitrate
from fitcliplib.core import geometry
from fitcliplib.core import options as options_module
from fitcliplib.core import timing
from fitcliplib.core import utils
from fitcliplib.core.errors import Cancelled
from fitcliplib.core.errors import EncodeExitNonZero
from fitcliplib.core.errors import EngineInitFailed
from fitcliplib.core.errors import InputStagingFailed
from fitcliplib.core.errors import TranscodeError
from fitcliplib.core.events import EventChannel
from fitcliplib.core.resources import ScopedArtifacts
from fitcliplib.media.ffmpeg_engine import FfmpegEngine

#============================================

IDLE = 'idle'
LOADING = 'loading'
ENCODING_PRIMARY = 'encoding_primary'
SIZE_CHECK = 'size_check'
ENCODING_CORRECTIVE = 'encoding_corrective'
FINALIZING = 'finalizing'
DONE = 'done'
CANCELLED = 'cancelled'
FAILED = 'failed'

TERMINAL_PHASES = (DONE, CANCELLED, FAILED)

TRANSITIONS = {
	IDLE: (LOADING,),
	LOADING: (ENCODING_PRIMARY,),
	ENCODING_PRIMARY: (SIZE_CHECK,),
	SIZE_CHECK: (ENCODING_CORRECTIVE, FINALIZING),
	ENCODING_CORRECTIVE: (FINALIZING,),
	FINALIZING: (DONE,),
}

# (start, span) of overall progress covered by each encoder pass
PROGRESS_BANDS = {
	ENCODING_PRIMARY: (0.10, 0.45),
	ENCODING_CORRECTIVE: (0.55, 0.35),
}

PROGRESS_ENGINE_READY = 0.05
PROGRESS_INPUT_STAGED = 0.10
PROGRESS_SIZE_CHECKED = 0.55
PROGRESS_FINALIZING = 0.92

#============================================

class Job():
	def __init__(self, options, channel: EventChannel):
		self.options = options
		self.channel = channel
		self.phase = IDLE
		self.progress = 0.0
		self.logs = []
		self.cancel_requested = False
		self.error = None
		self.ceiling_kbps = None
		self.corrective_kbps = None
		self.primary_bytes = None
		self.final_bytes = None
		self.passes = []

	#============================
	@property
	def terminal(self) -> bool:
		return self.phase in TERMINAL_PHASES

	#============================
	def advance(self, phase: str) -> None:
		if self.terminal:
			raise RuntimeError(f"job already finished in phase {self.phase}")
		allowed = TRANSITIONS.get(self.phase, ())
		if phase not in allowed and phase not in (CANCELLED, FAILED):
			raise RuntimeError(f"illegal job transition {self.phase} -> {phase}")
		self.phase = phase
		self.channel.phase(phase)

	#============================
	def log(self, message: str) -> None:
		self.logs.append(message)
		self.channel.log(message)

	#============================
	def report_progress(self, value: float) -> None:
		value = min(1.0, max(0.0, value))
		if value <= self.progress:
			return
		self.progress = value
		self.channel.progress(value)

#============================================

class Transcoder():
	"""
	Owns one encoder engine and drives jobs through it, one at a time.
	"""
	def __init__(self, engine=None):
		if engine is None:
			engine = FfmpegEngine()
		self.engine = engine
		self.job = None
		self._lock = threading.Lock()

	#============================
	def init(self) -> None:
		if self.engine.loaded:
			return
		try:
			self.engine.load()
		except Exception as exc:
			raise EngineInitFailed(f"ffmpeg engine failed to load: {exc}") from exc

	#============================
	def shutdown(self) -> None:
		self.engine.terminate()

	#============================
	def cancel(self) -> None:
		"""
		Stop the running job by killing the engine outright. There is no
		way to abort a single pass, so the engine reloads on the next job.
		"""
		job = self.job
		if job is None or job.terminal:
			return
		job.cancel_requested = True
		job.log("[run] stopping...")
		self.engine.terminate()

	#============================
	def transcode(self, source_bytes: bytes, options, on_log=None,
		on_progress=None, channel: EventChannel = None) -> bytes:
		with self._lock:
			if self.job is not None and not self.job.terminal:
				raise RuntimeError("a transcode job is already running")
			if channel is None:
				channel = EventChannel()
			job = Job(options, channel)
			self.job = job

		def forward(event: dict) -> None:
			kind = event.get('event')
			if kind == 'log' and on_log is not None:
				on_log(event['message'])
			elif kind == 'progress' and on_progress is not None:
				on_progress(event['value'])

		channel.subscribe(forward)
		try:
			return self._run_job(job, source_bytes)
		finally:
			channel.unsubscribe(forward)

	#============================
	def _run_job(self, job: Job, source_bytes: bytes) -> bytes:
		try:
			with ScopedArtifacts(self.engine, job.channel) as artifacts:
				data = self._execute(job, source_bytes, artifacts)
		except Exception as exc:
			job.error = exc
			if job.cancel_requested:
				self.engine.terminate()
				job.advance(CANCELLED)
				job.log("[cancelled] processing stopped")
				if isinstance(exc, Cancelled):
					raise
				raise Cancelled() from exc
			job.advance(FAILED)
			job.log(f"[error] {exc}")
			if isinstance(exc, TranscodeError):
				raise
			raise TranscodeError(str(exc)) from exc
		job.advance(DONE)
		job.report_progress(1.0)
		return data

	#============================
	def _check_cancel(self, job: Job) -> None:
		if job.cancel_requested:
			raise Cancelled()

	#============================
	def _execute(self, job: Job, source_bytes: bytes,
		artifacts: ScopedArtifacts) -> bytes:
		options = job.options
		max_bytes = options.max_bytes
		pixel_rect = geometry.crop_pixels(options.crop, options.width, options.height)
		job.log("[run] start")
		job.log(f"[run] max size={utils.format_number(max_bytes / (1024 * 1024))} MB, "
			f"format={options.container.upper()}")
		job.log(f"[run] crop {geometry.describe_rect(pixel_rect)} "
			f"from {options.width}x{options.height}")

		job.advance(LOADING)
		job.log("[init] loading ffmpeg engine...")
		self.init()
		job.log("[init] ffmpeg ready")
		job.report_progress(PROGRESS_ENGINE_READY)
		self._check_cancel(job)
		input_name = "input" + utils.input_extension(options.source_name)
		try:
			artifacts.stage_input(input_name, source_bytes)
			if options.loop > 1:
				script = timing.loop_list(input_name, options.trim_start,
					options.trim_end, options.loop)
				artifacts.stage_input(timing.LOOP_LIST_NAME, script.encode('utf-8'))
		except Exception as exc:
			raise InputStagingFailed(f"could not stage input: {exc}") from exc
		job.log(f"[input] loaded {utils.pretty_bytes(len(source_bytes))}")
		if options.loop > 1:
			job.log(f"[input] looping trim window {options.loop} times")
		job.report_progress(PROGRESS_INPUT_STAGED)
		self._check_cancel(job)

		job.advance(ENCODING_PRIMARY)
		job.log(f"[crop] {geometry.crop_filter(pixel_rect)} "
			f"(from {options.width}x{options.height})")
		duration = timing.effective_duration(options.duration, options.trim_start,
			options.trim_end, options.speed, options.loop)
		headroom = options_module.ceiling_headroom(options.quality)
		job.ceiling_kbps = bitrate.ceiling_bitrate(max_bytes, duration,
			options.audio_kbps, headroom)
		primary = arguments.build_primary_args(options, input_name, job.ceiling_kbps)
		artifacts.claim_output(primary.output_name)
		job.log(f"[encode] pass 1 - quality={options.quality} crf={primary.crf} "
			f"ceiling video={job.ceiling_kbps}k audio={options.audio_kbps}k "
			f"duration={duration:.3f}s")
		self._run_pass(job, primary, duration)
		self._check_cancel(job)

		job.advance(SIZE_CHECK)
		produced = len(self.engine.read_file(primary.output_name))
		job.primary_bytes = produced
		job.log(f"[size] pass 1 result: {utils.pretty_bytes(produced)} "
			f"(target: {utils.pretty_bytes(max_bytes)})")
		job.report_progress(PROGRESS_SIZE_CHECKED)

		if produced > max_bytes and produced > 0:
			job.advance(ENCODING_CORRECTIVE)
			(kbps, safe_ratio) = bitrate.corrective_bitrate(job.ceiling_kbps,
				max_bytes, produced)
			job.corrective_kbps = kbps
			job.log(f"[encode] pass 2 - adjusted video={kbps}k (ratio {safe_ratio:.2f})")
			corrective = arguments.build_corrective_args(options, input_name, kbps)
			self._run_pass(job, corrective, duration)
			self._check_cancel(job)

		job.advance(FINALIZING)
		job.report_progress(PROGRESS_FINALIZING)
		data = self.engine.read_file(primary.output_name)
		job.final_bytes = len(data)
		job.log(f"[done] output {utils.pretty_bytes(len(data))} "
			f"/ target {utils.pretty_bytes(max_bytes)}")
		return data

	#============================
	def _run_pass(self, job: Job, encode_args, duration: float) -> None:
		(band_start, band_span) = PROGRESS_BANDS[job.phase]

		def on_progress(payload: dict) -> None:
			fraction = min(1.0, max(0.0, payload.get('progress', 0.0)))
			job.report_progress(band_start + fraction * band_span)

		def on_log(payload: dict) -> None:
			job.log(f"[ffmpeg] {payload.get('message', '')}")

		job.passes.append(encode_args)
		job.log(f"[run] ffmpeg {' '.join(encode_args.argv)}")
		self.engine.on('progress', on_progress)
		self.engine.on('log', on_log)
		try:
			exit_code = self.engine.exec(encode_args.argv, duration=duration)
		finally:
			self.engine.off('progress', on_progress)
			self.engine.off('log', on_log)
		if exit_code != 0:
			if job.cancel_requested:
				raise Cancelled()
			raise EncodeExitNonZero(encode_args.pass_name, exit_code)
