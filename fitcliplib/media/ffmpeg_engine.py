#!/usr/bin/env python3

import os
import re
import shutil
import subprocess
import tempfile
import threading

#============================================

DURATION_RE = re.compile(r"Duration:\s*(\d+):(\d+):(\d+(?:\.\d+)?)")

ENGINE_FLAGS = ['-hide_banner', '-nostdin', '-nostats', '-progress', 'pipe:1']

#============================================

def parse_log_duration(line: str):
	match = DURATION_RE.search(line)
	if match is None:
		return None
	hours = int(match.group(1))
	minutes = int(match.group(2))
	seconds = float(match.group(3))
	return hours * 3600 + minutes * 60 + seconds

#============================================

def parse_progress_seconds(key: str, value: str):
	# out_time_ms is microseconds as well, despite the name
	if key not in ('out_time_us', 'out_time_ms'):
		return None
	try:
		micros = int(value)
	except ValueError:
		return None
	return max(0.0, micros / 1000000.0)

#============================================

class FfmpegEngine():
	"""
	Runs the ffmpeg binary inside a private working directory.

	Only one command runs at a time. terminate() kills the running command
	and discards the working directory, so load() must be called again
	before the next job.
	"""
	def __init__(self, ffmpeg_bin: str = 'ffmpeg', work_root: str = None):
		self.ffmpeg_bin = ffmpeg_bin
		self.work_root = work_root
		self.binary = None
		self.work_dir = None
		self._handlers = {'log': [], 'progress': []}
		self._proc = None
		self._lock = threading.Lock()

	#============================
	@property
	def loaded(self) -> bool:
		return self.work_dir is not None

	#============================
	def load(self) -> 'FfmpegEngine':
		if self.loaded:
			return self
		binary = shutil.which(self.ffmpeg_bin)
		if binary is None:
			raise RuntimeError(f"ffmpeg binary not found: {self.ffmpeg_bin}")
		proc = subprocess.run([binary, '-hide_banner', '-version'],
			stdout=subprocess.PIPE, stderr=subprocess.PIPE)
		if proc.returncode != 0:
			raise RuntimeError(f"ffmpeg -version exited with code {proc.returncode}")
		work_dir = tempfile.mkdtemp(prefix="fitclip-engine-", dir=self.work_root)
		with self._lock:
			self.binary = binary
			self.work_dir = work_dir
		return self

	#============================
	def on(self, kind: str, handler) -> None:
		self._handlers[kind].append(handler)

	#============================
	def off(self, kind: str, handler) -> None:
		handlers = self._handlers[kind]
		if handler in handlers:
			handlers.remove(handler)

	#============================
	def _emit(self, kind: str, payload: dict) -> None:
		for handler in list(self._handlers[kind]):
			handler(payload)

	#============================
	def _path(self, name: str) -> str:
		if self.work_dir is None:
			raise RuntimeError("ffmpeg engine is not loaded")
		if name in ('', '.', '..') or os.path.basename(name) != name:
			raise RuntimeError(f"invalid engine file name: {name}")
		return os.path.join(self.work_dir, name)

	#============================
	def write_file(self, name: str, data: bytes) -> None:
		with open(self._path(name), 'wb') as handle:
			handle.write(data)

	#============================
	def read_file(self, name: str) -> bytes:
		with open(self._path(name), 'rb') as handle:
			return handle.read()

	#============================
	def delete_file(self, name: str) -> None:
		os.remove(self._path(name))

	#============================
	def exec(self, argv: list, duration: float = None) -> int:
		"""
		Run one ffmpeg command and return its exit code.

		Progress fractions are computed against duration when given,
		otherwise against the input Duration line in the log.
		"""
		with self._lock:
			if self.work_dir is None:
				raise RuntimeError("ffmpeg engine is not loaded")
			cmd = [self.binary] + ENGINE_FLAGS + list(argv)
			proc = subprocess.Popen(cmd, cwd=self.work_dir,
				stdout=subprocess.PIPE, stderr=subprocess.PIPE,
				stdin=subprocess.DEVNULL, text=True, encoding='utf-8',
				errors='replace')
			self._proc = proc
		state = {'duration': duration, 'proc': proc}
		log_thread = threading.Thread(target=self._read_log,
			args=(proc.stderr, state), daemon=True)
		log_thread.start()
		try:
			for line in proc.stdout:
				if 'error' in state:
					break
				self._handle_progress_line(line, state)
			if 'error' not in state:
				proc.wait()
		finally:
			# a failing handler must not leave ffmpeg running behind the pipes
			if proc.poll() is None:
				proc.kill()
				proc.wait()
			log_thread.join()
			with self._lock:
				if self._proc is proc:
					self._proc = None
			proc.stdout.close()
			proc.stderr.close()
		if 'error' in state:
			raise state['error']
		return proc.returncode

	#============================
	def _read_log(self, stream, state: dict) -> None:
		for line in stream:
			message = line.rstrip()
			if message == "" or 'error' in state:
				continue
			if state.get('duration') is None:
				found = parse_log_duration(message)
				if found is not None and found > 0:
					state['duration'] = found
			try:
				self._emit('log', {'type': 'stderr', 'message': message})
			except Exception as exc:
				# handed back to exec(); keep draining so ffmpeg never blocks
				state['error'] = exc
				proc = state.get('proc')
				if proc is not None and proc.poll() is None:
					proc.kill()

	#============================
	def _handle_progress_line(self, line: str, state: dict) -> None:
		line = line.strip()
		if '=' not in line:
			return
		(key, value) = line.split('=', 1)
		if key == 'progress' and value == 'end':
			self._emit('progress', {'progress': 1.0, 'time': state.get('time', 0.0)})
			return
		seconds = parse_progress_seconds(key, value)
		if seconds is None:
			return
		state['time'] = seconds
		duration = state.get('duration')
		if not duration or duration <= 0:
			return
		fraction = min(1.0, seconds / duration)
		self._emit('progress', {'progress': fraction, 'time': seconds})

	#============================
	def terminate(self) -> None:
		with self._lock:
			proc = self._proc
			work_dir = self.work_dir
			self.work_dir = None
		if proc is not None and proc.poll() is None:
			proc.kill()
			proc.wait()
		if work_dir is not None:
			shutil.rmtree(work_dir, ignore_errors=True)
