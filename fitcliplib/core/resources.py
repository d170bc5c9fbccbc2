#!/usr/bin/env python3

#============================================

class ScopedArtifacts():
	"""
	Tracks the files a job puts into the engine working directory and
	removes them on every exit path. Removal is best effort: failures are
	logged and dropped so the error that ended the job still propagates.
	"""
	def __init__(self, engine, channel=None):
		self.engine = engine
		self.channel = channel
		self.names = []

	#============================
	def __enter__(self):
		return self

	#============================
	def __exit__(self, exc_type, exc_value, traceback) -> bool:
		self.release()
		return False

	#============================
	def _track(self, name: str) -> None:
		if name not in self.names:
			self.names.append(name)

	#============================
	def stage_input(self, name: str, data: bytes) -> None:
		self._track(name)
		self.engine.write_file(name, data)

	#============================
	def claim_output(self, name: str) -> None:
		self._track(name)

	#============================
	def release(self) -> None:
		names = self.names
		self.names = []
		if not self.engine.loaded:
			# a terminated engine already discarded its working files
			return
		for name in names:
			try:
				self.engine.delete_file(name)
			except Exception as exc:
				if self.channel is not None:
					self.channel.log(f"[cleanup] could not remove {name}: {exc}")
