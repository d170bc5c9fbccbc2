#!/usr/bin/env python3

#============================================

class TranscodeError(RuntimeError):
	pass

#============================================

class EngineInitFailed(TranscodeError):
	pass

#============================================

class InputStagingFailed(TranscodeError):
	pass

#============================================

class EncodeExitNonZero(TranscodeError):
	def __init__(self, pass_name: str, exit_code: int):
		self.pass_name = pass_name
		self.exit_code = exit_code
		super().__init__(f"ffmpeg {pass_name} pass exited with code {exit_code}")

#============================================

class Cancelled(TranscodeError):
	def __init__(self, message: str = "processing stopped"):
		super().__init__(message)
