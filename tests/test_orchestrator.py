#!/usr/bin/env python3

"""
Unit tests for the transcoder state machine, driven by a scripted engine.
"""

# Standard Library
import os
import sys
import unittest

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
	sys.path.insert(0, REPO_ROOT)

# tests helpers
TESTS_DIR = os.path.abspath(os.path.dirname(__file__))
if TESTS_DIR not in sys.path:
	sys.path.insert(0, TESTS_DIR)
from fake_engine import FakeEngine

# local repo modules
from fitcliplib.core import orchestrator
from fitcliplib.core.errors import Cancelled
from fitcliplib.core.errors import EncodeExitNonZero
from fitcliplib.core.errors import EngineInitFailed
from fitcliplib.core.errors import TranscodeError
from fitcliplib.core.events import EventChannel
from fitcliplib.core.options import EditOptions

#============================================

def _options(**kwargs) -> EditOptions:
	return EditOptions(512000, 'mp4', 1920, 1080, 10.0, **kwargs)

#============================================

def _phases(events: list) -> list:
	return [event['phase'] for event in events if event['event'] == 'phase']

#============================================

class TranscoderTest(unittest.TestCase):
	#============================================
	def test_overshoot_runs_one_corrective_pass(self) -> None:
		engine = FakeEngine(output_sizes=[600000, 400000])
		transcoder = orchestrator.Transcoder(engine)
		channel = EventChannel()
		logs = []
		progress = []
		data = transcoder.transcode(b"source", _options(), on_log=logs.append,
			on_progress=progress.append, channel=channel)
		self.assertEqual(len(data), 400000)
		job = transcoder.job
		self.assertEqual(job.phase, orchestrator.DONE)
		self.assertEqual(job.ceiling_kbps, 261)
		self.assertEqual(job.corrective_kbps, 212)
		self.assertEqual(job.primary_bytes, 600000)
		self.assertEqual(job.final_bytes, 400000)
		self.assertEqual([p.pass_name for p in job.passes], ['primary', 'corrective'])
		self.assertIn('ultrafast', engine.commands[0])
		self.assertIn('212k', engine.commands[1])
		self.assertEqual(engine.durations, [10.0, 10.0])
		self.assertIn("[run] start", logs)
		self.assertIn("[run] max size=0.488281 MB, format=MP4", logs)
		self.assertIn("[size] pass 1 result: 585.9 KB (target: 500.0 KB)", logs)
		self.assertIn("[encode] pass 2 - adjusted video=212k (ratio 0.81)", logs)
		self.assertEqual(logs[-1], "[done] output 390.6 KB / target 500.0 KB")
		self.assertIn("[ffmpeg] frame=1 fps=0.0", logs)
		self.assertEqual(_phases(channel.drain()), [
			'loading', 'encoding_primary', 'size_check',
			'encoding_corrective', 'finalizing', 'done',
		])
		self.assertEqual(progress, sorted(progress))
		self.assertEqual(progress[-1], 1.0)
		self.assertEqual(engine.files, {})
		self.assertEqual(engine.handler_count(), 0)

	#============================================
	def test_within_budget_skips_corrective_pass(self) -> None:
		engine = FakeEngine(output_sizes=[300000])
		transcoder = orchestrator.Transcoder(engine)
		channel = EventChannel()
		data = transcoder.transcode(b"source", _options(), channel=channel)
		self.assertEqual(len(data), 300000)
		self.assertEqual(len(engine.commands), 1)
		self.assertIsNone(transcoder.job.corrective_kbps)
		self.assertEqual(_phases(channel.drain()), [
			'loading', 'encoding_primary', 'size_check', 'finalizing', 'done',
		])

	#============================================
	def test_progress_milestones(self) -> None:
		engine = FakeEngine(output_sizes=[600000, 400000])
		transcoder = orchestrator.Transcoder(engine)
		progress = []
		transcoder.transcode(b"source", _options(), on_progress=progress.append)
		for milestone in (0.05, 0.10, 0.55, 0.92, 1.0):
			self.assertTrue(any(abs(value - milestone) < 1e-9 for value in progress),
				f"missing milestone {milestone}")
		# halfway through the primary pass
		self.assertTrue(any(abs(value - 0.325) < 1e-9 for value in progress))
		self.assertTrue(all(b > a for a, b in zip(progress, progress[1:])))

	#============================================
	def test_cancel_during_primary_then_next_job_reloads(self) -> None:
		engine = FakeEngine(output_sizes=[300000])
		transcoder = orchestrator.Transcoder(engine)
		engine.during_exec = transcoder.cancel
		logs = []
		with self.assertRaises(Cancelled):
			transcoder.transcode(b"source", _options(), on_log=logs.append)
		self.assertEqual(transcoder.job.phase, orchestrator.CANCELLED)
		self.assertIn("[run] stopping...", logs)
		self.assertEqual(logs[-1], "[cancelled] processing stopped")
		self.assertFalse(engine.loaded)
		self.assertFalse(any(line.startswith("[cleanup]") for line in logs))

		engine.during_exec = None
		data = transcoder.transcode(b"source", _options())
		self.assertEqual(len(data), 300000)
		self.assertEqual(engine.load_count, 2)
		self.assertEqual(transcoder.job.phase, orchestrator.DONE)

	#============================================
	def test_cancel_without_job_is_noop(self) -> None:
		engine = FakeEngine()
		transcoder = orchestrator.Transcoder(engine)
		transcoder.cancel()
		self.assertEqual(engine.terminate_count, 0)

	#============================================
	def test_nonzero_exit_fails_job(self) -> None:
		engine = FakeEngine(exit_codes=[1])
		transcoder = orchestrator.Transcoder(engine)
		logs = []
		with self.assertRaises(EncodeExitNonZero) as context:
			transcoder.transcode(b"source", _options(), on_log=logs.append)
		self.assertEqual(context.exception.pass_name, 'primary')
		self.assertEqual(context.exception.exit_code, 1)
		self.assertEqual(transcoder.job.phase, orchestrator.FAILED)
		self.assertEqual(logs[-1], "[error] ffmpeg primary pass exited with code 1")
		self.assertNotIn("input.mp4", engine.files)
		self.assertEqual(engine.handler_count(), 0)

	#============================================
	def test_corrective_exit_fails_job(self) -> None:
		engine = FakeEngine(output_sizes=[600000], exit_codes=[0, 1])
		transcoder = orchestrator.Transcoder(engine)
		channel = EventChannel()
		with self.assertRaises(EncodeExitNonZero) as context:
			transcoder.transcode(b"source", _options(), channel=channel)
		self.assertEqual(context.exception.pass_name, 'corrective')
		self.assertEqual(transcoder.job.phase, orchestrator.FAILED)
		self.assertEqual(_phases(channel.drain())[-2:], ['encoding_corrective', 'failed'])
		self.assertEqual(engine.files, {})

	#============================================
	def test_cancel_during_corrective_pass(self) -> None:
		engine = FakeEngine(output_sizes=[600000, 400000])
		transcoder = orchestrator.Transcoder(engine)
		calls = []

		def cancel_on_second_pass() -> None:
			calls.append(1)
			if len(calls) == 2:
				transcoder.cancel()

		engine.during_exec = cancel_on_second_pass
		with self.assertRaises(Cancelled):
			transcoder.transcode(b"source", _options())
		self.assertEqual(transcoder.job.phase, orchestrator.CANCELLED)
		self.assertEqual(len(engine.commands), 2)
		self.assertIsNone(transcoder.job.final_bytes)
		self.assertFalse(engine.loaded)

	#============================================
	def test_loop_stages_bounded_concat_list(self) -> None:
		engine = FakeEngine(output_sizes=[300000])
		transcoder = orchestrator.Transcoder(engine)
		staged = {}
		original_write = engine.write_file

		def record_write(name: str, data: bytes) -> None:
			staged[name] = data
			original_write(name, data)

		engine.write_file = record_write
		options = EditOptions(512000, 'mp4', 320, 240, 3.0, trim_end=1.0, loop=2)
		logs = []
		transcoder.transcode(b"source", options, on_log=logs.append)
		script = staged['loop.txt'].decode('utf-8')
		self.assertEqual(script.count("file 'input.mp4'"), 2)
		self.assertEqual(script.count("outpoint 1.000"), 2)
		self.assertEqual(engine.commands[0][:6],
			['-f', 'concat', '-safe', '0', '-i', 'loop.txt'])
		self.assertIn("[input] looping trim window 2 times", logs)
		self.assertEqual(engine.durations, [2.0])
		self.assertEqual(engine.files, {})

	#============================================
	def test_engine_load_failure(self) -> None:
		engine = FakeEngine(fail_load=True)
		transcoder = orchestrator.Transcoder(engine)
		with self.assertRaises(EngineInitFailed):
			transcoder.transcode(b"source", _options())
		self.assertEqual(transcoder.job.phase, orchestrator.FAILED)
		self.assertIsInstance(transcoder.job.error, TranscodeError)

	#============================================
	def test_empty_primary_output_skips_correction(self) -> None:
		engine = FakeEngine(output_sizes=[0])
		transcoder = orchestrator.Transcoder(engine)
		data = transcoder.transcode(b"source", _options())
		self.assertEqual(data, b"")
		self.assertEqual(len(engine.commands), 1)

	#============================================
	def test_unexpected_error_is_wrapped(self) -> None:
		engine = FakeEngine()
		transcoder = orchestrator.Transcoder(engine)
		with self.assertRaises(TranscodeError):
			transcoder.transcode(b"source", _options(container='avi'))
		self.assertEqual(transcoder.job.phase, orchestrator.FAILED)

	#============================================
	def test_second_job_rejected_while_running(self) -> None:
		engine = FakeEngine()
		transcoder = orchestrator.Transcoder(engine)
		running = orchestrator.Job(_options(), EventChannel())
		running.phase = orchestrator.ENCODING_PRIMARY
		transcoder.job = running
		with self.assertRaises(RuntimeError):
			transcoder.transcode(b"source", _options())
		self.assertEqual(engine.commands, [])

	#============================================
	def test_shutdown_terminates_engine(self) -> None:
		engine = FakeEngine()
		transcoder = orchestrator.Transcoder(engine)
		transcoder.init()
		self.assertTrue(engine.loaded)
		transcoder.shutdown()
		self.assertFalse(engine.loaded)

#============================================

class JobTest(unittest.TestCase):
	#============================================
	def test_illegal_transition(self) -> None:
		job = orchestrator.Job(_options(), EventChannel())
		with self.assertRaises(RuntimeError):
			job.advance(orchestrator.DONE)
		job.advance(orchestrator.LOADING)
		job.advance(orchestrator.FAILED)
		self.assertTrue(job.terminal)
		with self.assertRaises(RuntimeError):
			job.advance(orchestrator.CANCELLED)

	#============================================
	def test_progress_is_monotonic(self) -> None:
		channel = EventChannel()
		job = orchestrator.Job(_options(), channel)
		job.report_progress(0.4)
		job.report_progress(0.2)
		job.report_progress(1.7)
		values = [event['value'] for event in channel.drain()]
		self.assertEqual(values, [0.4, 1.0])
		self.assertEqual(job.progress, 1.0)

#============================================

def main() -> None:
	"""Run the unit tests."""
	unittest.main()

#============================================

if __name__ == "__main__":
	main()
