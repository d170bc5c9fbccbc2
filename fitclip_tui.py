#!/usr/bin/env python3

"""
Textual dashboard for one fitclip job.
"""

# Standard Library
import argparse
import os
import re
import sys
import threading
import time

script_dir = os.path.dirname(os.path.abspath(__file__))
if script_dir not in sys.path:
	sys.path.insert(0, script_dir)

# PIP3 modules
from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import RichLog, Static
from rich.text import Text

# local repo modules
from fitcliplib.core import geometry
from fitcliplib.core import utils
from fitcliplib.core.errors import Cancelled
from fitcliplib.core.events import EventChannel
from fitcliplib.core.loader import JobLoader
from fitcliplib.core.orchestrator import Transcoder

#============================================

NORD_COLORS = {
	'foreground': "#D8DEE9",
	'dim': "#4C566A",
	'header': "#88C0D0",
	'command': "#ECEFF4",
	'flags': "#81A1C1",
	'numbers': "#B48EAD",
	'paths': "#A3BE8C",
	'strings': "#EBCB8B",
	'error': "#BF616A",
}

TAG_STYLES = {
	'[init]': 'header',
	'[input]': 'header',
	'[crop]': 'flags',
	'[encode]': 'strings',
	'[run]': 'command',
	'[size]': 'numbers',
	'[done]': 'paths',
	'[ffmpeg]': 'dim',
	'[cleanup]': 'dim',
	'[cancelled]': 'strings',
	'[error]': 'error',
}

TAG_RE = re.compile(r"^\[[a-z]+\]")

STATUS_STYLES = {
	'running': 'foreground',
	'done': 'paths',
	'failed': 'error',
	'cancelled': 'strings',
}

#============================================

def parse_args():
	"""
	Parse command-line arguments.
	"""
	parser = argparse.ArgumentParser(description="fitclip TUI")
	parser.add_argument('-y', '--yaml', dest='yamlfile', required=True,
		help='job yaml file with source, budget and edit settings')
	parser.add_argument('-o', '--output', dest='output_file',
		help='override output file from yaml')
	args = parser.parse_args()
	return args

#============================================

def format_clock(seconds: float) -> str:
	"""Whole seconds as M:SS, or H:MM:SS past the hour."""
	total = int(seconds)
	(hours, remainder) = divmod(total, 3600)
	(minutes, secs) = divmod(remainder, 60)
	if hours:
		return f"{hours}:{minutes:02d}:{secs:02d}"
	return f"{minutes}:{secs:02d}"

#============================================

def progress_bar(fraction: float, width: int = 24) -> str:
	fraction = min(1.0, max(0.0, fraction))
	filled = int(round(fraction * width))
	return "#" * filled + "-" * (width - filled)

#============================================

def highlight_line(message: str) -> Text:
	text = Text(message, style=NORD_COLORS['foreground'])
	match = TAG_RE.match(message)
	if match is None:
		return text
	color_key = TAG_STYLES.get(match.group(0))
	if color_key == 'dim':
		text.stylize(NORD_COLORS['dim'], 0, len(message))
	elif color_key is not None:
		text.stylize(f"bold {NORD_COLORS[color_key]}", 0, match.end())
	return text

#============================================

def estimate_remaining(progress: float, elapsed: float):
	"""Linear estimate; None until the first pass is under way."""
	if progress <= 0.1 or progress >= 1.0:
		return None
	return elapsed / progress * (1.0 - progress)

#============================================

class FitclipTuiApp(App):
	BINDINGS = [
		("c", "cancel_job", "Cancel"),
		("q", "quit", "Quit"),
	]

	CSS = """
	#top_row {
		height: 9;
	}

	#dashboard {
		width: 45%;
		border: solid gray;
	}

	#job_info {
		width: 55%;
		border: solid gray;
	}

	#hint {
		height: 1;
		color: #4C566A;
	}

	#log {
		height: 1fr;
		border: solid gray;
	}
	"""

	def __init__(self, yaml_file: str, output_override: str = None):
		super().__init__()
		self.yaml_file = yaml_file
		self.output_override = output_override
		self.transcoder = Transcoder()
		self.channel = EventChannel()
		self.spec = None
		self.phase = 'idle'
		self.progress = 0.0
		self.started = None
		self.elapsed = None
		self.status = 'running'
		self.output_size = None
		self.error_text = None
		self.worker_done = False
		self.finished = False

	#============================
	def compose(self) -> ComposeResult:
		with Vertical():
			with Horizontal(id="top_row"):
				yield Static("", id="dashboard")
				yield Static("", id="job_info")
			yield Static("c cancel | q quit", id="hint")
			yield RichLog(id="log", wrap=True, highlight=False)

	#============================
	def on_mount(self) -> None:
		self.started = time.time()
		self._show_job()
		threading.Thread(target=self._run_job, daemon=True).start()
		self.set_interval(0.1, self._pump_events)
		self.set_interval(0.5, self._show_dashboard)

	#============================
	def action_cancel_job(self) -> None:
		if not self.finished:
			self.transcoder.cancel()

	#============================
	def action_quit(self) -> None:
		# the worker never touches the app, so exiting under it is safe
		self.transcoder.cancel()
		self.exit()

	#============================
	def _run_job(self) -> None:
		try:
			overrides = {'output': {'file': self.output_override}}
			self.spec = JobLoader(self.yaml_file, overrides=overrides).load()
			with open(self.spec.source_file, 'rb') as handle:
				source_bytes = handle.read()
			data = self.transcoder.transcode(source_bytes, self.spec.options,
				channel=self.channel)
			with open(self.spec.output_file, 'wb') as handle:
				handle.write(data)
			self.output_size = len(data)
			self.status = 'done'
		except Cancelled:
			self.status = 'cancelled'
		except Exception as exc:
			self.error_text = str(exc)
			self.status = 'failed'
		finally:
			self.transcoder.shutdown()
			self.worker_done = True

	#============================
	def _pump_events(self) -> None:
		log_widget = self.query_one("#log", RichLog)
		for event in self.channel.drain():
			kind = event.get('event')
			if kind == 'progress':
				self.progress = event['value']
			elif kind == 'phase':
				self.phase = event['phase']
				self._show_job()
			elif kind == 'log':
				log_widget.write(highlight_line(event['message']))
		if self.worker_done and not self.finished:
			self._finish(log_widget)

	#============================
	def _finish(self, log_widget: RichLog) -> None:
		self.finished = True
		self.elapsed = time.time() - self.started
		if self.status == 'done':
			line = f"saved {self.spec.output_file} ({utils.pretty_bytes(self.output_size)})"
			log_widget.write(Text(line, style=f"bold {NORD_COLORS['paths']}"))
		elif self.status == 'failed':
			line = f"error: {self.error_text}"
			log_widget.write(Text(line, style=f"bold {NORD_COLORS['error']}"))
		self._show_job()
		self._show_dashboard()

	#============================
	def _show_dashboard(self) -> None:
		elapsed = self.elapsed
		if elapsed is None:
			elapsed = time.time() - (self.started or time.time())
		remaining = None
		if not self.finished:
			remaining = estimate_remaining(self.progress, elapsed)
		rows = [
			("Status", self.status, STATUS_STYLES[self.status]),
			("Phase", self.phase.replace('_', ' '), 'foreground'),
			("Progress", f"{progress_bar(self.progress)} {self.progress * 100:.0f}%", 'header'),
			("Elapsed", format_clock(elapsed), 'numbers'),
			("Left", format_clock(remaining) if remaining is not None else "--", 'numbers'),
		]
		self.query_one("#dashboard", Static).update(self._table(rows))

	#============================
	def _show_job(self) -> None:
		rows = [("Job", self.yaml_file, 'paths')]
		if self.spec is not None:
			options = self.spec.options
			pixel_rect = geometry.crop_pixels(options.crop, options.width, options.height)
			budget = f"{utils.pretty_bytes(options.max_bytes)} as {options.container.upper()}"
			rows.append(("Output", self.spec.output_file, 'paths'))
			rows.append(("Budget", f"{budget}, {options.quality} quality", 'numbers'))
			rows.append(("Crop", f"{geometry.describe_rect(pixel_rect)} of "
				f"{options.width}x{options.height}", 'numbers'))
			rows.append(("Timing", f"{utils.format_number(options.speed)}x, "
				f"loop {options.loop}, audio {'on' if options.audio else 'off'}", 'foreground'))
		self.query_one("#job_info", Static).update(self._table(rows))

	#============================
	def _table(self, rows: list) -> Text:
		text = Text()
		for (index, (label, value, color_key)) in enumerate(rows):
			if index:
				text.append("\n")
			text.append(f"{label:<9}", style=NORD_COLORS['dim'])
			text.append(str(value), style=NORD_COLORS[color_key])
		return text

#============================================

def main():
	args = parse_args()
	app = FitclipTuiApp(args.yamlfile, output_override=args.output_file)
	app.run()

#============================================

if __name__ == '__main__':
	main()
