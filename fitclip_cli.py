#!/usr/bin/env python3

import argparse
import sys
import threading
import yaml
from tqdm import tqdm
from fitcliplib.core import arguments
from fitcliplib.core import bitrate
from fitcliplib.core import options as options_module
from fitcliplib.core import timing
from fitcliplib.core import utils
from fitcliplib.core.errors import Cancelled
from fitcliplib.core.errors import TranscodeError
from fitcliplib.core.events import EventChannel
from fitcliplib.core.loader import JobLoader
from fitcliplib.core.orchestrator import Transcoder

#============================================

def parse_args(argv=None):
	"""
	Parse command-line arguments.
	"""
	parser = argparse.ArgumentParser(description="Fit a video clip under a size budget")
	parser.add_argument('-y', '--yaml', dest='yamlfile',
		help='job yaml file with source, budget and edit settings')
	parser.add_argument('-i', '--input', dest='input_file',
		help='source video file (overrides yaml)')
	parser.add_argument('-o', '--output', dest='output_file',
		help='output file (overrides yaml)')
	parser.add_argument('-s', '--max-size', dest='max_size_mb', type=float,
		help='size budget in MB (default 0.49)')
	parser.add_argument('-f', '--format', dest='container', choices=('mp4', 'webm'),
		help='output container')
	parser.add_argument('-q', '--quality', dest='quality',
		choices=options_module.QUALITY_TIERS, help='quality tier')
	parser.add_argument('--crop', dest='crop',
		help='fractional crop as x,y,w,h (for example 0.25,0.25,0.5,0.5)')
	parser.add_argument('--aspect', dest='aspect',
		choices=sorted(options_module.ASPECT_PRESETS.keys()),
		help='centered crop with this aspect ratio')
	parser.add_argument('--start', dest='trim_start', help='trim start time')
	parser.add_argument('--end', dest='trim_end', help='trim end time')
	parser.add_argument('--speed', dest='speed', type=float, help='playback speed')
	parser.add_argument('--loop', dest='loop', type=int, help='loop count')
	parser.add_argument('--fps', dest='fps', type=float, help='frame rate cap, 0 for none')
	parser.add_argument('-a', '--audio', dest='audio', action='store_true',
		help='keep the audio track')
	parser.add_argument('-A', '--no-audio', dest='audio', action='store_false',
		help='drop the audio track')
	parser.add_argument('-p', '--dump-plan', dest='dump_plan', action='store_true',
		help='print the planned first pass and exit')
	parser.add_argument('--quiet', dest='quiet', action='store_true',
		help='only print errors and the final result')
	parser.set_defaults(audio=None)
	args = parser.parse_args(argv)
	if args.yamlfile is None and args.input_file is None:
		parser.error("either --yaml or --input is required")
	return args

#============================================

def parse_crop_text(crop_text: str) -> dict:
	parts = [part.strip() for part in crop_text.split(',')]
	if len(parts) != 4:
		raise RuntimeError("--crop needs four values: x,y,w,h")
	values = [float(part) for part in parts]
	return {'x': values[0], 'y': values[1], 'w': values[2], 'h': values[3]}

#============================================

def build_overrides(args) -> dict:
	crop = None
	if args.aspect is not None:
		crop = {'aspect': args.aspect}
	elif args.crop is not None:
		crop = parse_crop_text(args.crop)
	trim = None
	if args.trim_start is not None or args.trim_end is not None:
		trim = {'start': args.trim_start, 'end': args.trim_end}
	overrides = {
		'source': {'file': args.input_file} if args.input_file else None,
		'output': {'file': args.output_file, 'format': args.container},
		'budget': {'max_size_mb': args.max_size_mb},
		'edit': {
			'crop': crop,
			'trim': trim,
			'speed': args.speed,
			'loop': args.loop,
			'fps': args.fps,
			'quality': args.quality,
			'audio': args.audio,
		},
	}
	return overrides

#============================================

def build_plan(spec) -> dict:
	options = spec.options
	duration = timing.effective_duration(options.duration, options.trim_start,
		options.trim_end, options.speed, options.loop)
	ceiling = bitrate.ceiling_bitrate(options.max_bytes, duration,
		options.audio_kbps, options_module.ceiling_headroom(options.quality))
	input_name = "input" + utils.input_extension(options.source_name)
	primary = arguments.build_primary_args(options, input_name, ceiling)
	plan = {
		'source': spec.source_file,
		'output': spec.output_file,
		'max_bytes': options.max_bytes,
		'effective_duration': round(duration, 3),
		'ceiling_kbps': ceiling,
		'video_filters': primary.video_filters,
		'audio_filters': primary.audio_filters,
		'argv': primary.argv,
	}
	if options.loop > 1:
		plan['loop_list'] = timing.loop_list(input_name, options.trim_start,
			options.trim_end, options.loop)
	return plan

#============================================

def run_job(spec, transcoder: Transcoder) -> bytes:
	"""
	Run the transcode on a worker thread so Ctrl-C can cancel it, and
	print its events from this thread as they arrive.
	"""
	with open(spec.source_file, 'rb') as handle:
		source_bytes = handle.read()
	channel = EventChannel()
	quiet = utils.is_quiet_mode()
	progress_bar = None
	if not quiet:
		progress_bar = tqdm(total=100, unit='%', leave=False)

	def show(event: dict) -> None:
		kind = event.get('event')
		if kind == 'log' and progress_bar is not None:
			message = event['message']
			if not message.startswith('[ffmpeg]'):
				progress_bar.write(message)
		elif kind == 'progress' and progress_bar is not None:
			progress_bar.n = int(round(event['value'] * 100))
			progress_bar.refresh()

	outcome = {}

	def worker() -> None:
		try:
			outcome['data'] = transcoder.transcode(source_bytes, spec.options,
				channel=channel)
		except Exception as exc:
			outcome['error'] = exc

	thread = threading.Thread(target=worker, daemon=True)
	thread.start()
	try:
		while thread.is_alive():
			event = channel.get(timeout=0.2)
			if event is not None:
				show(event)
	except KeyboardInterrupt:
		transcoder.cancel()
		thread.join()
	finally:
		for event in channel.drain():
			show(event)
		if progress_bar is not None:
			progress_bar.close()
	if 'error' in outcome:
		raise outcome['error']
	return outcome['data']

#============================================

def main(argv=None) -> int:
	args = parse_args(argv)
	utils.set_quiet_mode(args.quiet)
	try:
		loader = JobLoader(args.yamlfile, overrides=build_overrides(args))
		spec = loader.load()
	except (RuntimeError, ValueError) as exc:
		print(f"[error] {exc}", file=sys.stderr)
		return 1
	if args.dump_plan:
		print(yaml.safe_dump(build_plan(spec), sort_keys=False))
		return 0
	transcoder = Transcoder()
	try:
		data = run_job(spec, transcoder)
	except Cancelled:
		print("[cancelled] processing stopped", file=sys.stderr)
		return 130
	except TranscodeError as exc:
		print(f"[error] {exc}", file=sys.stderr)
		return 1
	finally:
		transcoder.shutdown()
	with open(spec.output_file, 'wb') as handle:
		handle.write(data)
	print(f"[complete] {utils.pretty_bytes(len(data))} - {spec.output_file}")
	return 0


if __name__ == '__main__':
	sys.exit(main())
