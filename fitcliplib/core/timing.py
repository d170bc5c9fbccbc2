#!/usr/bin/env python3

SPEED_FLOOR = 0.25

# concat demuxer list used when the trimmed window repeats
LOOP_LIST_NAME = 'loop.txt'

#============================================

def effective_duration(duration: float, trim_start: float = None,
	trim_end: float = None, speed: float = 1.0, loop: int = 1) -> float:
	"""
	Output length after trim, loop and speed are applied.

	Trim bounds are the caller's responsibility; an absent end means the
	full source duration.
	"""
	end = trim_end if trim_end else duration
	start = trim_start if trim_start else 0
	return ((end - start) * loop) / max(SPEED_FLOOR, speed)

#============================================

def validate_trim(duration: float, trim_start: float = None,
	trim_end: float = None) -> None:
	start = 0.0 if trim_start is None else float(trim_start)
	end = float(duration) if trim_end is None else float(trim_end)
	if start < 0:
		raise ValueError("trim start must be zero or positive")
	if end <= start:
		raise ValueError("trim end must be after trim start")
	if end > duration:
		raise ValueError("trim end must not exceed the source duration")

#============================================

def validate_speed(speed: float) -> None:
	if not speed > 0:
		raise ValueError("speed must be positive")

#============================================

def validate_loop(loop: int) -> None:
	if int(loop) != loop or loop < 1:
		raise ValueError("loop count must be a whole number of at least 1")

#============================================

def output_duration(duration: float, trim_start: float = None,
	trim_end: float = None, speed: float = 1.0, loop: int = 1) -> float:
	"""
	Playback length the encoder actually produces. Unlike
	effective_duration there is no floor on speed, because setpts and
	atempo apply the real factor.
	"""
	end = trim_end if trim_end else duration
	start = trim_start if trim_start else 0
	return ((end - start) * loop) / speed

#============================================

def loop_list(input_name: str, trim_start: float = None,
	trim_end: float = None, loop: int = 1) -> str:
	"""
	Concat demuxer script that plays the trim window loop times.
	"""
	lines = ["ffconcat version 1.0"]
	for _ in range(int(loop)):
		lines.append(f"file '{input_name}'")
		if trim_start and trim_start > 0:
			lines.append(f"inpoint {trim_start:.3f}")
		if trim_end and trim_end > 0:
			lines.append(f"outpoint {trim_end:.3f}")
	return "\n".join(lines) + "\n"

#============================================

def input_arguments(input_name: str, trim_start: float = None,
	loop: int = 1) -> list:
	if loop > 1:
		# each repeat is bounded inside the list, so no -ss here
		return ['-f', 'concat', '-safe', '0', '-i', LOOP_LIST_NAME]
	args = []
	if trim_start and trim_start > 0:
		args += ['-ss', f"{trim_start:.3f}"]
	args += ['-i', input_name]
	return args

#============================================

def limit_arguments(duration: float, trim_start: float = None,
	trim_end: float = None, speed: float = 1.0, loop: int = 1) -> list:
	span = (trim_end if trim_end else duration) - (trim_start or 0)
	if span <= 0:
		return []
	inner_end = bool(trim_end) and 0 < trim_end < duration
	if not inner_end and loop <= 1:
		return []
	limit = output_duration(duration, trim_start, trim_end, speed, loop)
	return ['-t', f"{limit:.3f}"]
