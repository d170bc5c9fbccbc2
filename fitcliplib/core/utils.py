#!/usr/bin/env python3

import math
import os
import re
import time
from decimal import Decimal

#============================================

_QUIET_MODE = False
DEFAULT_MAX_SIZE_MB = 0.49

#============================================

def set_quiet_mode(enabled: bool) -> None:
	global _QUIET_MODE
	_QUIET_MODE = bool(enabled)

#============================================

def is_quiet_mode() -> bool:
	return _QUIET_MODE

#============================================

def parse_timecode(raw_time) -> Decimal:
	if raw_time is None:
		raise RuntimeError("time value is required")
	if isinstance(raw_time, bool):
		raise RuntimeError("time values must be int, float, or timecode string")
	if isinstance(raw_time, int):
		return Decimal(raw_time)
	if isinstance(raw_time, float):
		return Decimal(str(raw_time))
	if isinstance(raw_time, str):
		value = raw_time.strip()
		if ':' not in value:
			return Decimal(value)
		parts = value.split(':')
		seconds = Decimal(parts.pop())
		minutes = Decimal(parts.pop())
		hours = Decimal(0)
		if len(parts) > 0:
			hours = Decimal(parts.pop())
		return hours * Decimal(3600) + minutes * Decimal(60) + seconds
	raise RuntimeError("time values must be int, float, or timecode string")

#============================================

def parse_max_size_mb(raw_value) -> float:
	"""
	Read a megabyte budget the way the size field does: anything that is
	not a positive number falls back to the default budget.
	"""
	try:
		value = float(raw_value)
	except (TypeError, ValueError):
		return DEFAULT_MAX_SIZE_MB
	if not math.isfinite(value) or value <= 0:
		return DEFAULT_MAX_SIZE_MB
	return value

#============================================

def megabytes_to_bytes(megabytes: float) -> int:
	return int(math.floor(megabytes * 1024 * 1024))

#============================================

def pretty_bytes(num_bytes) -> str:
	try:
		value = float(num_bytes)
	except (TypeError, ValueError):
		return "N/A"
	if not math.isfinite(value) or value <= 0:
		return "N/A"
	units = ("B", "KB", "MB", "GB")
	index = 0
	while value >= 1024 and index < len(units) - 1:
		value /= 1024
		index += 1
	if index == 0:
		decimals = 0
	elif index == 1:
		decimals = 1
	else:
		decimals = 2
	return f"{value:.{decimals}f} {units[index]}"

#============================================

def format_number(value: float) -> str:
	"""Format a float without a trailing .0 for whole numbers."""
	if float(value).is_integer():
		return str(int(value))
	return f"{value:g}"

#============================================

def input_extension(source_name: str) -> str:
	if source_name:
		match = re.search(r"\.[a-zA-Z0-9]+$", source_name)
		if match:
			return match.group(0)
	return ".mp4"

#============================================

def ensure_file_exists(filepath: str) -> None:
	if not os.path.exists(filepath):
		raise RuntimeError(f"file not found: {filepath}")
	return

#============================================

def make_timestamp() -> str:
	datestamp = time.strftime("%y%b%d").lower()
	uppercase = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
	hourstamp = uppercase[(time.localtime()[3]) % 26]
	minstamp = f"{time.localtime()[4]:02d}"
	secstamp = uppercase[(time.localtime()[5]) % 26]
	timestamp = datestamp + hourstamp + minstamp + secstamp
	return timestamp
