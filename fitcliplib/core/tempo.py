#!/usr/bin/env python3

ATEMPO_MIN = 0.5
ATEMPO_MAX = 2.0

#============================================

def _speed_changes(speed) -> bool:
	try:
		value = float(speed)
	except (TypeError, ValueError):
		return False
	# also rejects NaN
	if not value > 0:
		return False
	return value != 1

#============================================

def tempo_stage_values(speed) -> list:
	"""
	Split a speed factor into atempo stages that each stay in [0.5, 2.0].
	"""
	if not _speed_changes(speed):
		return []
	stages = []
	remaining = float(speed)
	while remaining < ATEMPO_MIN:
		stages.append(ATEMPO_MIN)
		remaining /= ATEMPO_MIN
	while remaining > ATEMPO_MAX:
		stages.append(ATEMPO_MAX)
		remaining /= ATEMPO_MAX
	stages.append(remaining)
	return stages

#============================================

def build_atempo_filters(speed) -> list:
	stages = tempo_stage_values(speed)
	filters = []
	for value in stages[:-1]:
		filters.append(f"atempo={value:.1f}")
	if stages:
		filters.append(f"atempo={stages[-1]:.4f}")
	return filters

#============================================

def build_setpts_filter(speed):
	if not _speed_changes(speed):
		return None
	return f"setpts={1.0 / float(speed):.4f}*PTS"
