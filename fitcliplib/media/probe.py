#python wrapper for ffprobe

import json
import subprocess

#===============================
def getMediaInfo(mediafile: str, ffprobe_bin: str = 'ffprobe') -> dict:
	cmd = [ffprobe_bin, '-v', 'error', '-show_format', '-show_streams',
		'-of', 'json', mediafile]
	proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
	if proc.returncode != 0:
		message = proc.stderr.decode('utf-8', errors='replace').strip()
		raise RuntimeError(f"ffprobe failed for {mediafile}: {message}")
	data = json.loads(proc.stdout)
	return data

#===============================
def getVideoDimensions(data: dict):
	for stream in data.get('streams', []):
		if stream.get('codec_type') != 'video':
			continue
		disposition = stream.get('disposition', {})
		if disposition.get('attached_pic'):
			continue
		return (int(stream['width']), int(stream['height']))
	return None

#===============================
def probeSource(mediafile: str, ffprobe_bin: str = 'ffprobe') -> dict:
	"""
	Width, height, duration and audio presence for one source file.
	"""
	data = getMediaInfo(mediafile, ffprobe_bin)
	dimensions = getVideoDimensions(data)
	if dimensions is None:
		raise RuntimeError(f"no video stream found in {mediafile}")
	duration = data.get('format', {}).get('duration')
	if duration is None:
		raise RuntimeError(f"no duration reported for {mediafile}")
	has_audio = False
	for stream in data.get('streams', []):
		if stream.get('codec_type') == 'audio':
			has_audio = True
	return {
		'width': dimensions[0],
		'height': dimensions[1],
		'duration': float(duration),
		'has_audio': has_audio,
	}
