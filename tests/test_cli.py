#!/usr/bin/env python3

"""
Unit tests for fitclip_cli argument handling and plan output.
"""

# Standard Library
import os
import sys

# PIP3 modules
import pytest
import yaml

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
	sys.path.insert(0, REPO_ROOT)

# tests helpers
TESTS_DIR = os.path.abspath(os.path.dirname(__file__))
if TESTS_DIR not in sys.path:
	sys.path.insert(0, TESTS_DIR)
from fake_engine import FakeEngine

# local repo modules
import fitclip_cli
from fitcliplib.core import utils
from fitcliplib.core.loader import JobLoader
from fitcliplib.core.orchestrator import Transcoder

#============================================

def _write_job(temp_dir: str) -> str:
	clip_path = os.path.join(temp_dir, "clip.mp4")
	with open(clip_path, "wb") as clip_file:
		clip_file.write(b"")
	yaml_path = os.path.join(temp_dir, "job.yaml")
	lines = []
	lines.append("fitclip: 1")
	lines.append("source: {file: clip.mp4, width: 640, height: 480, duration: 10}")
	lines.append("output: {file: out.mp4}")
	with open(yaml_path, "w") as yaml_file:
		yaml_file.write("\n".join(lines))
		yaml_file.write("\n")
	return yaml_path

#============================================

def test_parse_args_requires_source() -> None:
	with pytest.raises(SystemExit):
		fitclip_cli.parse_args([])

#============================================

def test_build_overrides_from_flags() -> None:
	args = fitclip_cli.parse_args(['-i', 'clip.mp4', '-s', '1.5',
		'--crop', '0.1,0.1,0.5,0.5', '--no-audio', '--start', '00:02',
		'-f', 'webm'])
	overrides = fitclip_cli.build_overrides(args)
	assert overrides['source'] == {'file': 'clip.mp4'}
	assert overrides['budget'] == {'max_size_mb': 1.5}
	assert overrides['output']['format'] == 'webm'
	assert overrides['edit']['crop'] == {'x': 0.1, 'y': 0.1, 'w': 0.5, 'h': 0.5}
	assert overrides['edit']['trim'] == {'start': '00:02', 'end': None}
	assert overrides['edit']['audio'] is False

#============================================

def test_audio_flag_defaults_to_source() -> None:
	args = fitclip_cli.parse_args(['-y', 'job.yaml'])
	overrides = fitclip_cli.build_overrides(args)
	assert overrides['edit']['audio'] is None
	assert overrides['source'] is None
	assert overrides['edit']['trim'] is None

#============================================

def test_aspect_wins_over_crop() -> None:
	args = fitclip_cli.parse_args(['-i', 'clip.mp4', '--aspect', '9:16',
		'--crop', '0,0,1,1'])
	assert fitclip_cli.build_overrides(args)['edit']['crop'] == {'aspect': '9:16'}

#============================================

def test_parse_crop_text_needs_four_values() -> None:
	with pytest.raises(RuntimeError):
		fitclip_cli.parse_crop_text("0.1,0.2")

#============================================

def test_dump_plan(tmp_path, capsys) -> None:
	yaml_path = _write_job(str(tmp_path))
	exit_code = fitclip_cli.main(['-y', yaml_path, '-p', '-s', '1', '--speed', '2'])
	assert exit_code == 0
	plan = yaml.safe_load(capsys.readouterr().out)
	assert plan['max_bytes'] == 1048576
	assert plan['effective_duration'] == 5.0
	assert plan['output'] == os.path.join(str(tmp_path), "out.mp4")
	assert plan['video_filters'] == "crop=640:480:0:0,setpts=0.5000*PTS"
	assert plan['audio_filters'] == "atempo=2.0000"
	assert plan['argv'][-1] == "output.mp4"

#============================================

def test_load_error_returns_one(tmp_path, capsys) -> None:
	missing = os.path.join(str(tmp_path), "missing.mp4")
	exit_code = fitclip_cli.main(['-i', missing, '--quiet'])
	assert exit_code == 1
	assert "[error]" in capsys.readouterr().err

#============================================

def test_run_job_prints_events_as_they_arrive(tmp_path, capsys) -> None:
	utils.set_quiet_mode(False)
	spec = JobLoader(_write_job(str(tmp_path))).load()
	engine = FakeEngine(output_sizes=[4096])
	data = fitclip_cli.run_job(spec, Transcoder(engine))
	assert len(data) == 4096
	captured = capsys.readouterr()
	text = captured.out + captured.err
	assert "[run] start" in text
	assert "[done] output 4.0 KB" in text
	# encoder chatter stays off the terminal
	assert "[ffmpeg]" not in text
