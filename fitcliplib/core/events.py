#!/usr/bin/env python3

"""
Event channel between the transcoder and whoever is watching it.

Events are plain dicts keyed by 'event':
	{'event': 'log', 'message': str}
	{'event': 'progress', 'value': float}
	{'event': 'phase', 'phase': str}
"""

import queue
import threading

#============================================

# unread events kept for get()/drain(); older ones are dropped first
MAX_QUEUED_EVENTS = 1000

#============================================

class EventChannel():
	def __init__(self, max_queued: int = MAX_QUEUED_EVENTS):
		self._queue = queue.Queue(maxsize=max_queued)
		self._handlers = []
		self._lock = threading.Lock()

	#============================
	def subscribe(self, handler) -> None:
		with self._lock:
			self._handlers.append(handler)

	#============================
	def unsubscribe(self, handler) -> None:
		with self._lock:
			if handler in self._handlers:
				self._handlers.remove(handler)

	#============================
	def publish(self, event: dict) -> None:
		self._enqueue(event)
		with self._lock:
			handlers = list(self._handlers)
		for handler in handlers:
			handler(event)

	#============================
	def _enqueue(self, event: dict) -> None:
		while True:
			try:
				self._queue.put_nowait(event)
				return
			except queue.Full:
				pass
			try:
				self._queue.get_nowait()
			except queue.Empty:
				pass

	#============================
	def log(self, message: str) -> None:
		self.publish({'event': 'log', 'message': message})

	#============================
	def progress(self, value: float) -> None:
		self.publish({'event': 'progress', 'value': value})

	#============================
	def phase(self, phase: str) -> None:
		self.publish({'event': 'phase', 'phase': phase})

	#============================
	def get(self, timeout: float = None):
		"""Block for the next event; None when the timeout expires."""
		try:
			return self._queue.get(timeout=timeout)
		except queue.Empty:
			return None

	#============================
	def drain(self) -> list:
		events = []
		while True:
			try:
				events.append(self._queue.get_nowait())
			except queue.Empty:
				return events
