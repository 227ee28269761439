"""Test doubles shared across the test suite."""

import threading
import time

from llm.model_session import ModelSession


class FakeClock:
    """Settable millisecond clock."""

    def __init__(self, now=1_700_000_000_000):
        self.now = now

    def __call__(self):
        return self.now


class FakeModelSession(ModelSession):
    """Scriptable model session."""

    def __init__(self, system_prompt, reply="わかったわ。", delay=0.0, error=None, tracker=None,
                 replay_error=None):
        super().__init__(system_prompt)
        self.reply = reply
        self.delay = delay
        self.error = error
        self.tracker = tracker
        self.replay_error = replay_error
        self.prompts = []
        self.replayed = []
        self.recorded = []

    def send(self, prompt):
        self.prompts.append(prompt)
        if self.tracker:
            self.tracker.enter()
        try:
            if self.delay:
                time.sleep(self.delay)
            if self.error:
                raise self.error
            return self.reply
        finally:
            if self.tracker:
                self.tracker.exit()

    def replay(self, role, content):
        # Assistant turns replay fine; user turns fail when an error is scripted
        if self.replay_error and role == "user":
            raise self.replay_error
        self.replayed.append((role, content))

    def record_exchange(self, prompt, reply):
        self.recorded.append((prompt, reply))


class FakeFactory:
    """Model session factory keeping every session it builds."""

    def __init__(self, **session_kwargs):
        self.session_kwargs = session_kwargs
        self.sessions = []

    def __call__(self, system_prompt):
        session = FakeModelSession(system_prompt, **self.session_kwargs)
        self.sessions.append(session)
        return session

    @property
    def send_count(self):
        return sum(len(s.prompts) for s in self.sessions)


class ConcurrencyTracker:
    """Counts how many sends run at the same time."""

    def __init__(self):
        self._lock = threading.Lock()
        self.active = 0
        self.max_active = 0

    def enter(self):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)

    def exit(self):
        with self._lock:
            self.active -= 1

