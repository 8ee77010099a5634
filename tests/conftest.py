"""Shared fixtures: in-memory stand-ins for the browser voice capabilities."""

import asyncio
from typing import Callable, List, Optional

import pytest

from aidohealth.voice.commands import CommandRegistry
from aidohealth.voice.config import VoiceConfig
from aidohealth.voice.engine import VoiceCommandEngine
from aidohealth.voice.interfaces import (
    PermissionAuthority,
    PermissionState,
    RecognitionListener,
    RecognitionSource,
    SynthesisListener,
    SynthesisSink,
    UtteranceRequest,
    Voice,
)
from aidohealth.voice.scheduler import RestartScheduler


class FakeRecognitionSource(RecognitionSource):
    """Recognizer driven by the test through the emit_* helpers."""

    def __init__(self, fail_on_start: bool = False, reject_while_running: bool = False):
        self.listener: Optional[RecognitionListener] = None
        self.fail_on_start = fail_on_start
        self.reject_while_running = reject_while_running
        self.starts = 0
        self.stops = 0
        self.running = False

    def bind(self, listener: RecognitionListener) -> None:
        self.listener = listener

    def start(self) -> None:
        self.starts += 1
        if self.fail_on_start:
            raise RuntimeError("recognition service unavailable")
        if self.running and self.reject_while_running:
            raise RuntimeError("recognition has already started")
        self.running = True

    def stop(self) -> None:
        self.stops += 1
        self.running = False

    def emit_start(self):
        self.listener.on_recognition_start()

    def emit_final(self, text: str):
        self.listener.on_recognition_result("", text)

    def emit_interim(self, text: str):
        self.listener.on_recognition_result(text, "")

    def emit_error(self, code: str):
        self.listener.on_recognition_error(code)

    def emit_end(self):
        self.running = False
        self.listener.on_recognition_end()


class FakeSynthesisSink(SynthesisSink):
    """Records utterance requests; speech events are emitted by the test."""

    def __init__(self, voices: Optional[List[Voice]] = None):
        self.listener: Optional[SynthesisListener] = None
        self.requests: List[UtteranceRequest] = []
        self.cancels = 0
        self._voices = list(voices or [])

    def bind(self, listener: SynthesisListener) -> None:
        self.listener = listener

    def speak(self, request: UtteranceRequest) -> None:
        self.requests.append(request)

    def cancel(self) -> None:
        self.cancels += 1

    def voices(self) -> List[Voice]:
        return list(self._voices)

    @property
    def spoken(self) -> List[str]:
        return [r.text for r in self.requests]

    @property
    def last(self) -> UtteranceRequest:
        return self.requests[-1]

    def emit_start(self, utterance_id: int):
        self.listener.on_speech_start(utterance_id)

    def emit_end(self, utterance_id: int):
        self.listener.on_speech_end(utterance_id)


class FakePermissionAuthority(PermissionAuthority):
    """Permission that answers requests with ``grant``."""

    def __init__(self, state: PermissionState = PermissionState.GRANTED, grant: bool = True):
        self.state = state
        self.grant = grant
        self.requests = 0
        self.subscribers: List[Callable[[PermissionState], None]] = []

    def query(self) -> PermissionState:
        return self.state

    def subscribe(self, callback):
        self.subscribers.append(callback)

        def unsubscribe():
            self.subscribers.remove(callback)

        return unsubscribe

    async def request_access(self) -> bool:
        self.requests += 1
        await asyncio.sleep(0)
        self.state = PermissionState.GRANTED if self.grant else PermissionState.DENIED
        return self.grant

    def change(self, state: PermissionState):
        self.state = state
        for callback in list(self.subscribers):
            callback(state)


class FakeScheduler(RestartScheduler):
    """Single restart slot fired manually with ``fire()``."""

    def __init__(self):
        self.callback = None
        self.delays: List[float] = []

    def schedule(self, delay, callback):
        self.delays.append(delay)
        self.callback = callback

    def cancel(self):
        self.callback = None

    @property
    def pending(self) -> bool:
        return self.callback is not None

    def fire(self):
        callback, self.callback = self.callback, None
        callback()


class HookRecorder:
    """Collects every registry hook call as (hook name, args)."""

    HOOKS = ("on_wake_word", "on_command_detected", "on_error", "on_listening",
             "on_stopped", "on_result", "on_login", "on_password")

    def __init__(self):
        self.calls = []

    def hooks(self) -> dict:
        return {name: self._recorder(name) for name in self.HOOKS}

    def _recorder(self, name):
        def record(*args):
            self.calls.append((name, args))
        return record

    def of(self, name: str) -> list:
        return [args for hook, args in self.calls if hook == name]

    def count(self, name: str) -> int:
        return len(self.of(name))


@pytest.fixture
def config():
    return VoiceConfig()


@pytest.fixture
def recognition():
    return FakeRecognitionSource()


@pytest.fixture
def synthesis():
    return FakeSynthesisSink()


@pytest.fixture
def permission():
    return FakePermissionAuthority()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def recorder():
    return HookRecorder()


@pytest.fixture
def make_engine(recognition, synthesis, permission, scheduler, recorder, config):
    """Factory for engines wired to the shared fakes; keyword overrides win."""
    def factory(commands=(), **overrides):
        registry = CommandRegistry(commands=commands, **recorder.hooks())
        kwargs = dict(recognition=recognition, synthesis=synthesis, permission=permission,
                      scheduler=scheduler, config=config)
        kwargs.update(overrides)
        return VoiceCommandEngine(registry, **kwargs)
    return factory


@pytest.fixture
def fakes():
    """Access to the fake classes for tests that need extra instances."""
    return {
        "recognition": FakeRecognitionSource,
        "synthesis": FakeSynthesisSink,
        "permission": FakePermissionAuthority,
        "scheduler": FakeScheduler,
    }
