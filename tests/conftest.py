import json
import shutil
import subprocess
from types import SimpleNamespace

import pytest

from voice_coach.utils.models import ModelInfo
from voice_coach.utils.providers import ProviderAdapter

requires_ffmpeg = pytest.mark.skipif(shutil.which("ffmpeg") is None, reason="ffmpeg not installed")


class FakeClock:
    """Monotonic clock that only moves when sleep() is called."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def gemini_file(state, name="files/abc123", mime_type="video/webm"):
    return SimpleNamespace(
        name=name,
        uri=f"https://generativelanguage.googleapis.com/v1beta/{name}",
        mime_type=mime_type,
        state=SimpleNamespace(name=state),
    )


def gemini_response(*texts):
    parts = [SimpleNamespace(text=text) for text in texts]
    response = SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))])
    response.to_dict = lambda: {"candidates": [{"content": {"parts": [{"text": t} for t in texts]}}]}
    return response


class FakeGenerativeModel:
    def __init__(self, genai, model_name):
        self.genai = genai
        self.model_name = model_name

    def generate_content(self, contents, generation_config=None):
        self.genai.generate_calls.append(
            {"model": self.model_name, "contents": contents, "generation_config": generation_config}
        )
        if self.genai.generate_error is not None:
            raise self.genai.generate_error
        return self.genai.responses.pop(0)


class FakeGenai:
    """Stands in for the google.generativeai module."""

    def __init__(self, upload_state="PROCESSING", states=(), responses=(), models=()):
        self.upload_state = upload_state
        self.states = list(states)
        self.responses = list(responses)
        self.models = list(models)
        self.uploads = []
        self.get_calls = []
        self.deleted = []
        self.generate_calls = []
        self.generate_error = None
        self.upload_error = None
        self.list_error = None

    def upload_file(self, path, mime_type=None):
        if self.upload_error is not None:
            raise self.upload_error
        self.uploads.append({"path": path, "mime_type": mime_type})
        return gemini_file(self.upload_state, mime_type=mime_type)

    def get_file(self, name):
        self.get_calls.append(name)
        # Once scripted states run out the file stays in its last state
        state = self.states.pop(0) if len(self.states) > 1 else self.states[0]
        return gemini_file(state, name=name)

    def delete_file(self, name):
        self.deleted.append(name)

    def GenerativeModel(self, model_name):
        return FakeGenerativeModel(self, model_name)

    def list_models(self):
        if self.list_error is not None:
            raise self.list_error
        return iter(self.models)


def openai_response(content=None, transcript=None):
    audio = SimpleNamespace(transcript=transcript) if transcript is not None else None
    message = SimpleNamespace(content=content, audio=audio)
    response = SimpleNamespace(choices=[SimpleNamespace(message=message)])
    response.model_dump_json = lambda: json.dumps(
        {"choices": [{"message": {"content": content, "audio": None}}]}
    )
    return response


class FakeOpenAI:
    """Minimal shape of openai.OpenAI used by the adapter."""

    def __init__(self, responses=(), models=()):
        self.responses = list(responses)
        self.calls = []
        self.error = None
        self.list_error = None
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))
        self.models = SimpleNamespace(list=self._list)
        self._models = list(models)

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.responses.pop(0)

    def _list(self):
        if self.list_error is not None:
            raise self.list_error
        return SimpleNamespace(data=[SimpleNamespace(id=model_id) for model_id in self._models])


class StubAdapter(ProviderAdapter):
    """Adapter with scripted outputs that records what it was given."""

    def __init__(self, provider, analysis="Warm, friendly delivery.", report_json="{}", needs_pcm_audio=False):
        self.provider = provider
        self.needs_pcm_audio = needs_pcm_audio
        self.analysis = analysis
        self.report_json = report_json
        self.analyze_error = None
        self.list_error = None
        self.requests = []
        self.seen_paths = []
        self.seen_payloads = []

    def analyze(self, request):
        self.requests.append(request)
        self.seen_paths.append(request.media.path)
        self.seen_payloads.append(request.media.read_bytes())
        if self.analyze_error is not None:
            raise self.analyze_error
        return self.analysis

    def complete_json(self, prompt):
        if isinstance(self.report_json, Exception):
            raise self.report_json
        return self.report_json

    def list_models(self):
        if self.list_error is not None:
            raise self.list_error
        return [
            ModelInfo(
                provider=self.provider,
                id=f"{self.provider.value}-model",
                name=f"{self.provider.value}-model",
                displayName=f"{self.provider.value} model",
            )
        ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def silent_video(tmp_path):
    """Three seconds of black frames with a silent stereo track."""
    path = tmp_path / "silent.mkv"
    subprocess.run(
        [
            "ffmpeg", "-y", "-v", "error",
            "-f", "lavfi", "-i", "color=c=black:s=64x64:d=3",
            "-f", "lavfi", "-i", "anullsrc=r=48000:cl=stereo",
            "-t", "3", "-c:v", "ffv1", "-c:a", "pcm_s16le",
            str(path),
        ],
        check=True,
        capture_output=True,
    )
    return path


@pytest.fixture
def mute_video(tmp_path):
    """Video with no audio track at all."""
    path = tmp_path / "mute.mkv"
    subprocess.run(
        [
            "ffmpeg", "-y", "-v", "error",
            "-f", "lavfi", "-i", "color=c=black:s=64x64:d=1",
            "-an", "-c:v", "ffv1",
            str(path),
        ],
        check=True,
        capture_output=True,
    )
    return path
