import abc
import base64
import json
import logging
import time
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional

import google.generativeai as genai
from openai import OpenAI

from .errors import (
    CoachError,
    ProcessingFailedError,
    ProcessingTimeoutError,
    ProviderCallError,
)
from .models import (
    AnalysisRequest,
    ModelInfo,
    ProviderId,
    RemoteUploadHandle,
    UploadState,
)

logger = logging.getLogger(__name__)

MAX_LISTED_MODELS = 100

SYSTEM_PROMPT = "You are a helpful assistant that analyzes audio/video content."


@contextmanager
def provider_errors(provider: ProviderId):
    """Re-raise anything the SDK throws as a ProviderCallError."""
    try:
        yield
    except CoachError:
        raise
    except Exception as e:
        raise ProviderCallError(f"{provider.value} request failed: {e}") from e


def serialize_response(response) -> str:
    if hasattr(response, "model_dump_json"):
        return response.model_dump_json()
    if hasattr(response, "to_dict"):
        return json.dumps(response.to_dict(), default=str)
    return json.dumps(response, default=str)


class ProviderAdapter(abc.ABC):
    provider: ProviderId
    # Whether the recording has to be transcoded to PCM WAV before analyze()
    needs_pcm_audio = False

    @abc.abstractmethod
    def analyze(self, request: AnalysisRequest) -> str:
        """Return the provider's free-form analysis of the request media."""

    @abc.abstractmethod
    def complete_json(self, prompt: str) -> str:
        """Run a text-only completion constrained to a JSON object."""

    @abc.abstractmethod
    def list_models(self) -> List[ModelInfo]:
        pass


class OpenAIAdapter(ProviderAdapter):
    """Inline-audio chat completions; audio travels base64-encoded in the message."""

    provider = ProviderId.OPENAI
    needs_pcm_audio = True

    def __init__(
        self,
        client=None,
        api_key: Optional[str] = None,
        default_model: str = "gpt-4o-audio-preview",
        normalizer_model: str = "gpt-4o-mini",
    ):
        self._client = client
        self._api_key = api_key
        self.default_model = default_model
        self.normalizer_model = normalizer_model

    @property
    def client(self):
        if self._client is None:
            if not self._api_key:
                raise ProviderCallError("OPENAI_API_KEY is not set")
            self._client = OpenAI(api_key=self._api_key)
        return self._client

    def analyze(self, request: AnalysisRequest) -> str:
        audio_b64 = base64.b64encode(request.media.read_bytes()).decode("ascii")
        logger.info("Sending %d bytes of audio to OpenAI", request.media.size)

        with provider_errors(self.provider):
            response = self.client.chat.completions.create(
                model=request.model or self.default_model,
                modalities=["text", "audio"],
                audio={"voice": "alloy", "format": "wav"},
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": request.prompt},
                            {
                                "type": "input_audio",
                                "input_audio": {"data": audio_b64, "format": "wav"},
                            },
                        ],
                    },
                ],
            )

        message = response.choices[0].message if response.choices else None
        if message is not None and message.content:
            return message.content
        audio = getattr(message, "audio", None)
        if audio is not None and getattr(audio, "transcript", None):
            return audio.transcript
        return serialize_response(response)

    def complete_json(self, prompt: str) -> str:
        with provider_errors(self.provider):
            response = self.client.chat.completions.create(
                model=self.normalizer_model,
                messages=[{"role": "user", "content": prompt}],
                temperature=0,
                response_format={"type": "json_object"},
            )
        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ProviderCallError("OpenAI returned an empty completion")
        return content

    def list_models(self) -> List[ModelInfo]:
        with provider_errors(self.provider):
            page = self.client.models.list()
            data = list(getattr(page, "data", None) or [])
        models = []
        for m in data[:MAX_LISTED_MODELS]:
            model_id = getattr(m, "id", None) or "unknown"
            models.append(
                ModelInfo(provider=self.provider, id=model_id, name=model_id, displayName=model_id)
            )
        return models


def response_text(response) -> str:
    """Join the non-empty text parts of the first candidate.

    Parts without text are skipped, so a reply made only of empty parts
    comes back as "" and the caller falls back to the serialized response.
    """
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return ""
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    return "\n".join(part.text for part in parts if getattr(part, "text", None))


class GeminiAdapter(ProviderAdapter):
    """Upload the recording, wait for it to become ACTIVE, then generate content.

    ``client`` is the ``google.generativeai`` module or anything exposing the
    same ``upload_file``/``get_file``/``delete_file``/``list_models`` and
    ``GenerativeModel`` callables.
    """

    provider = ProviderId.GEMINI

    def __init__(
        self,
        client=None,
        api_key: Optional[str] = None,
        default_model: str = "gemini-2.5-flash",
        poll_interval_ms: int = 2000,
        max_wait_ms: int = 120000,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._client = client
        self._api_key = api_key
        self.default_model = default_model
        self.poll_interval_ms = poll_interval_ms
        self.max_wait_ms = max_wait_ms
        self.clock = clock
        self.sleep = sleep

    @property
    def client(self):
        if self._client is None:
            if not self._api_key:
                raise ProviderCallError("GEMINI_API_KEY is not set")
            genai.configure(api_key=self._api_key)
            self._client = genai
        return self._client

    def upload(self, request: AnalysisRequest) -> RemoteUploadHandle:
        media = request.media
        logger.info("Uploading %s (%d bytes) to Gemini", media.path.name, media.size)
        with provider_errors(self.provider):
            remote_file = self.client.upload_file(path=str(media.path), mime_type=media.mime_type)
        handle = RemoteUploadHandle.from_file(remote_file, media.mime_type)
        logger.info("Uploaded %s, initial state: %s", handle.remote_id, handle.state.value)
        return handle

    def refresh(self, handle: RemoteUploadHandle) -> RemoteUploadHandle:
        with provider_errors(self.provider):
            remote_file = self.client.get_file(handle.remote_id)
        return RemoteUploadHandle.from_file(remote_file, handle.mime_type)

    def wait_until_active(self, handle: RemoteUploadHandle) -> RemoteUploadHandle:
        started = self.clock()
        while handle.state == UploadState.PROCESSING:
            elapsed_ms = (self.clock() - started) * 1000
            if elapsed_ms > self.max_wait_ms:
                raise ProcessingTimeoutError(
                    f"Timeout waiting for {handle.remote_id} to finish processing "
                    f"after {elapsed_ms:.0f} ms"
                )
            logger.info("%s still processing (%.0f ms)", handle.remote_id, elapsed_ms)
            self.sleep(self.poll_interval_ms / 1000)
            handle = self.refresh(handle)

        if handle.state != UploadState.ACTIVE:
            raise ProcessingFailedError(handle.state.value)
        return handle

    def delete(self, handle: RemoteUploadHandle) -> None:
        try:
            self.client.delete_file(handle.remote_id)
            logger.info("Deleted remote file %s", handle.remote_id)
        except Exception as e:
            logger.warning("Could not delete remote file %s: %s", handle.remote_id, e)

    def analyze(self, request: AnalysisRequest) -> str:
        handle = self.upload(request)
        try:
            handle = self.wait_until_active(handle)
            logger.info("%s is ACTIVE, generating content", handle.remote_id)
            file_part = {"file_data": {"file_uri": handle.uri, "mime_type": handle.mime_type}}
            with provider_errors(self.provider):
                model = self.client.GenerativeModel(request.model or self.default_model)
                response = model.generate_content([file_part, request.prompt])
        finally:
            self.delete(handle)

        return response_text(response) or serialize_response(response)

    def complete_json(self, prompt: str) -> str:
        with provider_errors(self.provider):
            model = self.client.GenerativeModel(self.default_model)
            response = model.generate_content(
                prompt,
                generation_config={"response_mime_type": "application/json"},
            )
        text = response_text(response)
        if not text:
            raise ProviderCallError("Gemini returned an empty completion")
        return text

    def list_models(self) -> List[ModelInfo]:
        with provider_errors(self.provider):
            listed = list(self.client.list_models())
        models = []
        for m in listed[:MAX_LISTED_MODELS]:
            name = getattr(m, "name", None) or "unknown"
            models.append(
                ModelInfo(
                    provider=self.provider,
                    id=name,
                    name=name,
                    displayName=getattr(m, "display_name", None) or name,
                )
            )
        return models


ProviderRegistry = Dict[ProviderId, ProviderAdapter]


def build_providers(settings) -> ProviderRegistry:
    return {
        ProviderId.OPENAI: OpenAIAdapter(
            api_key=settings.openai_api_key,
            default_model=settings.openai_analysis_model,
            normalizer_model=settings.openai_normalizer_model,
        ),
        ProviderId.GEMINI: GeminiAdapter(
            api_key=settings.gemini_api_key,
            default_model=settings.gemini_model,
            poll_interval_ms=settings.gemini_poll_interval_ms,
            max_wait_ms=settings.gemini_max_wait_ms,
        ),
    }
