import logging
import tempfile
from pathlib import Path
from typing import Callable, Optional, Union

from .errors import CoachError, InputValidationError
from .media import AudioExtractor
from .models import (
    DEFAULT_PROMPT,
    AnalysisFailure,
    AnalysisRequest,
    AnalysisResult,
    MediaAsset,
    MediaType,
    ProviderId,
)
from .parsing import ReportNormalizer
from .providers import ProviderRegistry

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPES = {
    MediaType.VIDEO: "video/webm",
    MediaType.AUDIO: "audio/webm",
}

Extractor = Callable[[MediaAsset, Path], MediaAsset]


def resolve_mime_type(content_type: Optional[str], media_type: MediaType) -> str:
    if content_type and content_type.split("/")[0] in ("video", "audio"):
        return content_type
    return DEFAULT_MIME_TYPES[media_type]


def _recording_name(filename: Optional[str]) -> str:
    suffix = Path(filename).suffix if filename else ""
    return f"recording{suffix or '.webm'}"


class AnalysisOrchestrator:
    """Runs one upload through extraction, provider analysis and normalization."""

    def __init__(
        self,
        providers: ProviderRegistry,
        normalizer: Optional[ReportNormalizer] = None,
        extractor: Optional[Extractor] = None,
        temp_root: Optional[str] = None,
    ):
        self.providers = providers
        self.normalizer = normalizer or ReportNormalizer(providers)
        self.extractor = extractor or AudioExtractor()
        self.temp_root = temp_root

    def run(
        self,
        content: Optional[bytes],
        provider: str = ProviderId.GEMINI.value,
        model: Optional[str] = None,
        prompt: Optional[str] = None,
        media_type: str = MediaType.VIDEO.value,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> Union[AnalysisResult, AnalysisFailure]:
        try:
            return self._run(content, provider, model, prompt, media_type, filename, content_type)
        except CoachError as e:
            logger.error("Analysis failed: %s", e)
            return AnalysisFailure(error=str(e), status_code=e.status_code)
        except Exception as e:
            logger.exception("Unexpected analysis failure")
            return AnalysisFailure(error=str(e) or e.__class__.__name__)

    def _run(self, content, provider, model, prompt, media_type, filename, content_type):
        if not content:
            raise InputValidationError("file is required")
        try:
            provider_id = ProviderId(provider)
        except ValueError:
            raise InputValidationError(f"unknown provider: {provider}")
        try:
            kind = MediaType(media_type)
        except ValueError:
            raise InputValidationError(f"unknown media type: {media_type}")

        adapter = self.providers.get(provider_id)
        if adapter is None:
            raise InputValidationError(f"provider not configured: {provider_id.value}")

        # Everything written for this request lives under one unique directory
        with tempfile.TemporaryDirectory(prefix="va-", dir=self.temp_root) as tmp_dir:
            recording_path = Path(tmp_dir) / _recording_name(filename)
            recording_path.write_bytes(content)
            media = MediaAsset(
                path=recording_path,
                mime_type=resolve_mime_type(content_type, kind),
                size=len(content),
            )
            logger.info("Received %s recording: %d bytes", kind.value, media.size)

            if adapter.needs_pcm_audio:
                media = self.extractor(media, Path(tmp_dir) / "audio.wav")

            request = AnalysisRequest(
                media=media,
                provider=provider_id,
                model=model or None,
                prompt=(prompt or "").strip() or DEFAULT_PROMPT,
                media_type=kind,
            )
            analysis = adapter.analyze(request)

        report = self.normalizer.normalize(analysis, provider_id)
        return AnalysisResult(coachingReport=report, analysis=analysis)
