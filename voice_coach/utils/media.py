import logging
import shutil
import subprocess
from pathlib import Path
from typing import Optional

from .errors import MediaDecodeError
from .models import MediaAsset

logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000
CHANNELS = 1


def find_ffmpeg(ffmpeg_bin: Optional[str] = None) -> str:
    """Locate the ffmpeg executable, honouring an explicit override."""
    if ffmpeg_bin:
        candidate = Path(ffmpeg_bin)
        if candidate.is_dir():
            candidate = candidate / "ffmpeg"
        if candidate.exists():
            return str(candidate)
    found = shutil.which("ffmpeg")
    if found is None:
        raise MediaDecodeError("ffmpeg is not installed or not on PATH")
    return found


class AudioExtractor:
    """Transcodes a recorded container into mono 16 kHz 16-bit PCM WAV."""

    def __init__(self, ffmpeg_bin: Optional[str] = None):
        self.ffmpeg_bin = ffmpeg_bin

    def __call__(self, video: MediaAsset, dest: Path) -> MediaAsset:
        return extract_audio(video, dest, ffmpeg_bin=self.ffmpeg_bin)


def extract_audio(video: MediaAsset, dest: Path, ffmpeg_bin: Optional[str] = None) -> MediaAsset:
    command = [
        find_ffmpeg(ffmpeg_bin),
        "-y",
        "-v",
        "error",
        "-i",
        str(video.path),
        "-vn",
        "-ac",
        str(CHANNELS),
        "-ar",
        str(SAMPLE_RATE),
        "-acodec",
        "pcm_s16le",
        "-f",
        "wav",
        str(dest),
    ]
    logger.info("Extracting audio from %s", video.path.name)
    try:
        subprocess.run(command, check=True, capture_output=True)
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or b"").decode("utf-8", errors="ignore").strip()
        message = "Could not extract audio from the recording"
        if stderr:
            message += f": {stderr[:200]}"
        raise MediaDecodeError(message) from exc
    except OSError as exc:
        raise MediaDecodeError(f"Could not run ffmpeg: {exc}") from exc

    if not dest.exists() or dest.stat().st_size == 0:
        raise MediaDecodeError("Audio extraction produced no output")

    size = dest.stat().st_size
    logger.info("Audio extracted: %d bytes", size)
    return MediaAsset(path=dest, mime_type="audio/wav", size=size)
