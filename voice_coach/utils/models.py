from enum import Enum
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, conlist


class ProviderId(str, Enum):
    OPENAI = "openai"
    GEMINI = "gemini"


class MediaType(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"


class UploadState(str, Enum):
    PROCESSING = "PROCESSING"
    ACTIVE = "ACTIVE"
    FAILED = "FAILED"
    STATE_UNSPECIFIED = "STATE_UNSPECIFIED"

    @classmethod
    def parse(cls, value) -> "UploadState":
        # SDKs hand back either an enum member or a plain string
        name = getattr(value, "name", value)
        try:
            return cls(str(name).upper())
        except ValueError:
            return cls.STATE_UNSPECIFIED


Badge = Literal["🚫 Needs Work", "🌼 Growing", "🌸 Friendly", "🌺 Radiant"]
BADGES = Badge.__args__

DEFAULT_PROMPT = (
    "Please analyze this video and provide: summary, main topics, sentiment, "
    "and key takeaways with timestamps if available."
)


class MediaAsset(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: Path
    mime_type: str
    size: int = Field(ge=0)

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


class AnalysisRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    media: MediaAsset
    provider: ProviderId
    model: Optional[str] = None
    prompt: str = DEFAULT_PROMPT
    media_type: MediaType = MediaType.VIDEO


class RemoteUploadHandle(BaseModel):
    remote_id: str
    uri: Optional[str] = None
    mime_type: Optional[str] = None
    state: UploadState = UploadState.PROCESSING

    @classmethod
    def from_file(cls, remote_file, fallback_mime: str) -> "RemoteUploadHandle":
        return cls(
            remote_id=remote_file.name,
            uri=getattr(remote_file, "uri", None),
            mime_type=getattr(remote_file, "mime_type", None) or fallback_mime,
            state=UploadState.parse(getattr(remote_file, "state", None)),
        )


class VoiceRecipeItem(BaseModel):
    ingredient: str
    tip: str


class AudioStyles(BaseModel):
    tryIt: List[str]
    dontTry: List[str]


class ImprovementOpportunity(BaseModel):
    timestamp: str
    issue: str
    suggestion: str


class CoachingReport(BaseModel):
    toneWarmth: float = Field(ge=0, le=10)
    score: float = Field(ge=0, le=100)
    badge: Badge
    trainingMeaning: str
    voiceRecipe: conlist(VoiceRecipeItem, min_length=3, max_length=3)
    audioStyles: AudioStyles
    practiceExercise: str
    empathyGoal: str
    improvementOpportunities: List[ImprovementOpportunity] = []
    rawAnalysis: Optional[str] = None


class AnalysisResult(BaseModel):
    coachingReport: CoachingReport
    analysis: str


class AnalysisFailure(BaseModel):
    error: str
    status_code: int = Field(default=500, exclude=True)


class ModelInfo(BaseModel):
    provider: ProviderId
    id: str
    name: str
    displayName: str


class ModelListing(BaseModel):
    models: List[ModelInfo] = []
    error: Optional[str] = None
