import json
import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .models import (
    BADGES,
    AudioStyles,
    CoachingReport,
    ImprovementOpportunity,
    ProviderId,
    VoiceRecipeItem,
)
from .providers import ProviderRegistry

logger = logging.getLogger(__name__)


def fallback_report(raw_analysis: Optional[str] = None) -> CoachingReport:
    """Report returned when the structured round-trip fails entirely."""
    return CoachingReport(
        toneWarmth=5,
        score=50,
        badge="🌼 Growing",
        trainingMeaning="Analysis completed. Review the full analysis below.",
        voiceRecipe=[
            VoiceRecipeItem(ingredient="Clarity", tip="Speak clearly and at a moderate pace"),
            VoiceRecipeItem(ingredient="Warmth", tip="Add warmth to your tone"),
            VoiceRecipeItem(ingredient="Engagement", tip="Engage with energy and enthusiasm"),
        ],
        audioStyles=AudioStyles(
            tryIt=["Conversational and friendly", "Clear enunciation"],
            dontTry=["Monotone delivery", "Speaking too fast"],
        ),
        practiceExercise="Take a breath, smile, and practice your greeting with warmth. Repeat 3 times.",
        empathyGoal="Make every interaction feel personal and caring.",
        rawAnalysis=raw_analysis,
    )


def partial_defaults() -> CoachingReport:
    """Per-field defaults used when the model's JSON is missing a field."""
    return CoachingReport(
        toneWarmth=5,
        score=50,
        badge="🌼 Growing",
        trainingMeaning="Continue developing your coaching voice",
        voiceRecipe=[
            VoiceRecipeItem(ingredient="Pitch", tip="Maintain steady pitch"),
            VoiceRecipeItem(ingredient="Pauses", tip="Add natural pauses"),
            VoiceRecipeItem(ingredient="Tone", tip="Speak warmly"),
        ],
        audioStyles=AudioStyles(tryIt=["Warm conversational"], dontTry=["Monotone"]),
        practiceExercise="Practice speaking with a smile. Repeat your greeting 3 times.",
        empathyGoal="Sound caring and supportive in every interaction.",
    )


def build_report_prompt(analysis_text: str) -> str:
    badges = ", ".join(f'"{badge}"' for badge in BADGES)
    return f"""You are a voice and empathy coach. Convert the analysis below into a coaching report.

Analysis:
\"\"\"
{analysis_text}
\"\"\"

Respond with pure JSON only. No markdown, no prose. Use exactly this shape:
{{
  "toneWarmth": <number 0-10, how warm the speaker's tone sounds>,
  "score": <number 0-100, overall coaching score>,
  "badge": <one of {badges}>,
  "trainingMeaning": "<one or two sentences on what the score means for training>",
  "voiceRecipe": [
    {{"ingredient": "<short name>", "tip": "<actionable tip>"}},
    {{"ingredient": "<short name>", "tip": "<actionable tip>"}},
    {{"ingredient": "<short name>", "tip": "<actionable tip>"}}
  ],
  "audioStyles": {{
    "tryIt": ["<2-3 delivery styles to try>"],
    "dontTry": ["<2-3 delivery styles to avoid>"]
  }},
  "practiceExercise": "<a 15-second warm tone exercise>",
  "empathyGoal": "<one empathy goal>",
  "improvementOpportunities": [
    {{"timestamp": "<mm:ss or empty>", "issue": "<what to improve>", "suggestion": "<how>"}}
  ]
}}

Rules:
- voiceRecipe must contain exactly 3 items.
- tryIt and dontTry must each contain 2 or 3 items.
- If the analysis gives no evidence for a field, make a reasonable, encouraging estimate."""


def strip_code_fence(text: str) -> str:
    """Drop a ```json ... ``` wrapper some models add despite instructions."""
    match = re.match(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", text, re.DOTALL)
    return match.group(1) if match else text.strip()


def _number(value: Any, low: float, high: float, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value != value:
        return default
    try:
        number = float(value)
    except OverflowError:
        # JSON integers can exceed the float range
        return high if value > 0 else low
    return min(max(number, low), high)


def _text(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _strings(value: Any, default: List[str]) -> List[str]:
    if not isinstance(value, list):
        return default
    items = [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return items or default


def _voice_recipe(value: Any, default: List[VoiceRecipeItem]) -> List[VoiceRecipeItem]:
    if not isinstance(value, list):
        return default
    items = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        ingredient = _text(entry.get("ingredient"), "")
        tip = _text(entry.get("tip"), "")
        if ingredient and tip:
            items.append(VoiceRecipeItem(ingredient=ingredient, tip=tip))
    return items[:3] if len(items) >= 3 else default


def _opportunities(value: Any) -> List[ImprovementOpportunity]:
    if not isinstance(value, list):
        return []
    items = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        try:
            items.append(
                ImprovementOpportunity(
                    timestamp=str(entry.get("timestamp") or ""),
                    issue=entry["issue"],
                    suggestion=entry["suggestion"],
                )
            )
        except (KeyError, ValidationError):
            continue
    return items


def coalesce_report(data: Dict[str, Any], raw_analysis: Optional[str] = None) -> CoachingReport:
    """Merge parsed JSON over the per-field defaults, keeping only valid values."""
    report = partial_defaults()
    styles = data.get("audioStyles") if isinstance(data.get("audioStyles"), dict) else {}
    badge = data.get("badge")

    return report.model_copy(
        update={
            "toneWarmth": _number(data.get("toneWarmth"), 0, 10, report.toneWarmth),
            "score": _number(data.get("score"), 0, 100, report.score),
            "badge": badge if badge in BADGES else report.badge,
            "trainingMeaning": _text(data.get("trainingMeaning"), report.trainingMeaning),
            "voiceRecipe": _voice_recipe(data.get("voiceRecipe"), report.voiceRecipe),
            "audioStyles": AudioStyles(
                tryIt=_strings(styles.get("tryIt"), report.audioStyles.tryIt),
                dontTry=_strings(styles.get("dontTry"), report.audioStyles.dontTry),
            ),
            "practiceExercise": _text(data.get("practiceExercise"), report.practiceExercise),
            "empathyGoal": _text(data.get("empathyGoal"), report.empathyGoal),
            "improvementOpportunities": _opportunities(data.get("improvementOpportunities")),
            "rawAnalysis": raw_analysis,
        }
    )


class ReportNormalizer:
    """Turns free-form analysis text into a CoachingReport. Never raises."""

    def __init__(self, providers: ProviderRegistry):
        self.providers = providers

    def normalize(self, analysis_text: str, provider: ProviderId) -> CoachingReport:
        report = fallback_report(analysis_text)
        try:
            adapter = self.providers[ProviderId(provider)]
            raw = adapter.complete_json(build_report_prompt(analysis_text))
            data = json.loads(strip_code_fence(raw))
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
            report = coalesce_report(data, analysis_text)
        except Exception as e:
            logger.warning("Could not build structured report, using defaults: %s", e)
        return report
