"""
Response Normalizer
Medical Report Insights

Turns raw Gemini text into a guaranteed-valid Analysis. The model may
wrap its JSON in code fences, surround it with commentary, truncate it
or drift from the requested shape; none of that is allowed to fail the
report once the model has answered. `normalize` never raises.
"""

import re
import json
import math
import logging
from typing import Optional

from pydantic import ValidationError

from reportlens.schemas.report import Analysis, HealthMetric, MetricStatus, RiskLevel

logger = logging.getLogger(__name__)

# ── Fallback content ──────────────────────────────────────────────
FALLBACK_SUMMARY = "Medical analysis completed."
FALLBACK_SIMPLE_SUMMARY = (
    "Your report has been analyzed. Please discuss the results with your healthcare provider."
)
DEGRADED_SUMMARY = "AI analysis completed. Raw response formatting required improvement."
DEGRADED_SIMPLE_SUMMARY = (
    "Your medical report has been analyzed. Please consult your healthcare provider."
)
DEGRADED_KEY_FINDINGS = [
    "Report analysis completed",
    "Detailed results could not be structured automatically",
]
DEGRADED_RECOMMENDATIONS = [
    "Consult with your healthcare provider for personalized advice",
]
DEFAULT_RECOMMENDATIONS = [
    "Regular health check-ups with your healthcare provider",
    "Maintain a balanced diet and regular exercise",
    "Follow any prescribed treatments consistently",
]

DEFAULT_RISK_LEVEL = RiskLevel.MEDIUM.value
RISK_LEVELS = {level.value for level in RiskLevel}
METRIC_STATUSES = {status.value for status in MetricStatus}

SCORE_MIN = 0.0
SCORE_MAX = 100.0
NORMAL_THRESHOLD = 80.0
WARNING_THRESHOLD = 50.0

# A line shorter than this is too short to stand in as a summary.
MIN_SUMMARY_LINE_LENGTH = 20

_LEADING_FENCE = re.compile(r"^\s*```[a-zA-Z]*[ \t]*\n?")
_TRAILING_FENCE = re.compile(r"\n?[ \t]*```\s*$")
_JSON_DELIMITERS = ("{", "}", "[", "]", "```")


# ── Cleaning ──────────────────────────────────────────────────────
def strip_code_fences(raw: str) -> str:
    """Remove a leading ```/```json marker and a trailing ``` marker."""
    text = _LEADING_FENCE.sub("", raw, count=1)
    return _TRAILING_FENCE.sub("", text, count=1)


def locate_json_object(text: str) -> Optional[str]:
    """Slice from the first '{' to the last '}', or None if there is no pair."""
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        return None
    return text[start:end + 1]


def _parse_analysis(candidate: str) -> Optional[Analysis]:
    try:
        data = json.loads(candidate)
    except (json.JSONDecodeError, RecursionError) as e:
        logger.warning("Model response is not valid JSON: %s", e)
        return None
    try:
        return Analysis.model_validate(data)
    except ValidationError as e:
        logger.warning("Model response does not match the analysis shape: %d error(s)", e.error_count())
        return None


# ── Degraded result ───────────────────────────────────────────────
def extract_simple_summary(raw: str) -> str:
    """First line long enough to read as prose, else a generic sentence."""
    for line in raw.splitlines():
        line = line.strip()
        if len(line) > MIN_SUMMARY_LINE_LENGTH and not line.startswith(_JSON_DELIMITERS):
            return line
    return DEGRADED_SIMPLE_SUMMARY


def degraded_analysis(raw: str) -> Analysis:
    return Analysis(
        summary=DEGRADED_SUMMARY,
        simple_summary=extract_simple_summary(raw),
        health_metrics=[],
        key_findings=list(DEGRADED_KEY_FINDINGS),
        recommendations=list(DEGRADED_RECOMMENDATIONS),
        risk_level=DEFAULT_RISK_LEVEL,
    )


# ── Repair ────────────────────────────────────────────────────────
def clamp_score(score: float) -> float:
    if math.isnan(score):
        return SCORE_MIN
    return min(max(score, SCORE_MIN), SCORE_MAX)


def status_for_score(score: float) -> str:
    if score >= NORMAL_THRESHOLD:
        return MetricStatus.NORMAL.value
    if score >= WARNING_THRESHOLD:
        return MetricStatus.WARNING.value
    return MetricStatus.CRITICAL.value


def _finite_or_zero(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def repair_metric(metric: HealthMetric) -> HealthMetric:
    score = clamp_score(metric.score)
    status = metric.status.strip().lower()
    if status not in METRIC_STATUSES:
        status = status_for_score(score)
    value = metric.value
    if isinstance(value, float) and not math.isfinite(value):
        value = str(metric.value)
    return metric.model_copy(update={
        "score": score,
        "status": status,
        "value": value,
        "range_min": _finite_or_zero(metric.range_min),
        "range_max": _finite_or_zero(metric.range_max),
    })


def repair_analysis(analysis: Analysis) -> Analysis:
    """Fill missing fields and pull values back inside their invariants."""
    risk_level = analysis.risk_level.strip().lower()
    if risk_level not in RISK_LEVELS:
        risk_level = DEFAULT_RISK_LEVEL

    return analysis.model_copy(update={
        "summary": analysis.summary if analysis.summary.strip() else FALLBACK_SUMMARY,
        "simple_summary": (
            analysis.simple_summary if analysis.simple_summary.strip() else FALLBACK_SIMPLE_SUMMARY
        ),
        "risk_level": risk_level,
        "recommendations": list(analysis.recommendations) or list(DEFAULT_RECOMMENDATIONS),
        "key_findings": list(analysis.key_findings),
        "health_metrics": [repair_metric(m) for m in analysis.health_metrics],
    })


# ── Public API ────────────────────────────────────────────────────
def normalize(raw_text: Optional[str]) -> Analysis:
    """
    Parse raw model output into a valid Analysis.

    Falls back to a degraded but presentable Analysis when no usable
    JSON object can be recovered.
    """
    raw_text = raw_text or ""
    cleaned = strip_code_fences(raw_text).strip()

    candidate = locate_json_object(cleaned)
    analysis = _parse_analysis(candidate) if candidate is not None else None

    if analysis is None:
        logger.warning("Falling back to degraded analysis. Preview: %.200s", raw_text)
        analysis = degraded_analysis(raw_text)

    return repair_analysis(analysis)


def serialize_analysis(analysis: Analysis) -> str:
    return analysis.model_dump_json()


def parse_payload(payload: str) -> Analysis:
    """Rebuild the Analysis stored for a completed report."""
    return Analysis.model_validate_json(payload)
