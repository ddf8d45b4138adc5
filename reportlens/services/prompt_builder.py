"""
Prompt Builder
Medical Report Insights

Fills the operator-editable analysis template with the report text.
Falls back to the embedded template when the file is unusable.
"""

import logging
from typing import Optional

logger = logging.getLogger(__name__)

PLACEHOLDER = "{{REPORT_CONTENT}}"

# ── Embedded default ──────────────────────────────────────────────
DEFAULT_PROMPT_TEMPLATE = """You are a medical AI assistant specialized in analyzing medical reports and lab results. Please analyze the following medical report and provide a comprehensive analysis in JSON format.

Medical Report Content:
{{REPORT_CONTENT}}

Please provide your analysis in the following JSON structure:
{
  "summary": "Detailed medical summary for healthcare professionals",
  "simple_summary": "Easy-to-understand summary for patients (avoid medical jargon)",
  "health_metrics": [
    {
      "name": "Parameter name (e.g., Blood Glucose, Cholesterol)",
      "value": "Measured value (number or string)",
      "unit": "Unit of measurement",
      "score": "Score from 0-100 (100 = optimal, 0 = critical)",
      "status": "normal/warning/critical",
      "range_min": "Normal range minimum value",
      "range_max": "Normal range maximum value",
      "description": "Simple explanation of what this means"
    }
  ],
  "key_findings": ["List of important findings"],
  "recommendations": ["List of actionable recommendations"],
  "risk_level": "low/medium/high"
}

Guidelines:
1. Extract all measurable parameters (blood tests, vitals, etc.)
2. Provide scores based on how close values are to optimal ranges
3. Use simple language in simple_summary and descriptions, without medical jargon
4. Be accurate but not alarming in tone
5. Include lifestyle recommendations when appropriate
6. If no specific values are found, focus on general health insights
7. For numeric values, return them as numbers in the JSON

Respond only with valid JSON. No markdown, no code fences, no explanations."""


class PromptBuilder:
    """Builds the analysis prompt from a template loaded once at startup."""

    def __init__(self, template_path: Optional[str] = None):
        self.template_path = template_path
        self.template = self._load_template(template_path)

    @staticmethod
    def _load_template(template_path: Optional[str]) -> str:
        if not template_path:
            return DEFAULT_PROMPT_TEMPLATE
        try:
            with open(template_path, "r", encoding="utf-8") as fh:
                template = fh.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(
                "Prompt template %s unavailable (%s); using embedded default",
                template_path, e,
            )
            return DEFAULT_PROMPT_TEMPLATE

        if PLACEHOLDER not in template:
            logger.warning(
                "Prompt template %s has no %s placeholder; using embedded default",
                template_path, PLACEHOLDER,
            )
            return DEFAULT_PROMPT_TEMPLATE

        logger.info("Loaded prompt template from %s", template_path)
        return template

    @property
    def uses_default(self) -> bool:
        return self.template is DEFAULT_PROMPT_TEMPLATE

    def build_prompt(self, report_text: str) -> str:
        """Substitute the full report text for the placeholder."""
        return self.template.replace(PLACEHOLDER, report_text, 1)
