"""
Built-in letter templates.

Served when the template source mode is ``static``; the payloads have the
same shape as the backend's prompt records so they go through the same
validation.
"""

from typing import Any, Dict, List, Mapping, Optional

from letter_stream.application.ports import TemplateSourcePort
from letter_stream.domain.exceptions import TemplateNotFoundError

_HTML_RULES = (
    "Use <strong> for bold text, <h3> for section headings, and <p> for "
    "paragraphs. Do NOT use markdown syntax like ** or ##."
)

_PATIENT_BLOCK = """Patient Information:
- Name: {{patientName}}
- MRN: {{patientMRN}}
- Age: {{patientAge}}
- Primary Condition: {{patientCondition}}
- Date: {{currentDate}}

Consultation Notes:
{{transcription}}
"""


def _template(
    template_id: str,
    name: str,
    role_text: str,
    body: str,
    temperature: float,
    max_tokens: int,
    category: str = "letters",
) -> Dict[str, Any]:
    return {
        "id": template_id,
        "name": name,
        "description": f"{name} generated from dictation",
        "category": category,
        "systemRole": role_text,
        "userPrompt": _PATIENT_BLOCK + "\n" + body,
        "temperature": temperature,
        "maxTokens": max_tokens,
        "version": "1.0.0",
        "isActive": True,
    }


STATIC_TEMPLATES: Dict[str, Dict[str, Any]] = {
    "clinical": _template(
        "clinical",
        "Clinical Letter",
        "You are a medical letter generator for doctors. Generate professional "
        "clinical letters using HTML tags for formatting. " + _HTML_RULES,
        "Write a clinical letter to the referring doctor with sections for "
        "History & Presentation, Past Medical History, Medications, "
        "Investigations, Examination, Assessment and Plan.",
        0.7,
        2000,
    ),
    "consultation": _template(
        "consultation",
        "Consultation Letter",
        "You are a medical letter generator for doctors. Generate the BODY of a "
        "professional consultation letter using HTML tags for formatting. "
        + _HTML_RULES,
        "Write only the body of a consultation letter: reason for consultation, "
        "findings, impression and recommendations. Omit greetings and signatures.",
        0.7,
        1800,
    ),
    "referral": _template(
        "referral",
        "Referral Letter",
        "You are a medical letter generator for doctors. Generate professional "
        "referral letters using HTML tags for formatting. " + _HTML_RULES,
        "Write a referral letter stating the reason for referral, relevant "
        "history, current treatment and the specific question for the specialist.",
        0.7,
        1800,
    ),
    "discharge": _template(
        "discharge",
        "Discharge Summary",
        "You are a medical letter generator for doctors. Generate professional "
        "discharge summaries using HTML tags for formatting. " + _HTML_RULES,
        "Write a discharge summary covering admission reason, hospital course, "
        "discharge medications, follow-up arrangements and advice given.",
        0.7,
        2000,
    ),
    "soap": _template(
        "soap",
        "SOAP Note",
        "You are a medical professional. Convert this consultation into a "
        "professional SOAP note format using HTML tags. " + _HTML_RULES,
        "Structure the note as Subjective, Objective, Assessment and Plan.",
        0.6,
        1000,
        category="notes",
    ),
    "generic": _template(
        "generic",
        "General Letter",
        "You are a medical letter generator for doctors. Generate the BODY of a "
        "professional clinical letter using HTML tags for formatting. "
        + _HTML_RULES,
        "Write a concise clinical letter summarising the consultation and the "
        "agreed plan.",
        0.7,
        1500,
    ),
}


class StaticTemplateSource(TemplateSourcePort):
    """Template source backed by the built-in table."""

    def __init__(self, templates: Optional[Mapping[str, Mapping[str, Any]]] = None):
        self._templates = dict(templates if templates is not None else STATIC_TEMPLATES)

    async def fetch_template(self, template_id: str) -> Mapping[str, Any]:
        payload = self._templates.get(template_id)
        if payload is None:
            raise TemplateNotFoundError(template_id)
        return dict(payload)

    async def list_templates(self) -> List[Mapping[str, Any]]:
        return [dict(payload) for payload in self._templates.values()]
