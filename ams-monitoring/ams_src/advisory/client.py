"""Dosing advisory checks backed by a local LLM.

The advisor compares a prescription against the drug monograph text and
returns a short finding for the prescriber. It is strictly best-effort:
missing inputs, network failures and unusable responses all return None,
and nothing in the monitoring engine waits on it.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

import requests

from ..config import config

logger = logging.getLogger(__name__)


RENAL = "renal"
WEIGHT_BASED = "weight_based"
PEDIATRIC = "pediatric"


@dataclass(frozen=True)
class AdvisoryRequest:
    """Inputs for a dosing check.

    ``patient_metric`` is the eGFR text for renal checks and the weight in
    kg for weight-based and pediatric checks.
    """
    drug: str
    dose: str
    frequency: str
    patient_metric: str
    monograph_text: str
    age: str = ""
    patient_type: str = "adult"


@dataclass(frozen=True)
class AdvisoryFinding:
    """Result of a dosing check."""
    check_type: str
    requires_attention: bool
    message: str


RENAL_PROMPT = """Act as a clinical pharmacist safety system.

Patient Data:
- eGFR: {patient_metric}

Drug Context:
- Drug: {drug}
- Renal Dosing Guidelines: "{monograph_text}"
- Prescribed Dose: {dose} (this is the TOTAL dose per administration, e.g. '1g' or '500mg', not a mg/kg value unless stated)
- Frequency: {frequency}

Task:
Compare the patient's eGFR against the Renal Dosing Guidelines. Does the
patient need a dose or interval change compared to dosing for normal renal
function?

Rules:
- If eGFR is in the normal or "no adjustment" range, requiresAdjustment is false.
- If eGFR falls into a range requiring adjustment, requiresAdjustment is true.
- Be conservative. If unsure, assume safety first.
- Keep recommendation under 15 words (e.g. "Reduce to 1g q24h").

Respond with JSON:
{{"requiresAdjustment": true or false, "recommendation": "..."}}"""


WEIGHT_BASED_PROMPT = """Act as a clinical pharmacist.

Context:
- Patient Type: {patient_type}
- Weight: {patient_metric} kg
- Drug: {drug}
- Prescribed: Dose '{dose}', Frequency '{frequency}'
- Monograph Rule: "{monograph_text}"

Task:
1. Parse the dose text into a number (handle 'g' and 'mg').
2. Calculate the resulting mg/kg, per dose or per day as appropriate for the drug.
3. Compare with the Monograph Rule.

Rules:
- If the dose is reasonably within the therapeutic window, status is SAFE.
- If the dose is clearly too high (toxic) or too low (ineffective), status is WARNING.

Respond with JSON:
{{"status": "SAFE" or "WARNING", "message": "..."}}"""


PEDIATRIC_PROMPT = """Act as a pediatric clinical pharmacist.

Patient: {age} years old, {patient_metric} kg.
Prescription: {drug}, Dose: {dose}, Frequency: {frequency}.
Monograph Guidelines: "{monograph_text}"

Task:
1. Calculate the daily dose in mg/kg/day from the prescription.
2. Compare against the Monograph Guidelines.
3. Decide whether it is therapeutically safe (not toxic, not significantly underdosed).

Respond with JSON:
{{"isSafe": true or false, "message": "Calculated [X] mg/kg/day. Safe range is [Y]. [Verdict]."}}"""


# eGFR placeholders shown while labs are outstanding
_PENDING_MARKERS = ("—", "Pending")

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


class DosingAdvisor:
    """Runs renal, weight-based and pediatric dosing checks via Ollama."""

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        timeout: int | None = None,
        enabled: bool | None = None,
    ):
        """Initialize the advisor.

        Args:
            base_url: Ollama API base URL. Uses config if None.
            model: Model to use. Uses config if None.
            timeout: Request timeout in seconds. Uses config if None.
            enabled: Run checks at all. Uses config.is_advisory_configured() if None.
        """
        self.enabled = config.is_advisory_configured() if enabled is None else enabled
        self.base_url = (base_url or config.LLM_BASE_URL).rstrip("/")
        self.model = model or config.LLM_MODEL
        self.timeout = timeout or config.ADVISORY_TIMEOUT_SECONDS
        self.session = requests.Session()

    def is_available(self) -> bool:
        """Check if the LLM server is reachable."""
        try:
            response = self.session.get(f"{self.base_url}/api/tags", timeout=5)
            return response.status_code == 200
        except requests.RequestException:
            return False

    def check_renal(self, request: AdvisoryRequest) -> AdvisoryFinding | None:
        """Does the patient's eGFR call for a renal dose adjustment?"""
        if not (request.drug and request.patient_metric and request.monograph_text):
            return None
        if any(marker in request.patient_metric for marker in _PENDING_MARKERS):
            return None

        data = self._ask(RENAL, RENAL_PROMPT, request)
        if data is None:
            return None

        flag = data.get("requiresAdjustment")
        recommendation = data.get("recommendation")
        if not isinstance(flag, bool) or not isinstance(recommendation, str):
            logger.warning(f"Malformed renal advisory response for {request.drug}: {data}")
            return None

        return AdvisoryFinding(check_type=RENAL, requires_attention=flag, message=recommendation)

    def check_weight_based(self, request: AdvisoryRequest) -> AdvisoryFinding | None:
        """Is the dose within the mg/kg range of the monograph?"""
        if not self._has_dose_inputs(request):
            return None

        data = self._ask(WEIGHT_BASED, WEIGHT_BASED_PROMPT, request)
        if data is None:
            return None

        status = data.get("status")
        message = data.get("message")
        if status not in ("SAFE", "WARNING") or not isinstance(message, str):
            logger.warning(f"Malformed weight-based advisory response for {request.drug}: {data}")
            return None

        return AdvisoryFinding(
            check_type=WEIGHT_BASED,
            requires_attention=status == "WARNING",
            message=message,
        )

    def check_pediatric(self, request: AdvisoryRequest) -> AdvisoryFinding | None:
        """Is the mg/kg/day dose safe for a child of this weight?"""
        if not self._has_dose_inputs(request):
            return None

        data = self._ask(PEDIATRIC, PEDIATRIC_PROMPT, request)
        if data is None:
            return None

        is_safe = data.get("isSafe")
        message = data.get("message")
        if not isinstance(is_safe, bool) or not isinstance(message, str):
            logger.warning(f"Malformed pediatric advisory response for {request.drug}: {data}")
            return None

        return AdvisoryFinding(check_type=PEDIATRIC, requires_attention=not is_safe, message=message)

    def _has_dose_inputs(self, request: AdvisoryRequest) -> bool:
        return bool(request.drug and request.patient_metric and request.dose and request.monograph_text)

    def _ask(self, check_type: str, template: str, request: AdvisoryRequest) -> dict[str, Any] | None:
        """Send a prompt and return the parsed JSON object, or None on any failure."""
        if not self.enabled:
            return None

        prompt = template.format(
            drug=request.drug,
            dose=request.dose or "Not specified",
            frequency=request.frequency or "Not specified",
            patient_metric=request.patient_metric,
            monograph_text=request.monograph_text,
            age=request.age or "Unknown",
            patient_type=request.patient_type,
        )
        logger.debug(f"Advisory {check_type} check for {request.drug} ({self.model})")

        try:
            response_text = self._call_llm(prompt)
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Advisory {check_type} check failed: {e}")
            return None

        data = self._parse_json(response_text)
        if data is None:
            logger.warning(f"Advisory {check_type} check returned non-JSON output")
        return data

    def _call_llm(self, prompt: str) -> str:
        """Call the LLM API and return the raw response text.

        Raises:
            requests.RequestException: On connection errors, timeouts and HTTP errors.
            ValueError: If the response body is not JSON.
        """
        response = self.session.post(
            f"{self.base_url}/api/generate",
            json={
                "model": self.model,
                "prompt": prompt,
                "stream": False,
                "format": "json",
                "options": {
                    "temperature": 0.1,
                    "num_predict": 256,
                },
            },
            timeout=self.timeout,
        )
        response.raise_for_status()

        result = response.json()
        if not isinstance(result, dict) or not isinstance(result.get("response"), str):
            return ""
        return result["response"]

    def _parse_json(self, text: str) -> dict[str, Any] | None:
        """Parse a JSON object, tolerating markdown code fences."""
        if not text:
            return None
        cleaned = _FENCE.sub("", text.strip())
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError:
            return None
        return data if isinstance(data, dict) else None
