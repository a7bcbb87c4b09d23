import enum
import json
import logging
import re
from typing import Any, Dict, Optional

from openai import AsyncOpenAI
from pydantic import ValidationError as SchemaValidationError

from devhance.core.config import settings
from devhance.core.errors import ConfigurationError, GenerationParseError, GenerationServiceError
from devhance.prompts.case_study_prompt import CASE_STUDY_PROMPT
from devhance.prompts.vc_report_prompt import VC_REPORT_PROMPT
from devhance.schemas.generation import CaseStudyContent, VCReportContent

logger = logging.getLogger(__name__)

EMPTY_CONTEXT_MARKER = "(empty: repository contents could not be read; use metadata only)"

# A reply that is entirely wrapped in one code fence, optionally tagged (```json)
_FENCE_RE = re.compile(r"^```[A-Za-z0-9_-]*[ \t]*\n?(.*?)\n?[ \t]*```$", re.DOTALL)


class GenerationMode(str, enum.Enum):
    CASE_STUDY = "case_study"
    VC_REPORT = "vc_report"


TEMPLATES = {
    GenerationMode.CASE_STUDY: CASE_STUDY_PROMPT,
    GenerationMode.VC_REPORT: VC_REPORT_PROMPT,
}


def strip_code_fences(text: str) -> str:
    """
    Remove a code fence wrapped around the whole reply.

    This is the only repair applied to model output: text outside a fence,
    or anything after the JSON object, is left in place so parsing fails.
    """
    cleaned = text.strip()
    match = _FENCE_RE.match(cleaned)
    if match:
        return match.group(1).strip()
    return cleaned


def parse_json_reply(text: Optional[str]) -> Dict[str, Any]:
    """
    Parse a model reply into a JSON object.

    Raises:
        GenerationParseError: If the reply is empty, is not valid JSON after
            fence stripping, or is not a JSON object.
    """
    if not text or not text.strip():
        raise GenerationParseError("Model returned an empty reply", raw=text)

    cleaned = strip_code_fences(text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise GenerationParseError(f"Model reply is not valid JSON: {e}", raw=text) from e

    if not isinstance(parsed, dict):
        raise GenerationParseError("Model reply is not a JSON object", raw=text)
    return parsed


def _to_json(value: Any) -> str:
    return json.dumps(value, indent=2, default=str, ensure_ascii=False)


class GenerationService:
    """
    Adapter around the external generative model.

    One call per invocation, no automatic retries: retry policy belongs to
    the caller. Service failures raise GenerationServiceError, unusable
    replies raise GenerationParseError.
    """

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None) -> None:
        self._client = client
        self.model: str = model or settings.GENERATION_MODEL

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not settings.OPENROUTER_API_KEY:
                raise ConfigurationError("OPENROUTER_API_KEY is not configured")
            self._client = AsyncOpenAI(
                base_url=settings.OPENROUTER_BASE_URL,
                api_key=settings.OPENROUTER_API_KEY,
            )
        return self._client

    def build_prompt(
        self,
        mode: GenerationMode,
        context_text: str,
        metadata: Optional[Dict[str, Any]] = None,
        case_study: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Fill the template for ``mode`` with the serialized inputs."""
        template = TEMPLATES[GenerationMode(mode)]
        replacements = {
            "{{REPO_CONTEXT}}": context_text.strip() or EMPTY_CONTEXT_MARKER,
            "{{REPO_METADATA_JSON}}": _to_json(metadata or {}),
            "{{CASE_STUDY_JSON}}": _to_json(case_study or {}),
        }
        prompt = template
        for placeholder, value in replacements.items():
            prompt = prompt.replace(placeholder, value)
        return prompt

    async def generate(
        self,
        mode: GenerationMode,
        context_text: str,
        metadata: Optional[Dict[str, Any]] = None,
        case_study: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Fill the prompt for ``mode``, call the model once and parse the reply.

        Returns:
            The parsed JSON object.

        Raises:
            GenerationServiceError: If the model call fails.
            GenerationParseError: If the reply is not a JSON object.
        """
        prompt = self.build_prompt(mode, context_text, metadata, case_study)
        client = self._get_client()

        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": "You respond with a single JSON object and nothing else."},
                    {"role": "user", "content": prompt},
                ],
            )
            content = response.choices[0].message.content
        except Exception as e:
            logger.error(f"Generation call failed (mode={GenerationMode(mode).value}): {e}")
            raise GenerationServiceError(f"Generation service call failed: {e}") from e

        try:
            return parse_json_reply(content)
        except GenerationParseError:
            logger.error(
                "Failed to parse %s reply: %s", GenerationMode(mode).value, (content or "")[:500]
            )
            raise

    async def generate_case_study(self, context_text: str, metadata: Dict[str, Any]) -> CaseStudyContent:
        data = await self.generate(GenerationMode.CASE_STUDY, context_text, metadata=metadata)
        try:
            return CaseStudyContent.model_validate(data)
        except SchemaValidationError as e:
            raise GenerationParseError(f"Case study reply has invalid fields: {e}") from e

    async def generate_vc_report(
        self,
        case_study: Dict[str, Any],
        context_text: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> VCReportContent:
        data = await self.generate(
            GenerationMode.VC_REPORT, context_text, metadata=metadata, case_study=case_study
        )
        try:
            return VCReportContent.model_validate(data)
        except SchemaValidationError as e:
            raise GenerationParseError(f"VC report reply is incomplete: {e}") from e


def get_generation_service() -> GenerationService:
    return GenerationService()
