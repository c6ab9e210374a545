import httpx
import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from app.core.config import settings
from app.core.exceptions import AnalysisError
from app.core.prompts import SYSTEM_PROMPT_DIAGNOSIS, DEFAULT_USER_PROMPT
from app.models.usage_event import ResourceType
from app.schemas.diagnostic import DiagnosisResult

logger = logging.getLogger(__name__)

# Media the vision model can look at directly
VISUAL_RESOURCE_TYPES = {ResourceType.PHOTO, ResourceType.VIDEO}


class AnalysisService:
    """Client for the external diagnosis model (OpenAI-compatible chat completions)"""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = settings.ai_gateway_url
        self.model = settings.ai_model
        self.timeout = settings.analysis_timeout_seconds
        self.transport = transport

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if settings.ai_gateway_api_key:
            headers["Authorization"] = f"Bearer {settings.ai_gateway_api_key}"
        return headers

    def _build_messages(
        self,
        resource_type: ResourceType,
        payload_ref: Optional[str],
        description: Optional[str]
    ) -> List[Dict[str, Any]]:
        user_prompt = description or DEFAULT_USER_PROMPT[resource_type.value]
        if payload_ref and resource_type in VISUAL_RESOURCE_TYPES:
            user_content: Any = [
                {"type": "text", "text": user_prompt},
                {"type": "image_url", "image_url": {"url": payload_ref}},
            ]
        else:
            user_content = user_prompt
        return [
            {"role": "system", "content": SYSTEM_PROMPT_DIAGNOSIS},
            {"role": "user", "content": user_content},
        ]

    async def analyze(
        self,
        resource_type: ResourceType,
        payload_ref: Optional[str] = None,
        description: Optional[str] = None
    ) -> DiagnosisResult:
        """Run one diagnosis. Any transport, HTTP or parse problem raises AnalysisError."""
        body = {
            "model": self.model,
            "messages": self._build_messages(resource_type, payload_ref, description),
            "response_format": {"type": "json_object"},
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.url, headers=self._get_headers(), json=body)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"❌ Analysis gateway returned {e.response.status_code}: {e.response.text[:500]}")
            raise AnalysisError(f"gateway status {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"❌ Analysis gateway request failed: {e}")
            raise AnalysisError(str(e)) from e

        try:
            content = data["choices"][0]["message"]["content"]
            return DiagnosisResult.model_validate(json.loads(content))
        except (KeyError, IndexError, TypeError, ValueError, PydanticValidationError) as e:
            logger.error(f"❌ Unusable analysis response: {e}")
            raise AnalysisError("unusable analysis response") from e


# Create singleton instance
analysis_service = AnalysisService()


def get_analyzer() -> AnalysisService:
    """FastAPI dependency for the analysis collaborator"""
    return analysis_service
