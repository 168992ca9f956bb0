"""
LLM Factory for CONVERGE Planning Stages

Creates configured Gemini model instances for the planning pipeline.
Gemini 3 models support a `thinking_level` parameter for built-in
reasoning; thoughts are requested so each stage can surface a short
reasoning trace.

thinking_level options:
- 'high': Maximum reasoning depth (default for the planning chain)
- 'low': Fast responses (refinement calls, local experiments)
"""

from typing import Literal

from langchain_google_genai import ChatGoogleGenerativeAI

from converge.core.config import Settings


class LLMFactory:
    """
    Factory class to create configured Gemini model instances.

    The orchestrator owns the instance it gets from here; nothing in the
    package holds a module-level client.
    """

    @staticmethod
    def get_model(
        settings: Settings,
        reasoning_level: Literal["standard", "high"] = "high",
    ) -> ChatGoogleGenerativeAI:
        """
        Returns a configured ChatGoogleGenerativeAI instance.

        Args:
            settings: Runtime settings (must carry a credential)
            reasoning_level: 'standard' or 'high' for deep thinking

        Returns:
            Configured ChatGoogleGenerativeAI instance

        Raises:
            ValueError: If settings carry no credential
        """
        if not settings.has_credential:
            raise ValueError("Cannot build a Gemini model without GEMINI_API_KEY")

        thinking_level = "high" if reasoning_level == "high" else "low"

        safety_settings = {
            "HARM_CATEGORY_HARASSMENT": "BLOCK_ONLY_HIGH",
            "HARM_CATEGORY_HATE_SPEECH": "BLOCK_ONLY_HIGH",
            "HARM_CATEGORY_SEXUALLY_EXPLICIT": "BLOCK_ONLY_HIGH",
            "HARM_CATEGORY_DANGEROUS_CONTENT": "BLOCK_ONLY_HIGH",
        }

        return ChatGoogleGenerativeAI(
            model=settings.model_name,
            google_api_key=settings.gemini_api_key,
            temperature=settings.temperature,
            safety_settings=safety_settings,
            thinking_level=thinking_level,
            include_thoughts=True,
            response_mime_type="application/json",
            # Retries are owned by the orchestrator
            max_retries=0,
            timeout=settings.stage_timeout_seconds,
        )
