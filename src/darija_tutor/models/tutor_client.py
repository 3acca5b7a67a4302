"""
Tutor client abstraction.

Provides the inference gateway used by the orchestrator: analysis of text or
audio into a structured tutor response, and speech synthesis for
pronunciation. The default implementation talks to the Gemini REST API.
"""

import ast
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any

import httpx
from pydantic import ValidationError

from darija_tutor.config import get_settings
from darija_tutor.orchestrator.schemas import AudioInput, TutorResponse

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = """
You are an expert Moroccan Darija (Moroccan Arabic) tutor.
Your goal is to help the user practice by analyzing their input (text or audio).

1. **Analyze**: Understand the user's Darija input.
2. **Transcribe**: If input is audio, transcribe it accurately in Darija (Arabic script). If text, correct any typos.
3. **Translate**: Provide a direct, natural English translation of what was said.
4. **Explain**: Provide a clear, concise English explanation of the grammar, meaning, and cultural context.
5. **Extract Vocabulary**: Identify key words or phrases.
6. **Formatting Strictness**:
   - ALWAYS provide Darija words in both Arabic Script and Latin Script in parentheses.
   - Example: "كيف داير (Kif dayr)" or "لاباس (Labas)".
   - This applies to the 'transcription' (prefer Arabic script mostly) and especially the 'vocabulary' fields.

If the user speaks English asking for a translation, provide the Darija translation in the transcription, translation, and vocabulary sections accordingly.
"""

AUDIO_PROMPT = "Analyze this audio."

TUTOR_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "transcription": {
            "type": "STRING",
            "description": "The transcription of what the user said or wrote. If audio, write what was heard in Darija/Arabic script.",
        },
        "translation": {
            "type": "STRING",
            "description": "A direct English translation of the transcription.",
        },
        "explanation": {
            "type": "STRING",
            "description": "An English explanation of the meaning and grammar of the input.",
        },
        "vocabulary": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "word": {
                        "type": "STRING",
                        "description": "The Darija word/phrase in 'Arabic Script (Latin Script)' format.",
                    },
                    "meaning": {"type": "STRING", "description": "English meaning."},
                    "notes": {"type": "STRING", "description": "Grammar or usage notes."},
                },
                "required": ["word", "meaning"],
            },
        },
    },
    "required": ["transcription", "translation", "explanation", "vocabulary"],
}


class GatewayError(Exception):
    """Exception raised when the inference service call fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MissingCredentialError(GatewayError):
    """Raised when no API credential is configured."""


class GatewayResponseError(GatewayError):
    """Raised when the service answers with an empty or malformed payload."""


class TutorClientBase(ABC):
    """Abstract base class for inference gateways."""

    @abstractmethod
    async def analyze(
        self,
        text: str | None = None,
        audio: AudioInput | None = None,
    ) -> TutorResponse:
        """
        Analyze a learner utterance.

        Args:
            text: Typed input, used when no audio is given.
            audio: Encoded recording or upload.

        Returns:
            Structured tutor feedback.
        """
        ...

    @abstractmethod
    async def synthesize(self, text: str) -> str:
        """
        Synthesize speech for a word or phrase.

        Args:
            text: Text to speak.

        Returns:
            Base64-encoded 16-bit little-endian PCM at 24 kHz mono.
        """
        ...

    async def close(self) -> None:
        """Release any held resources."""
        return None


class GeminiTutorClient(TutorClientBase):
    """
    Gemini-based inference gateway.

    Sends `generateContent` requests over HTTP. Analysis requests ask for JSON
    matching the tutor schema; speech requests ask for audio output.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        analysis_model: str | None = None,
        speech_model: str | None = None,
        voice: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the Gemini client.

        Args:
            api_key: API credential (uses config if not provided).
            base_url: Service base URL (uses config if not provided).
            analysis_model: Model for tutor analysis.
            speech_model: Model for speech synthesis.
            voice: Prebuilt voice name.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, mainly for tests.
        """
        settings = get_settings()
        self._api_key = api_key if api_key is not None else settings.api_key
        self._base_url = base_url or settings.api_base_url
        self._analysis_model = analysis_model or settings.analysis_model
        self._speech_model = speech_model or settings.speech_model
        self._voice = voice or settings.speech_voice
        self._timeout = timeout or settings.request_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        logger.info(f"Initialized Gemini tutor client with model: {self._analysis_model}")

    @property
    def analysis_model(self) -> str:
        """Get the analysis model name."""
        return self._analysis_model

    def _require_api_key(self) -> str:
        if not self._api_key:
            raise MissingCredentialError(
                "API Key is missing. Please set the DARIJA_TUTOR_API_KEY environment variable."
            )
        return self._api_key

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _generate_content(self, model: str, payload: dict[str, Any]) -> dict[str, Any]:
        """
        POST a generateContent request.

        Raises:
            MissingCredentialError: If no API key is configured.
            GatewayError: On transport failures or non-2xx answers.
            GatewayResponseError: If the body is not a JSON object.
        """
        api_key = self._require_api_key()
        client = await self._get_client()

        try:
            response = await client.post(
                f"/v1beta/models/{model}:generateContent",
                json=payload,
                headers={"x-goog-api-key": api_key},
            )
        except httpx.HTTPError as e:
            logger.error(f"Gemini request failed: {e}")
            raise GatewayError(f"Request to inference service failed: {e}") from e

        if response.status_code >= 400:
            logger.error(f"Gemini returned HTTP {response.status_code}: {response.text[:500]}")
            raise GatewayError(
                f"Inference service rejected the request (HTTP {response.status_code})",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise GatewayResponseError("Inference service returned a non-JSON body") from e
        if not isinstance(body, dict):
            raise GatewayResponseError("Inference service returned an unexpected body")
        return body

    @staticmethod
    def _first_part(body: dict[str, Any]) -> dict[str, Any]:
        try:
            part = body["candidates"][0]["content"]["parts"][0]
        except (KeyError, IndexError, TypeError):
            return {}
        return part if isinstance(part, dict) else {}

    async def analyze(
        self,
        text: str | None = None,
        audio: AudioInput | None = None,
    ) -> TutorResponse:
        """
        Analyze text or audio with the tutor model.

        Raises:
            GatewayError: If no input is given or the call fails.
            GatewayResponseError: If the answer is empty or does not match the schema.
        """
        parts: list[dict[str, Any]] = []
        if audio is not None:
            parts.append({"inlineData": {"data": audio.base64_data, "mimeType": audio.mime_type}})
            parts.append({"text": AUDIO_PROMPT})
        elif text:
            parts.append({"text": text})
        else:
            raise GatewayError("No input provided")

        payload = {
            "systemInstruction": {"parts": [{"text": SYSTEM_INSTRUCTION}]},
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": TUTOR_RESPONSE_SCHEMA,
            },
        }

        body = await self._generate_content(self._analysis_model, payload)
        content = self._first_part(body).get("text")
        if not content:
            raise GatewayResponseError("Empty response from AI")

        return parse_tutor_response(content)

    async def synthesize(self, text: str) -> str:
        """
        Synthesize speech with the TTS model.

        Raises:
            ValueError: If the text is blank.
            GatewayResponseError: If the answer carries no audio payload.
        """
        if not text or not text.strip():
            raise ValueError("Text is required for speech generation.")

        payload = {
            "contents": [{"parts": [{"text": text}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": self._voice}},
                },
            },
        }

        body = await self._generate_content(self._speech_model, payload)
        inline = self._first_part(body).get("inlineData") or {}
        data = inline.get("data") if isinstance(inline, dict) else None
        if not data:
            logger.warning("Gemini TTS response missing audio data.")
            raise GatewayResponseError("No audio generated from Gemini.")
        return data


def parse_tutor_response(content: str) -> TutorResponse:
    """
    Parse model output into a TutorResponse.

    Args:
        content: Raw text returned by the model.

    Returns:
        The validated response.

    Raises:
        GatewayResponseError: If no JSON object can be recovered or it violates the schema.
    """
    parsed = _parse_json_loose(_extract_json_object(content))
    if not isinstance(parsed, dict):
        logger.debug(f"Unparseable response content: {content[:500]}")
        raise GatewayResponseError("Malformed response from AI")
    try:
        return TutorResponse.model_validate(parsed)
    except ValidationError as e:
        raise GatewayResponseError(f"Response does not match the tutor schema: {e}") from e


def _extract_json_object(content: str) -> str:
    """Cut the first balanced JSON object out of surrounding text."""
    text = content.strip()
    start_idx = text.find("{")
    if start_idx == -1:
        return text

    depth = 0
    in_string = False
    escaped = False
    for i, char in enumerate(text[start_idx:], start=start_idx):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start_idx : i + 1]
    return text[start_idx:]


def _fix_json_string(json_str: str) -> str:
    """
    Attempt to fix common JSON issues from LLM output.

    Args:
        json_str: Raw JSON string that may have issues.

    Returns:
        Cleaned JSON string.
    """
    if not json_str:
        return ""

    result = json_str.strip()

    # Strip fenced blocks.
    result = re.sub(r"^```(?:json)?\s*", "", result, flags=re.IGNORECASE)
    result = re.sub(r"\s*```$", "", result)

    # Normalize curly quotes.
    result = result.replace("“", '"').replace("”", '"')

    # Remove trailing commas before closing braces/brackets.
    result = re.sub(r",(\s*[}\]])", r"\1", result)

    return result


def _parse_json_loose(raw: str) -> dict[str, Any] | list[Any] | None:
    """Parse JSON with best-effort repair.

    Returns a dict/list on success, else None.
    """
    if not raw:
        return None

    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        pass

    cleaned = _fix_json_string(raw)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    # Fallback: a Python literal (single quotes, None/True/False).
    try:
        obj = ast.literal_eval(cleaned)
    except (ValueError, TypeError, SyntaxError, MemoryError, RecursionError):
        return None

    if not isinstance(obj, (dict, list)):
        return None
    try:
        return json.loads(json.dumps(obj))
    except (TypeError, ValueError):
        return None
