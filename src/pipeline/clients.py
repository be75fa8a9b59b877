"""Clients for the external speech-to-text and text-analysis services.

Each client is the thin edge between the pipeline and one vendor SDK. The
adapters depend only on the ``SpeechToTextClient`` / ``TextAnalysisClient``
protocols, so tests substitute plain fakes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from src.pipeline.errors import MalformedAnalysisError
from src.pipeline.models import SpeechToTextResult, WordTiming

logger = logging.getLogger(__name__)


class SpeechToTextClient(Protocol):
    async def submit(self, url: str, language_hint: str | None) -> SpeechToTextResult: ...


class TextAnalysisClient(Protocol):
    async def submit(self, text: str) -> Any: ...


# ---------------------------------------------------------------------------
# AssemblyAI
# ---------------------------------------------------------------------------


class AssemblyAISpeechClient:
    """Speech-to-text via the AssemblyAI SDK.

    The job is submitted once, then polled by id. Each SDK call is a short
    request run in a worker thread, with ``asyncio.sleep`` between polls, so a
    caller timeout or cancellation stops polling at the next await.
    """

    def __init__(
        self,
        api_key: str,
        speech_model: str = "universal",
        http_timeout: float = 30.0,
        poll_interval: float = 3.0,
    ) -> None:
        import assemblyai as aai  # type: ignore[import-untyped]  # no stubs

        aai.settings.api_key = api_key
        aai.settings.http_timeout = http_timeout
        self._aai = aai
        self._speech_model = speech_model
        self._poll_interval = poll_interval

    async def submit(self, url: str, language_hint: str | None) -> SpeechToTextResult:
        job = await asyncio.to_thread(self._submit, url, language_hint)
        logger.info("Submitted %s to AssemblyAI as job %s", _redact(url), job.id)

        while _status(job) not in _TERMINAL_STATUSES:
            await asyncio.sleep(self._poll_interval)
            job = await asyncio.to_thread(self._aai.Transcript.get_by_id, job.id)
        return _to_result(job)

    def _submit(self, url: str, language_hint: str | None) -> Any:
        aai = self._aai
        config = aai.TranscriptionConfig(
            speech_models=[self._speech_model],
            language_code=language_hint or None,
            punctuate=True,
            format_text=True,
        )
        return aai.Transcriber().submit(url, config=config)


_TERMINAL_STATUSES = ("completed", "error")


def _status(transcript: Any) -> str:
    return str(getattr(transcript.status, "value", transcript.status))


def _to_result(transcript: Any) -> SpeechToTextResult:
    """Convert an AssemblyAI ``Transcript`` into a SpeechToTextResult."""
    status = _status(transcript)
    words = tuple(
        WordTiming(
            text=w.text,
            start_ms=int(w.start),
            end_ms=int(w.end),
            confidence=float(w.confidence if w.confidence is not None else 1.0),
        )
        for w in (transcript.words or [])
    )
    response = getattr(transcript, "json_response", None) or {}
    duration = getattr(transcript, "audio_duration", None) or response.get("audio_duration")
    return SpeechToTextResult(
        status=status,
        text=transcript.text or "",
        words=words,
        language_code=response.get("language_code"),
        duration_seconds=float(duration) if duration is not None else None,
        error=getattr(transcript, "error", None),
    )


def _redact(url: str) -> str:
    """Strip the query string (which carries the signing token) for logging."""
    return url.split("?", 1)[0]


# ---------------------------------------------------------------------------
# Text analysis
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = (
    "You are an expert content analyst specializing in video content optimization. "
    "Your task is to analyze video transcripts and extract valuable insights for "
    "content creation. Provide your analysis in a structured JSON format."
)

USER_PROMPT_TEMPLATE = """\
Analyze this video transcript and provide:
1. 10-15 relevant keywords (single words or short phrases)
2. 5-8 main topics discussed, most important first
3. A brief summary (2-3 sentences)
4. Overall sentiment
5. 3-5 key moments with timestamps in seconds
6. Content suggestions for repurposing

Transcript:
{transcript}

Return the analysis in this exact JSON format:
{{
  "keywords": ["keyword1", "keyword2"],
  "topics": ["topic1", "topic2"],
  "summary": "Brief summary of the content",
  "sentiment": "positive|neutral|negative",
  "keyMoments": [{{"timestamp": 12, "description": "what happens"}}],
  "contentSuggestions": {{
    "blogPostIdeas": ["idea1"],
    "socialMediaHooks": ["hook1"],
    "shortFormContent": ["idea1"]
  }}
}}"""

# Tool definition for Claude structured output
ANALYSIS_TOOL: dict[str, Any] = {
    "name": "store_content_analysis",
    "description": "Store the structured analysis of a video transcript.",
    "input_schema": {
        "type": "object",
        "properties": {
            "keywords": {"type": "array", "items": {"type": "string"}},
            "topics": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Main topics, most salient first.",
            },
            "summary": {"type": "string"},
            "sentiment": {"type": "string", "enum": ["positive", "neutral", "negative"]},
            "keyMoments": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "timestamp": {"type": "number", "description": "Seconds from start."},
                        "description": {"type": "string"},
                    },
                    "required": ["timestamp", "description"],
                },
            },
            "contentSuggestions": {
                "type": "object",
                "properties": {
                    "blogPostIdeas": {"type": "array", "items": {"type": "string"}},
                    "socialMediaHooks": {"type": "array", "items": {"type": "string"}},
                    "shortFormContent": {"type": "array", "items": {"type": "string"}},
                },
            },
        },
        "required": ["keywords", "topics", "summary", "sentiment", "keyMoments"],
    },
}


class AnthropicAnalysisClient:
    """Text analysis with Claude, forced through a single tool call."""

    def __init__(self, api_key: str, model: str, timeout: float = 120.0) -> None:
        # Retries are owned by the RetryController
        self._client = AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=0)
        self._model = model

    async def submit(self, text: str) -> Any:
        response = await self._client.messages.create(
            model=self._model,
            max_tokens=2048,
            temperature=0.3,
            system=SYSTEM_PROMPT,
            tools=[ANALYSIS_TOOL],
            tool_choice={"type": "tool", "name": ANALYSIS_TOOL["name"]},
            messages=[{"role": "user", "content": USER_PROMPT_TEMPLATE.format(transcript=text)}],
        )
        for block in response.content:
            if block.type == "tool_use" and block.name == ANALYSIS_TOOL["name"]:
                return block.input
        raise MalformedAnalysisError("Claude response contained no analysis tool call")


class OpenAIAnalysisClient:
    """Text analysis with an OpenAI chat model in JSON-object mode."""

    def __init__(self, api_key: str, model: str, timeout: float = 120.0) -> None:
        self._client = AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self._model = model

    async def submit(self, text: str) -> Any:
        completion = await self._client.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": USER_PROMPT_TEMPLATE.format(transcript=text)},
            ],
            temperature=0.3,
            max_tokens=1500,
            response_format={"type": "json_object"},
        )
        content = completion.choices[0].message.content
        if not content:
            raise MalformedAnalysisError("No response content from OpenAI")
        return content
