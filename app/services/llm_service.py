"""
LLM generation service for quiz questions, study notes and answer grading.

Talks to any OpenAI-compatible ``/chat/completions`` endpoint (configured via
LLM_BASE_URL / LLM_API_KEY / LLM_MODEL). All JSON prompts are stored as
module-level constants so they can be tuned without touching logic code.

Public API
----------
LLMService.generate_quiz(topic, difficulty, num_questions, ...) -> List[Dict]
LLMService.generate_notes(topic, source_text, ...)              -> Dict
LLMService.evaluate_answer(question, user_answer, ...)          -> AnswerJudgement
LLMService.check_health()                                        -> bool
get_llm_service()                                                -> FastAPI dependency
"""
from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from app.config import settings
from app.utils.helpers import truncate_text

logger = logging.getLogger(__name__)


class LLMServiceError(RuntimeError):
    """Raised when the LLM is unreachable or returns unusable output."""


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class AnswerJudgement:
    is_correct: bool
    confidence: float
    reasoning: str = ""


# ---------------------------------------------------------------------------
# Prompt templates; edit these to tune LLM output without touching logic
# ---------------------------------------------------------------------------

_SYSTEM_PROMPT = (
    "You are an expert quiz generator and study coach. You base questions on "
    "the material provided and always respond with valid JSON only."
)

_QUIZ_PROMPT = """\
Generate {num_questions} quiz questions about "{topic}" at {difficulty} difficulty.
{audience}{instructions}
{source_block}
For each question provide:
1. "question": a clear, well-written question
2. "type": "multiple_choice" or "open_ended"
3. For multiple choice: "options" (exactly 4 strings) and "correct" (the index 0-3 of the right option)
4. For open-ended: "expected_answers" (list of acceptable answers), "answer_format" ("number" or "text") and "hints" (list)
5. "explanation": why the answer is correct

Mix both question types. Do not repeat any of these previously asked questions:
{avoid_block}

Respond ONLY with valid JSON. No explanation, no markdown:
{{"questions": [{{"type": "multiple_choice", "question": "...", "options": ["...", "...", "...", "..."], "correct": 1, "explanation": "..."}}, {{"type": "open_ended", "question": "...", "expected_answers": ["..."], "answer_format": "text", "hints": ["..."], "explanation": "..."}}]}}\
"""

_QUIZ_RETRY_PROMPT = """\
Write {num_questions} quiz questions about "{topic}" as JSON.

Return ONLY this JSON shape, nothing else, no markdown:
{{"questions": [{{"type": "multiple_choice", "question": "...", "options": ["A", "B", "C", "D"], "correct": 0, "explanation": "..."}}]}}\
"""

_NOTES_PROMPT = """\
Create structured study notes about "{topic}".
{instructions}
{source_block}
Respond ONLY with valid JSON using exactly these keys. No explanation, no markdown:
{{
  "title": "...",
  "outline": ["section heading", "..."],
  "key_terms": [{{"term": "...", "definition": "..."}}],
  "concepts": [{{"heading": "...", "bullets": ["...", "..."]}}],
  "diagrams": [{{"title": "...", "description": "..."}}],
  "quiz": [{{"q": "...", "a": "..."}}]
}}\
"""

_NOTES_RETRY_PROMPT = """\
Summarise "{topic}" as study notes in JSON with keys title, outline, key_terms,
concepts, diagrams and quiz. Return ONLY the JSON object, no markdown.\
"""

_EVALUATE_PROMPT = """\
Evaluate whether a student's answer is correct.

Question: {question}

Expected answer(s):
{expected}
{explanation}
Student's answer: {user_answer}

Accept answers that show the same understanding even if worded differently.
Respond ONLY with JSON: {{"isCorrect": true, "confidence": 0.0, "reasoning": "..."}}\
"""


# ---------------------------------------------------------------------------
# Main service class
# ---------------------------------------------------------------------------

class LLMService:
    """
    Chat-completions client with JSON-output helpers.

    Limits concurrency to LLM_MAX_CONCURRENT simultaneous calls.
    Retries JSON parsing up to MAX_JSON_RETRIES times with a simpler prompt.
    """

    MAX_JSON_RETRIES: int = 2
    MAX_QUESTIONS: int = 50
    VALID_QUESTION_TYPES = frozenset({"multiple_choice", "open_ended"})

    QUIZ_PROMPT = _QUIZ_PROMPT
    QUIZ_RETRY_PROMPT = _QUIZ_RETRY_PROMPT
    NOTES_PROMPT = _NOTES_PROMPT
    NOTES_RETRY_PROMPT = _NOTES_RETRY_PROMPT
    EVALUATE_PROMPT = _EVALUATE_PROMPT

    def __init__(self) -> None:
        self.base_url = settings.LLM_BASE_URL.rstrip("/")
        self.api_key = settings.LLM_API_KEY
        self.model = settings.LLM_MODEL
        self.timeout = httpx.Timeout(float(settings.LLM_TIMEOUT), connect=10.0)
        self._semaphore = asyncio.Semaphore(settings.LLM_MAX_CONCURRENT)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.base_url)

    # ------------------------------------------------------------------
    # Public generation methods
    # ------------------------------------------------------------------

    async def generate_quiz(
        self,
        topic: str,
        difficulty: str = "medium",
        num_questions: int = 5,
        source_text: str = "",
        instructions: str = "",
        education_level: str = "",
        content_focus: str = "",
        avoid_questions: Sequence[str] = (),
    ) -> List[Dict[str, Any]]:
        """
        Generate quiz questions.

        Returns normalised question dicts with keys:
          type, question, options, correct, expected_answers, answer_format,
          hints, explanation

        Raises:
            LLMServiceError: the LLM was unreachable or never produced JSON.
        """
        num_questions = max(1, min(int(num_questions), self.MAX_QUESTIONS))

        audience = ""
        if education_level:
            audience += f"Target education level: {education_level}.\n"
        if content_focus:
            audience += f"Focus on: {content_focus}.\n"

        source_block = ""
        if source_text.strip():
            source_block = (
                "Base EVERY question on the specific content below; do not ask generic questions.\n"
                "---\n"
                f"{source_text[: settings.DOCUMENT_CONTEXT_CHARS]}\n"
                "---\n"
            )

        avoid = [truncate_text(q, 200) for q in list(avoid_questions)[:30]]
        avoid_block = "\n".join(f"- {q}" for q in avoid) if avoid else "(none)"

        prompt = self.QUIZ_PROMPT.format(
            num_questions=num_questions,
            topic=topic,
            difficulty=getattr(difficulty, "value", difficulty),
            audience=audience,
            instructions=f"Additional instructions: {instructions}\n" if instructions else "",
            source_block=source_block,
            avoid_block=avoid_block,
        )
        retry_prompt = self.QUIZ_RETRY_PROMPT.format(num_questions=num_questions, topic=topic)

        ok, parsed = await self._call_llm_json(prompt, max_tokens=3000, retry_prompt=retry_prompt)
        if not ok:
            raise LLMServiceError("Quiz generation failed: the model did not return valid JSON.")

        raw_questions = parsed.get("questions", []) if isinstance(parsed, dict) else parsed
        if not isinstance(raw_questions, list):
            raise LLMServiceError("Quiz generation failed: unexpected response shape.")

        questions: List[Dict[str, Any]] = []
        for raw in raw_questions:
            normalised = self._normalise_question(raw)
            if normalised is not None:
                questions.append(normalised)

        if not questions:
            raise LLMServiceError("Quiz generation failed: no usable questions were returned.")

        logger.info(
            "generate_quiz: topic=%r difficulty=%s requested=%d usable=%d",
            topic, difficulty, num_questions, len(questions),
        )
        return questions[:num_questions]

    async def generate_notes(
        self,
        topic: str,
        source_text: str = "",
        instructions: str = "",
    ) -> Dict[str, Any]:
        """Generate structured study notes; raises LLMServiceError on failure."""
        source_block = ""
        if source_text.strip():
            source_block = (
                "Use the following material as the source of truth:\n---\n"
                f"{source_text[: settings.DOCUMENT_CONTEXT_CHARS]}\n---\n"
            )
        prompt = self.NOTES_PROMPT.format(
            topic=topic,
            instructions=f"Additional instructions: {instructions}\n" if instructions else "",
            source_block=source_block,
        )
        retry_prompt = self.NOTES_RETRY_PROMPT.format(topic=topic)

        ok, parsed = await self._call_llm_json(prompt, max_tokens=3000, retry_prompt=retry_prompt)
        if not ok or not isinstance(parsed, dict):
            raise LLMServiceError("Notes generation failed: the model did not return a JSON object.")
        return self._normalise_notes(parsed, topic)

    async def evaluate_answer(
        self,
        question: str,
        user_answer: str,
        expected_answers: Sequence[str],
        explanation: str = "",
    ) -> AnswerJudgement:
        """Semantic grading for open-ended answers; raises LLMServiceError on failure."""
        if not user_answer or not user_answer.strip():
            return AnswerJudgement(is_correct=False, confidence=0.0, reasoning="No answer provided")

        prompt = self.EVALUATE_PROMPT.format(
            question=question,
            expected="\n".join(f"{i}. {a}" for i, a in enumerate(expected_answers, start=1)) or "(none)",
            explanation=f"Explanation: {explanation}\n" if explanation else "",
            user_answer=user_answer,
        )
        ok, parsed = await self._call_llm_json(prompt, max_tokens=300)
        if not ok or not isinstance(parsed, dict):
            raise LLMServiceError("Answer evaluation failed.")

        verdict = parsed.get("isCorrect", parsed.get("is_correct", False))
        return AnswerJudgement(
            is_correct=bool(verdict) if not isinstance(verdict, str) else verdict.lower() == "true",
            confidence=self._clamp(parsed.get("confidence", 0.5)),
            reasoning=str(parsed.get("reasoning", "")),
        )

    async def check_health(self) -> bool:
        """True if the endpoint answers GET /models with the configured key."""
        if not self.is_configured:
            return False
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                resp = await client.get(f"{self.base_url}/models", headers=self._headers())
            return resp.status_code == 200
        except httpx.HTTPError as exc:
            logger.warning("LLM health check failed: %s", exc)
            return False

    # ------------------------------------------------------------------
    # Normalisation
    # ------------------------------------------------------------------

    def _normalise_question(self, raw: Any) -> Optional[Dict[str, Any]]:
        """Coerce one generated question into the stored shape; None if unusable."""
        if not isinstance(raw, dict):
            return None
        text = str(raw.get("question") or raw.get("prompt") or "").strip()
        if not text:
            return None

        qtype = str(raw.get("type") or "").lower().replace("-", "_")
        if qtype in ("mcq", "multiplechoice"):
            qtype = "multiple_choice"
        options = [str(o).strip() for o in (raw.get("options") or []) if str(o).strip()]
        if qtype not in self.VALID_QUESTION_TYPES:
            qtype = "multiple_choice" if options else "open_ended"

        question: Dict[str, Any] = {
            "type": qtype,
            "question": text,
            "explanation": str(raw.get("explanation") or "").strip(),
        }

        if qtype == "multiple_choice":
            if len(options) < 2:
                return None
            correct = raw.get("correct")
            try:
                correct = int(correct)
            except (TypeError, ValueError):
                return None
            options = options[:4]
            if not 0 <= correct < len(options):
                return None
            question.update(options=options, correct=correct)
        else:
            expected = raw.get("expected_answers") or ([raw["answer"]] if raw.get("answer") else [])
            expected = [str(e).strip() for e in expected if str(e).strip()]
            if not expected:
                return None
            answer_format = str(raw.get("answer_format") or "text").lower()
            question.update(
                expected_answers=expected,
                answer_format="number" if answer_format in ("number", "numeric") else "text",
                hints=[str(h) for h in (raw.get("hints") or [])],
            )
        return question

    @staticmethod
    def _normalise_notes(raw: Dict[str, Any], topic: str) -> Dict[str, Any]:
        def _list(key: str) -> List[Any]:
            value = raw.get(key) or []
            return value if isinstance(value, list) else [value]

        key_terms = []
        for item in _list("key_terms"):
            if isinstance(item, dict):
                key_terms.append({"term": str(item.get("term", "")), "definition": str(item.get("definition", ""))})
            else:
                key_terms.append({"term": str(item), "definition": ""})

        concepts = []
        for item in _list("concepts"):
            if isinstance(item, dict):
                concepts.append({
                    "heading": str(item.get("heading", "")),
                    "bullets": [str(b) for b in (item.get("bullets") or [])],
                })

        diagrams = []
        for item in _list("diagrams"):
            if isinstance(item, dict):
                diagrams.append({"title": str(item.get("title", "")), "description": str(item.get("description", ""))})
            else:
                diagrams.append({"title": str(item), "description": ""})

        quiz = [
            {"q": str(item.get("q", "")), "a": str(item.get("a", ""))}
            for item in _list("quiz")
            if isinstance(item, dict) and item.get("q")
        ]

        return {
            "title": str(raw.get("title") or topic or "Study Notes").strip(),
            "outline": [str(o) for o in _list("outline")],
            "key_terms": key_terms,
            "concepts": concepts,
            "diagrams": diagrams,
            "quiz": quiz,
        }

    # ------------------------------------------------------------------
    # Core LLM caller
    # ------------------------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _call_llm(self, prompt: str, max_tokens: int = 1000) -> str:
        """
        POST to /chat/completions and return the message content.

        Uses semaphore to cap concurrent LLM calls. Returns empty string
        on any transport error or non-200 response.
        """
        async with self._semaphore:
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.post(
                        f"{self.base_url}/chat/completions",
                        headers=self._headers(),
                        json={
                            "model": self.model,
                            "messages": [
                                {"role": "system", "content": _SYSTEM_PROMPT},
                                {"role": "user", "content": prompt},
                            ],
                            "temperature": 0.7,
                            "max_tokens": max_tokens,
                        },
                    )

                if resp.status_code == 200:
                    choices = resp.json().get("choices") or []
                    if choices:
                        return (choices[0].get("message") or {}).get("content") or ""
                    return ""

                logger.error(
                    "_call_llm: endpoint returned HTTP %d: %s",
                    resp.status_code,
                    resp.text[:300],
                )
                return ""

            except httpx.TimeoutException:
                logger.error("_call_llm: request timed out after %s", self.timeout)
                return ""
            except httpx.HTTPError as exc:
                logger.error("_call_llm: transport error: %s", exc)
                return ""
            except ValueError as exc:
                logger.error("_call_llm: response body was not JSON: %s", exc)
                return ""

    async def _call_llm_json(
        self,
        prompt: str,
        max_tokens: int = 1500,
        retry_prompt: Optional[str] = None,
    ) -> Tuple[bool, Any]:
        """
        Call the LLM and attempt to parse the response as JSON.

        Retries up to MAX_JSON_RETRIES times. On retry, uses *retry_prompt*
        (a simpler, more directive prompt) if provided.

        Returns ``(success: bool, parsed_value: Any)``.
        """
        prompts = [prompt] + [retry_prompt or prompt] * (self.MAX_JSON_RETRIES - 1)

        for attempt, current_prompt in enumerate(prompts, start=1):
            response_text = await self._call_llm(current_prompt, max_tokens)

            if not response_text:
                # Transport failure; retrying the same call rarely helps
                logger.warning("_call_llm_json: empty LLM response (attempt %d)", attempt)
                return False, None

            success, parsed = self._parse_json_robust(response_text)
            if success:
                if attempt > 1:
                    logger.info("_call_llm_json: JSON parsed successfully on attempt %d", attempt)
                return True, parsed

            if attempt < self.MAX_JSON_RETRIES:
                logger.warning(
                    "_call_llm_json: JSON parse failed on attempt %d/%d, retrying",
                    attempt,
                    self.MAX_JSON_RETRIES,
                )

        logger.error("_call_llm_json: all %d JSON parse attempts failed", self.MAX_JSON_RETRIES)
        return False, None

    # ------------------------------------------------------------------
    # Robust JSON parsing
    # ------------------------------------------------------------------

    def _parse_json_robust(self, response: str) -> Tuple[bool, Any]:
        """
        Try multiple strategies to parse JSON from potentially messy LLM output.

        Handles markdown code fences, trailing commas, Python-style literals
        and surrounding prose.
        """
        if not response:
            return False, None

        text = response.strip()

        ok, val = self._try_json(text)
        if ok:
            return True, val

        stripped = self._strip_code_fences(text)
        if stripped != text:
            ok, val = self._try_json(stripped)
            if ok:
                return True, val
            text = stripped

        fixed = self._fix_json_issues(text)
        ok, val = self._try_json(fixed)
        if ok:
            return True, val

        for bracket_pair in (("{", "}"), ("[", "]")):
            fragment = self._extract_json_structure(text, *bracket_pair)
            if fragment:
                ok, val = self._try_json(fragment)
                if ok:
                    return True, val
                ok, val = self._try_json(self._fix_json_issues(fragment))
                if ok:
                    return True, val

        logger.warning("_parse_json_robust: all strategies failed. Preview: %s", response[:400])
        return False, None

    @staticmethod
    def _try_json(text: str) -> Tuple[bool, Any]:
        try:
            return True, json.loads(text)
        except (json.JSONDecodeError, ValueError):
            return False, None

    @staticmethod
    def _strip_code_fences(text: str) -> str:
        """Remove ```json / ``` delimiters that LLMs often wrap output in."""
        text = re.sub(r"^```(?:json|javascript|text)?\s*\n?", "", text, flags=re.IGNORECASE)
        text = re.sub(r"\n?```\s*$", "", text)
        return text.strip()

    @staticmethod
    def _fix_json_issues(text: str) -> str:
        """Repair the most common JSON mangling patterns from LLMs."""
        text = re.sub(r",(\s*[}\]])", r"\1", text)
        text = re.sub(r"\bTrue\b", "true", text)
        text = re.sub(r"\bFalse\b", "false", text)
        text = re.sub(r"\bNone\b", "null", text)
        return text.strip()

    @staticmethod
    def _extract_json_structure(text: str, open_b: str, close_b: str) -> str:
        """Return the first balanced open_b ... close_b fragment in *text*, or ""."""
        start = text.find(open_b)
        if start == -1:
            return ""

        depth = 0
        in_string = False
        escape_next = False

        for i, ch in enumerate(text[start:], start=start):
            if escape_next:
                escape_next = False
                continue
            if ch == "\\" and in_string:
                escape_next = True
                continue
            if ch == '"':
                in_string = not in_string
                continue
            if in_string:
                continue
            if ch == open_b:
                depth += 1
            elif ch == close_b:
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        return ""

    @staticmethod
    def _clamp(value: Any, lo: float = 0.0, hi: float = 1.0) -> float:
        """Parse *value* as float, clamped to [lo, hi]; returns midpoint on error."""
        try:
            return max(lo, min(hi, float(value)))
        except (TypeError, ValueError):
            return (lo + hi) / 2.0


# ---------------------------------------------------------------------------
# Dependency
# ---------------------------------------------------------------------------

_llm_service: Optional[LLMService] = None


def get_llm_service() -> LLMService:
    """FastAPI dependency returning the process-wide LLM client."""
    global _llm_service
    if _llm_service is None:
        _llm_service = LLMService()
    return _llm_service
