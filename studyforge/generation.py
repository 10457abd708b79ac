"""Generation of answers and study artifacts from assembled context.

The retrieval core hands this module ``(context, task_type, parameters)``;
everything about prompts and output parsing stays on this side of that
boundary.
"""
import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Type

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from studyforge import config
from studyforge.errors import ConfigurationError, NotFoundError, ProviderError
from studyforge.llm_client import GeminiClient, OllamaClient

logger = structlog.get_logger()


class TaskType(str, Enum):
    CHAT = "chat"
    SYLLABUS = "syllabus"
    QUIZ = "quiz"
    FLASHCARDS = "flashcards"


# Output schemas

class Chapter(BaseModel):
    title: str
    topics: List[str]
    summary: str


class Syllabus(BaseModel):
    chapters: List[Chapter]


class QuizQuestion(BaseModel):
    question: str
    options: List[str] = Field(..., min_length=4, max_length=4)
    correct_answer: str
    explanation: str


class Quiz(BaseModel):
    questions: List[QuizQuestion]


class Flashcard(BaseModel):
    term: str
    definition: str


class FlashcardDeck(BaseModel):
    cards: List[Flashcard]


class ChatAnswer(BaseModel):
    answer: str


# Task parameters

class ChatParams(BaseModel):
    question: str = Field(..., min_length=1)


class SyllabusParams(BaseModel):
    pass


class QuizParams(BaseModel):
    difficulty: Literal["easy", "medium", "hard"] = "medium"
    question_count: int = Field(5, ge=1, le=20)


class FlashcardParams(BaseModel):
    card_count: int = Field(10, ge=1, le=50)


PARAMS: Dict[TaskType, Type[BaseModel]] = {
    TaskType.CHAT: ChatParams,
    TaskType.SYLLABUS: SyllabusParams,
    TaskType.QUIZ: QuizParams,
    TaskType.FLASHCARDS: FlashcardParams,
}

OUTPUTS: Dict[TaskType, Type[BaseModel]] = {
    TaskType.SYLLABUS: Syllabus,
    TaskType.QUIZ: Quiz,
    TaskType.FLASHCARDS: FlashcardDeck,
}


class GenerationRequest(BaseModel):
    """The only input the generation layer receives from the retrieval core."""

    context: str
    task_type: TaskType
    parameters: Dict[str, Any] = Field(default_factory=dict)


# Prompts

SYSTEM_PROMPT = (
    "You are a study assistant. Use only the study material provided. "
    "If the material does not contain the answer, say so."
)

JSON_SYSTEM_PROMPT = SYSTEM_PROMPT + " Reply with a single JSON object and nothing else."

PROMPTS: Dict[TaskType, str] = {
    TaskType.CHAT: """STUDY MATERIAL:
{context}

QUESTION:
{question}

Answer the question using the study material above.""",
    TaskType.SYLLABUS: """STUDY MATERIAL:
{context}

Create a structured syllabus for this material.
Return JSON shaped like:
{{"chapters": [{{"title": "...", "topics": ["..."], "summary": "..."}}]}}""",
    TaskType.QUIZ: """STUDY MATERIAL:
{context}

Write {question_count} multiple-choice questions of {difficulty} difficulty
about this material. Each question has exactly 4 options; correct_answer must
be one of the options.
Return JSON shaped like:
{{"questions": [{{"question": "...", "options": ["a", "b", "c", "d"],
"correct_answer": "...", "explanation": "..."}}]}}""",
    TaskType.FLASHCARDS: """STUDY MATERIAL:
{context}

Write {card_count} flashcards covering the key terms of this material.
Return JSON shaped like:
{{"cards": [{{"term": "...", "definition": "..."}}]}}""",
}

CODE_BLOCK_PATTERN = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL)


# Chat backends

class ChatBackend(ABC):
    """Single-turn completion against an LLM provider."""

    name = "base"

    @abstractmethod
    async def complete(self, system: str, prompt: str, json_output: bool = False) -> str:
        """Return the model's reply text."""

    async def list_models(self) -> List[str]:
        return []


class OllamaChatBackend(ChatBackend):
    name = "ollama"

    def __init__(self, client: OllamaClient = None, model: str = None, temperature: float = 0.3):
        self.client = client or OllamaClient()
        self.model = model or config.CHAT_MODEL
        self.temperature = temperature

    async def complete(self, system: str, prompt: str, json_output: bool = False) -> str:
        data = await self.client.chat(
            [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            model=self.model,
            json_output=json_output,
            temperature=self.temperature,
        )
        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, dict):
            raise ProviderError(f"Unexpected chat reply from {self.name}")
        return message.get("content") or ""

    async def list_models(self) -> List[str]:
        return await self.client.list_models()


class GeminiChatBackend(ChatBackend):
    name = "gemini"

    def __init__(self, client: GeminiClient = None, model: str = None, temperature: float = 0.3):
        self.client = client or GeminiClient()
        self.model = model or config.GEMINI_CHAT_MODEL
        self.temperature = temperature

    async def complete(self, system: str, prompt: str, json_output: bool = False) -> str:
        data = await self.client.generate_content(
            prompt,
            system=system,
            model=self.model,
            json_output=json_output,
            temperature=self.temperature,
        )
        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            return ""
        return "".join(
            part.get("text") or "" for part in parts if isinstance(part, dict)
        )

    async def list_models(self) -> List[str]:
        return await self.client.list_models()


def create_chat_backend(provider: str = None, **kwargs) -> ChatBackend:
    """Build the chat backend named in configuration.

    Raises:
        ConfigurationError: If the provider is unknown or missing credentials
    """
    provider = (provider or config.AI_PROVIDER).lower()

    if provider == "ollama":
        return OllamaChatBackend(**kwargs)
    if provider == "gemini":
        if "client" not in kwargs and not config.GEMINI_API_KEY:
            raise ConfigurationError("GEMINI_API_KEY is required for the gemini provider")
        return GeminiChatBackend(**kwargs)

    raise ConfigurationError(
        f"Unknown AI provider: '{provider}'. Supported: ollama, gemini"
    )


class Generator:
    """Turns assembled context into a chat answer or a study artifact."""

    def __init__(self, backend: ChatBackend):
        self.backend = backend

    async def generate(
        self,
        context: str,
        task_type: TaskType,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> BaseModel:
        """Run one generation task.

        Args:
            context: Context string from the ContextAssembler
            task_type: What to produce
            parameters: Task-specific options (see the *Params models)

        Returns:
            ChatAnswer, Syllabus, Quiz or FlashcardDeck

        Raises:
            NotFoundError: If the context is empty
            ConfigurationError: If the parameters are invalid
            ProviderError: If the provider fails or returns malformed output
        """
        try:
            request = GenerationRequest(
                context=context, task_type=task_type, parameters=parameters or {}
            )
        except ValidationError as e:
            raise ConfigurationError("Invalid generation request", detail=str(e)) from e

        if not request.context.strip():
            raise NotFoundError("Document content not found")

        try:
            params = PARAMS[request.task_type].model_validate(request.parameters)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid parameters for {request.task_type.value}", detail=str(e)
            ) from e

        prompt = PROMPTS[request.task_type].format(
            context=request.context, **params.model_dump()
        )
        json_output = request.task_type is not TaskType.CHAT

        logger.info(
            "generation_started",
            task_type=request.task_type.value,
            provider=self.backend.name,
            context_length=len(request.context),
        )

        try:
            reply = await self.backend.complete(
                JSON_SYSTEM_PROMPT if json_output else SYSTEM_PROMPT,
                prompt,
                json_output=json_output,
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "generation_provider_failed",
                task_type=request.task_type.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ProviderError(
                f"{self.backend.name} generation request failed", detail=str(e)
            ) from e

        if reply is None:
            reply = ""
        if not isinstance(reply, str):
            raise ProviderError(f"Non-text response from {self.backend.name}")
        if not reply.strip():
            raise ProviderError(f"Empty response from {self.backend.name}")

        if not json_output:
            return ChatAnswer(answer=reply.strip())

        result = parse_model_output(reply, OUTPUTS[request.task_type])
        logger.info("generation_completed", task_type=request.task_type.value)
        return result


def parse_model_output(reply: str, schema: Type[BaseModel]) -> BaseModel:
    """Validate a JSON reply, tolerating a surrounding markdown code block.

    Raises:
        ProviderError: If the reply does not match the schema
    """
    match = CODE_BLOCK_PATTERN.search(reply)
    text = match.group(1) if match else reply.strip()

    try:
        return schema.model_validate_json(text)
    except ValidationError as e:
        logger.warning(
            "malformed_model_output",
            schema=schema.__name__,
            reply_preview=reply[:100],
        )
        raise ProviderError(
            f"Model returned malformed {schema.__name__}", detail=str(e)
        ) from e
