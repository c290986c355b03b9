"""
Inference client module.

Renders conversations into ChatML prompts, calls the local server's
completion endpoint and parses generated code out of fenced blocks.
"""

import logging
from typing import Iterable, List, Literal, Optional

import requests
from pydantic import BaseModel, Field

from pseudoide.config import InferenceConfig, ServerConfig
from pseudoide.errors import InferenceConnectionError, InferenceServerError

logger = logging.getLogger(__name__)

FENCE = "```"
DEFAULT_LANGUAGE = "text"


class ChatMessage(BaseModel):
    """One turn of a conversation."""

    role: Literal["system", "user", "assistant"]
    content: str


class GenerationResult(BaseModel):
    """Code extracted from a model response."""

    language: str = Field(description="Language tag from the fenced block, or 'text'")
    code: str = Field(description="Block body, or the full response when unfenced")


def render_turn(role: str, content: str) -> str:
    return f"<|im_start|>{role}\n{content}\n<|im_end|>\n"


def render_prompt(system_prompt: str, history: Iterable[ChatMessage]) -> str:
    """
    Build a ChatML prompt ending with an open assistant turn.

    Args:
        system_prompt: Fixed preamble
        history: Conversation in order

    Returns:
        Prompt text
    """
    parts = [render_turn("system", system_prompt)]
    parts.extend(render_turn(message.role, message.content) for message in history)
    parts.append("<|im_start|>assistant\n")
    return "".join(parts)


def parse_generation(content: str) -> GenerationResult:
    """
    Extract the first fenced code block from a response.

    The opening fence line names the language when it is non-empty. A
    response without a complete fenced block is returned whole with the
    generic ``text`` tag.
    """
    start = content.find(FENCE)
    if start != -1:
        end = content.find(FENCE, start + len(FENCE))
        if end != -1:
            block = content[start + len(FENCE) : end]
            newline = block.find("\n")
            if newline == -1:
                return GenerationResult(language=DEFAULT_LANGUAGE, code=block.strip())
            tag = block[:newline].strip()
            return GenerationResult(
                language=tag or DEFAULT_LANGUAGE,
                code=block[newline + 1 :].strip(),
            )
    return GenerationResult(language=DEFAULT_LANGUAGE, code=content)


class InferenceClient:
    """Client for the local inference server."""

    def __init__(
        self,
        server_config: ServerConfig,
        inference_config: Optional[InferenceConfig] = None,
        http: Optional[requests.Session] = None,
    ) -> None:
        """
        Initialize inference client.

        Args:
            server_config: Provides the completion endpoint
            inference_config: Sampling parameters and system prompts
            http: HTTP session (default: new requests.Session)
        """
        self.url = server_config.completion_url
        self.config = inference_config or InferenceConfig()
        self.http = http or requests.Session()

    def complete(self, prompt: str, temperature: float) -> str:
        """
        Post a prompt to the completion endpoint.

        Returns:
            The generated text (``content`` field of the response)

        Raises:
            InferenceConnectionError: If the server cannot be reached
            InferenceServerError: If the server returns a non-success status
        """
        body = {
            "prompt": prompt,
            "n_predict": self.config.n_predict,
            "temperature": temperature,
            "stop": list(self.config.stop),
        }
        logger.debug(f"POST {self.url} ({len(prompt)} prompt chars)")

        try:
            response = self.http.post(self.url, json=body)
        except requests.RequestException as e:
            logger.error(f"Failed to contact server: {e}")
            raise InferenceConnectionError(f"Failed to contact server: {e}") from e

        if not response.ok:
            raise InferenceServerError(response.status_code, response.reason or "")

        try:
            data = response.json()
        except ValueError as e:
            raise InferenceServerError(response.status_code, f"invalid JSON: {e}") from e

        content = data.get("content") if isinstance(data, dict) else None
        return content if isinstance(content, str) else ""

    def chat(self, history: List[ChatMessage]) -> str:
        """
        Continue a conversation.

        Args:
            history: Messages in order; the assistant replies to the last one

        Returns:
            Raw generated reply
        """
        prompt = render_prompt(self.config.chat_system_prompt, history)
        return self.complete(prompt, self.config.chat_temperature)

    def generate_from_pseudocode(self, prompt: str) -> GenerationResult:
        """
        Turn pseudocode into runnable code in an inferred language.

        Args:
            prompt: Pseudocode text

        Returns:
            GenerationResult with the language tag and code
        """
        full_prompt = render_prompt(
            self.config.generation_system_prompt,
            [ChatMessage(role="user", content=prompt)],
        )
        content = self.complete(full_prompt, self.config.generation_temperature)
        result = parse_generation(content)
        logger.info(f"Generated {len(result.code)} chars of {result.language}")
        return result
