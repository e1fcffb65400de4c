"""Claude-backed inference with schema-validated answers."""
import logging
from typing import Optional, TypeVar

import anthropic
from anthropic import Anthropic
from pydantic import BaseModel, ValidationError

from ..core.errors import InferenceError
from .prompts import SYSTEM_PROMPT

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

TOOL_NAME = "record_answer"


class ClaudeInference:
    """Answers instructions as instances of a pydantic schema.

    The schema is offered to Claude as the only tool and tool use is forced,
    so replies never need free-text parsing. Anything that does not validate
    against the schema is an InferenceError.
    """

    def __init__(
        self,
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 4096,
        client: Optional[Anthropic] = None,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self._client = client or Anthropic()

    def classify(self, instruction: str, schema: type[SchemaT]) -> SchemaT:
        """Answer ``instruction`` as a ``schema`` instance.

        Args:
            instruction: Full prompt text.
            schema: Pydantic model describing the expected answer.

        Returns:
            Validated instance of ``schema``.

        Raises:
            InferenceError: On API failure or a reply that does not validate.
        """
        tool = {
            "name": TOOL_NAME,
            "description": schema.__doc__.strip() if schema.__doc__ else f"Record a {schema.__name__}",
            "input_schema": schema.model_json_schema(),
        }
        try:
            response = self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=SYSTEM_PROMPT,
                tools=[tool],
                tool_choice={"type": "tool", "name": TOOL_NAME},
                messages=[{"role": "user", "content": instruction}],
            )
        except anthropic.APIError as e:
            logger.error(f"Claude request failed: {e}")
            raise InferenceError(f"Claude request failed: {e}") from e

        for block in response.content:
            if getattr(block, "type", None) == "tool_use":
                logger.debug(f"Claude answer for {schema.__name__}: {block.input}")
                try:
                    return schema.model_validate(block.input)
                except ValidationError as e:
                    raise InferenceError(
                        f"Claude answer does not match {schema.__name__}: {e}"
                    ) from e

        raise InferenceError(f"Claude returned no {schema.__name__} answer")
