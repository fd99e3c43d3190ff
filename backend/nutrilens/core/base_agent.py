"""
NutriLens AI - Base Agent Abstract Class

Defines the common interface and utilities for all pipeline agents.
All agents inherit from BaseAgent and implement the process() method.
"""

import logging
import math
import time
from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from nutrilens.core.errors import AgentError, ResponseParseError
from nutrilens.core.inference import InferenceClient
from nutrilens.core.tracing import Tracer

# Type variables for input/output types
InputT = TypeVar("InputT", bound=BaseModel)
OutputT = TypeVar("OutputT", bound=BaseModel)
RawT = TypeVar("RawT", bound=BaseModel)


class BaseAgent(ABC, Generic[InputT, OutputT]):
    """
    Abstract base class for all NutriLens agents.

    All agents follow the same pattern:
    1. Receive typed input (Pydantic model)
    2. Process the input (usually one call to the inference service)
    3. Return typed output (Pydantic model)

    Features:
    - One Opik span per execution, closed on success and on failure
    - Structured logging
    - Latency tracking

    Failures propagate: an agent never returns a partial or default
    output in place of a failed inference call.

    Usage:
        class MyAgent(BaseAgent[MyInput, MyOutput]):
            @property
            def name(self) -> str:
                return "MyAgent"

            async def process(self, input: MyInput) -> MyOutput:
                # Your logic here
                return MyOutput(...)
    """

    #: Span name reported to the tracer
    span_name: str = "agent"

    def __init__(self, inference: InferenceClient, tracer: Tracer, model: str | None = None):
        """
        Initialize the agent.

        Args:
            inference: Shared inference service handle
            tracer: Shared tracing handle
            model: Model override for this agent's calls
        """
        self.inference = inference
        self.tracer = tracer
        self.model = model
        self._logger = logging.getLogger(f"nutrilens.agent.{self.name}")

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the agent's name for logging and tracing."""
        pass

    @abstractmethod
    async def process(self, input: InputT) -> OutputT:
        """
        Process the input and return output.

        This is the main method that subclasses must implement.

        Args:
            input: Typed input data

        Returns:
            Typed output data

        Raises:
            AgentError: If processing fails
        """
        pass

    def trace_input(self, input: InputT) -> dict[str, Any]:
        """Summary of the input recorded on the span. Override to trim large inputs."""
        return input.model_dump(mode="json")

    async def execute(self, input: InputT) -> OutputT:
        """
        Execute the agent with tracing, latency tracking and logging.

        Use this method instead of calling process() directly.

        Raises:
            AgentError: Agent failures, re-raised unchanged
            AgentError: Unexpected exceptions, wrapped with the agent name
        """
        start_time = time.time()
        self._logger.info(f"Starting {self.name} execution")

        metadata = {"agent": self.span_name, "model": self.model or self.inference.default_model}
        try:
            with self.tracer.span(self.span_name, self.trace_input(input), metadata) as span:
                output = await self.process(input)
                span.set_output(output)
        except AgentError as e:
            latency_ms = int((time.time() - start_time) * 1000)
            self._logger.error(f"{self.name} failed after {latency_ms}ms: {e}")
            raise
        except Exception as e:
            latency_ms = int((time.time() - start_time) * 1000)
            self._logger.error(f"{self.name} failed after {latency_ms}ms: {e}")
            raise AgentError(self.name, f"Unexpected failure: {e}", e) from e

        latency_ms = int((time.time() - start_time) * 1000)
        self._logger.info(f"{self.name} completed in {latency_ms}ms")
        self._log_output(output)
        return output

    def _validate_entries(self, entries: list[Any], schema: type[RawT]) -> list[RawT]:
        """
        Validate raw payload entries against the stage's schema.

        Raises:
            ResponseParseError: On the first entry that does not fit
        """
        validated = []
        for index, entry in enumerate(entries):
            try:
                validated.append(schema.model_validate(entry))
            except ValidationError as e:
                raise ResponseParseError(
                    self.name,
                    f"Entry {index} does not match the expected shape: {e.error_count()} error(s)",
                    e,
                ) from e
        return validated

    def _log_output(self, output: OutputT, truncate: int = 200):
        """Log output data for debugging (truncated for large outputs)."""
        output_str = str(output.model_dump())
        if len(output_str) > truncate:
            output_str = output_str[:truncate] + "..."
        self._logger.debug(f"Output: {output_str}")


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp a number into [low, high]. NaN clamps to ``low``."""
    if math.isnan(value):
        return low
    return max(low, min(high, value))
