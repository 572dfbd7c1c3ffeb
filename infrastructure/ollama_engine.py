# infrastructure/ollama_engine.py
import asyncio
import json
import logging
from typing import Any, Dict, Iterator, List, Optional

import requests

from config import settings
from core.domain import ChatMessage, ErrorCode, ProgressEvent
from core.exceptions import GenerationError, LoadError
from core.interfaces import IInferenceEngine, ProgressCallback

logger = logging.getLogger(settings.LOGGER_NAME)

# Pull progress is capped below 1.0; only the final "ready" event reports completion
_MAX_PULL_PROGRESS = 0.99


class OllamaInferenceEngine(IInferenceEngine):
    """Inference engine backed by a local Ollama server."""

    def __init__(
        self,
        base_url: str = settings.LLM_BASE_URL,
        model: str = settings.LLM_MODEL_NAME,
        timeout: int = settings.REQUEST_TIMEOUT,
        pull_timeout: int = settings.PULL_TIMEOUT,
        default_options: Optional[Dict[str, Any]] = None,
    ):
        """
        Args:
            base_url: The base URL of the Ollama API.
            model: The name of the model to pull and serve.
            timeout: Request timeout in seconds for chat calls.
            pull_timeout: Read timeout in seconds while pulling weights.
            default_options: Ollama generation options merged into every call.
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.pull_timeout = pull_timeout
        self.default_options = default_options if default_options is not None else {
            "temperature": settings.LLM_TEMPERATURE
        }

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def _iter_pull_status(self) -> Iterator[Dict[str, Any]]:
        response = requests.post(
            f"{self.base_url}/api/pull",
            json={"model": self.model, "stream": True},
            stream=True,
            timeout=(10, self.pull_timeout),
        )
        response.raise_for_status()
        with response:
            for line in response.iter_lines():
                if not line:
                    continue
                status = json.loads(line)
                if status.get("error"):
                    raise LoadError(f"Model pull failed: {status['error']}")
                yield status

    @staticmethod
    def _to_progress(status: Dict[str, Any], last: float) -> ProgressEvent:
        total = status.get("total")
        completed = status.get("completed")
        if total and completed is not None:
            last = min(completed / total, _MAX_PULL_PROGRESS)
        return ProgressEvent(stage=status.get("status", "loading"), progress=last)

    def _pull_and_warm_up(self, report) -> None:
        progress = 0.0
        for status in self._iter_pull_status():
            event = self._to_progress(status, progress)
            progress = event.progress
            report(event)

        report(ProgressEvent(stage="Loading model into memory", progress=_MAX_PULL_PROGRESS))
        # An empty generate request loads the weights without producing output
        response = requests.post(
            f"{self.base_url}/api/generate",
            json={"model": self.model, "prompt": "", "stream": False},
            timeout=self.pull_timeout,
        )
        response.raise_for_status()

    async def initialize(self, progress_callback: Optional[ProgressCallback] = None) -> None:
        loop = asyncio.get_running_loop()

        def report(event: ProgressEvent) -> None:
            if progress_callback is not None:
                # Deliver on the caller's loop, not the pulling thread
                loop.call_soon_threadsafe(progress_callback, event)

        logger.info(f"Initializing inference engine with model '{self.model}'...")
        try:
            await asyncio.to_thread(self._pull_and_warm_up, report)
        except LoadError:
            raise
        except requests.exceptions.ConnectionError as e:
            raise LoadError(f"Cannot connect to Ollama at {self.base_url}. Is the service running?") from e
        except requests.exceptions.Timeout as e:
            raise LoadError(f"Loading model '{self.model}' timed out") from e
        except requests.exceptions.HTTPError as e:
            raise LoadError(f"Ollama returned an error while loading model: {e.response.status_code}") from e
        except (requests.exceptions.RequestException, ValueError) as e:
            raise LoadError(f"Failed to load model '{self.model}': {e}") from e

        if progress_callback is not None:
            progress_callback(ProgressEvent(stage="Model ready", progress=1.0))
        logger.info(f"Model '{self.model}' is ready.")

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    def _chat(self, turns: List[ChatMessage], options: Dict[str, Any]) -> str:
        try:
            logger.info(f"Sending {len(turns)} turns to model '{self.model}'...")
            response = requests.post(
                f"{self.base_url}/api/chat",
                json={
                    "model": self.model,
                    "messages": [turn.to_dict() for turn in turns],
                    "stream": False,
                    "options": options,
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            result = response.json()

        except requests.exceptions.Timeout as e:
            logger.error(f"LLM request timed out after {self.timeout} seconds.")
            raise GenerationError("LLM request timed out") from e
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Cannot connect to LLM at {self.base_url}. Is the service running?")
            raise GenerationError("Cannot connect to LLM service") from e
        except requests.exceptions.HTTPError as e:
            logger.error(f"LLM service returned an error: {e.response.status_code} {e.response.text}")
            raise GenerationError(f"LLM error: {e.response.status_code}") from e
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"An unexpected error occurred while calling the LLM: {e}", exc_info=True)
            raise GenerationError(str(e)) from e

        content = (result.get("message") or {}).get("content")
        if not content or not content.strip():
            logger.error("LLM response was empty or malformed.")
            raise GenerationError("Empty response from LLM", ErrorCode.EMPTY_RESPONSE)

        logger.info("Successfully received response from LLM.")
        return content.strip()

    async def invoke(self, turns: List[ChatMessage], **config: Any) -> str:
        if not turns:
            raise GenerationError("Empty prompt provided")
        options = {**self.default_options, **config}
        return await asyncio.to_thread(self._chat, turns, options)
