# services/rag_orchestrator.py
"""
Question-answering workflow as an explicit finite-state machine.

    START -> GENERATE                                   (single-message conversation)
    START -> REPHRASE -> RETRIEVE -> SUMMARIZE -> GENERATE -> END

route() is a pure function of the state; RAGOrchestrator.run() drives the loop,
calling one handler per stage and merging its partial update into RAGState.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from config import settings
from core.domain import ChatMessage, RAGState, Role, Stage
from core.exceptions import GenerationError, RAGError
from core.interfaces import IIndex, IInferenceEngine
from services import prompts

logger = logging.getLogger(settings.LOGGER_NAME)

StageTrace = Callable[[Stage, RAGState], Awaitable[None]]

_NEXT_STAGE = {
    Stage.REPHRASE: Stage.RETRIEVE,
    Stage.RETRIEVE: Stage.SUMMARIZE,
    Stage.SUMMARIZE: Stage.GENERATE,
    Stage.GENERATE: Stage.END,
}


def route(state: RAGState, current: Stage) -> Stage:
    """Next stage after current. Only START branches."""
    if current == Stage.START:
        return Stage.REPHRASE if len(state.messages) > 1 else Stage.GENERATE
    if current == Stage.END:
        raise ValueError("END has no successor")
    return _NEXT_STAGE[current]


class RAGOrchestrator:
    """Drives the index and inference engine through the workflow for one request at a time."""

    def __init__(
        self,
        engine: IInferenceEngine,
        index: IIndex,
        top_k: int = settings.RETRIEVAL_TOP_K,
        mmr_lambda: Optional[float] = settings.MMR_LAMBDA,
    ):
        self.engine = engine
        self.index = index
        self.top_k = top_k
        self.mmr_lambda = mmr_lambda
        self._handlers: Dict[Stage, Callable[[RAGState], Awaitable[Dict[str, Any]]]] = {
            Stage.REPHRASE: self.rephrase,
            Stage.RETRIEVE: self.retrieve,
            Stage.SUMMARIZE: self.summarize,
            Stage.GENERATE: self.generate,
        }

    async def run(self, messages: List[ChatMessage], trace: Optional[StageTrace] = None) -> ChatMessage:
        """
        Answer the latest message of a conversation.

        Returns the single assistant reply. Raises GenerationError when
        rephrase, summarize or generate fails; retrieval failures are absorbed.
        """
        if not messages:
            raise GenerationError("Cannot answer an empty conversation")

        state = RAGState(messages=list(messages))
        history_len = len(state.messages)
        stage = route(state, Stage.START)

        while stage != Stage.END:
            logger.debug(f"Entering stage {stage.value}")
            update = await self._handlers[stage](state)
            state.merge(update)
            state.visited.append(stage)
            if trace is not None:
                await trace(stage, state)
            stage = route(state, stage)

        replies = state.messages[history_len:]
        if not replies:
            raise GenerationError("No response generated from the model")
        return replies[-1]

    async def _invoke(self, stage: Stage, turns: List[ChatMessage]) -> str:
        try:
            return await self.engine.invoke(turns)
        except RAGError:
            raise
        except Exception as e:
            logger.error(f"Inference failed during {stage.value}: {e}", exc_info=True)
            raise GenerationError(f"Inference failed during {stage.value}: {e}") from e

    # ============= Stages =============

    async def rephrase(self, state: RAGState) -> Dict[str, Any]:
        """Restate the latest message as a search-friendly question."""
        response = await self._invoke(Stage.REPHRASE, prompts.build_rephrase_prompt(state.messages))
        rephrased = response.strip()
        logger.info(f"Rephrased question: {rephrased!r}")
        return {"rephrased_question": rephrased or None}

    async def retrieve(self, state: RAGState) -> Dict[str, Any]:
        """Top-k chunks for the effective query. Never raises."""
        query = state.effective_query
        try:
            if await self.index.count() == 0:
                logger.info("Index is empty, proceeding with empty context")
                return {"source_documents": []}

            search_params = {"lambda": self.mmr_lambda} if self.mmr_lambda is not None else None
            docs = await self.index.search(query, k=self.top_k, search_params=search_params)
            logger.info(f"Retrieved {len(docs)} chunks")
            return {"source_documents": list(docs)[: self.top_k]}
        except Exception as e:
            logger.warning(f"Retrieval failed, proceeding with empty context: {e}")
            return {"source_documents": []}

    async def summarize(self, state: RAGState) -> Dict[str, Any]:
        """Condense retrieved chunks; skipped without calling the engine when there are none."""
        if not state.source_documents:
            return {"context_summary": ""}

        turns = prompts.build_summarize_prompt(state.effective_query, state.source_documents)
        summary = await self._invoke(Stage.SUMMARIZE, turns)
        return {"context_summary": summary.strip()}

    async def generate(self, state: RAGState) -> Dict[str, Any]:
        question = state.effective_query
        if state.context_summary:
            turns = prompts.build_rag_prompt(question, state.context_summary)
        else:
            turns = prompts.build_general_prompt(question)

        response = await self._invoke(Stage.GENERATE, turns)
        if not response or not response.strip():
            raise GenerationError("No response generated from the model")
        return {"messages": [ChatMessage(role=Role.ASSISTANT, content=response.strip())]}
