# services/prompts.py
"""Fixed prompt shapes for each workflow stage"""
from typing import List

from core.domain import ChatMessage, DocumentChunk, Role

# ============= Personas =============

RAG_SYSTEM_TEMPLATE = """You are an experienced researcher and a helpful AI assistant, skilled at interpreting and answering questions based on the available sources.

When you have relevant context:

Use the available context to give accurate and helpful answers
If the context does not fully answer the question, say so and explain what additional information is needed
If you are unsure about something, be honest about the uncertainty
When you do not have relevant context:

Give helpful general answers based on your own knowledge
Be conversational and engaging while staying professional
If you cannot answer something, be honest about it
Always strive to be:

Clear and concise
Accurate and helpful
Professional but friendly
Honest about limitations"""

GENERAL_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Please give clear, informative and engaging "
    "answers to help users with their questions. If you don't know something, be honest about it."
)

GREETING_SYSTEM_PROMPT = "You are an experienced researcher and a helpful AI assistant."
GREETING_USER_PROMPT = "Hi!"

# ============= Stage instructions =============

REPHRASE_SYSTEM_PROMPT = (
    "You are an AI assistant that rephrases questions to make them better suited for search. "
    "Keep the rephrased question short and focused."
)

SUMMARIZE_SYSTEM_PROMPT = (
    "You are an AI assistant that helps summarize context documents. Write a concise, coherent "
    "summary of the relevant documents that captures their main points and their relevance "
    "to the user's question."
)

SUMMARIZE_USER_TEMPLATE = (
    'Please summarize the following documents in relation to this question: "{question}"'
    "\n\nDocuments:\n {documents}"
)

CONTEXT_USER_TEMPLATE = (
    "When answering me, use the following documents as context:\n<context>\n{context}\n</context>"
)

CONTEXT_ACKNOWLEDGEMENT = (
    "I will help you answer your questions using the available documents as context. "
    "If I cannot find the answer in the documents, I will consider the question carefully "
    "and check the context again. If the answer still is not in the context, "
    "I will give a helpful general answer."
)


def _system(content: str) -> ChatMessage:
    return ChatMessage(role=Role.SYSTEM, content=content)


def _user(content: str) -> ChatMessage:
    return ChatMessage(role=Role.USER, content=content)


def _assistant(content: str) -> ChatMessage:
    return ChatMessage(role=Role.ASSISTANT, content=content)


# ============= Builders =============

def build_rephrase_prompt(messages: List[ChatMessage]) -> List[ChatMessage]:
    """Preamble, prior history, then the latest message as the literal query."""
    history = [m for m in messages[:-1] if m.role != Role.SYSTEM]
    return [_system(REPHRASE_SYSTEM_PROMPT), *history, _user(messages[-1].content)]


def format_documents(documents: List[DocumentChunk]) -> str:
    return "\n\n".join(f"<doc>{doc.text}</doc>" for doc in documents)


def build_summarize_prompt(question: str, documents: List[DocumentChunk]) -> List[ChatMessage]:
    # str.replace, not str.format: user text may contain braces
    body = SUMMARIZE_USER_TEMPLATE.replace("{question}", question).replace(
        "{documents}", format_documents(documents)
    )
    return [_system(SUMMARIZE_SYSTEM_PROMPT), _user(body)]


def build_general_prompt(question: str) -> List[ChatMessage]:
    return [_system(GENERAL_SYSTEM_PROMPT), _user(question)]


def build_rag_prompt(question: str, context: str) -> List[ChatMessage]:
    return [
        _system(RAG_SYSTEM_TEMPLATE),
        _user(CONTEXT_USER_TEMPLATE.replace("{context}", context)),
        _assistant(CONTEXT_ACKNOWLEDGEMENT),
        _user(question),
    ]


def build_greeting_conversation() -> List[ChatMessage]:
    """Opening conversation the chat session sends once the model is ready."""
    return [_system(GREETING_SYSTEM_PROMPT), _user(GREETING_USER_PROMPT)]
