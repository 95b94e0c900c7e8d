"""Prompt assembly and context-derived fallback answers."""

from __future__ import annotations

from typing import List, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from newsrag.models import Message, SearchResult

SYSTEM_TEMPLATE = """You are a helpful news assistant chatbot. Your role is to answer questions about recent news articles based on the provided context.

IMPORTANT GUIDELINES:
1. Only answer based on the provided news context
2. If the context doesn't contain relevant information, say so politely
3. Cite sources when possible (e.g., "According to Source 1...")
4. Keep responses concise but informative
5. If asked about topics not in the news context, explain that you can only answer questions about the available news articles
6. Be conversational and helpful

NEWS CONTEXT:
{context}"""


def format_context(passages: Sequence[SearchResult]) -> str:
    return "\n\n".join(f"[Source {idx}]: {passage.text}" for idx, passage in enumerate(passages, start=1))


def build_messages(
    query: str,
    passages: Sequence[SearchResult],
    history: Sequence[Message],
) -> List[BaseMessage]:
    """Chat messages for the model: system context, the given turns, then the question.

    ``history`` is used as passed; the caller decides how many turns to include.
    """
    messages: List[BaseMessage] = [SystemMessage(content=SYSTEM_TEMPLATE.format(context=format_context(passages)))]
    for turn in history:
        if turn.role == "user":
            messages.append(HumanMessage(content=turn.content))
        else:
            messages.append(AIMessage(content=turn.content))
    messages.append(HumanMessage(content=query))
    return messages


def summarize_context(passages: Sequence[SearchResult], *, max_sources: int = 3, max_chars: int = 300) -> str:
    """Answer assembled from the retrieved passages alone, used when the model is unavailable."""
    if not passages:
        return "I couldn't find any relevant news articles for that question."
    excerpts = "\n\n".join(
        f"**Source {idx}**: {passage.text[:max_chars]}..."
        for idx, passage in enumerate(passages[:max_sources], start=1)
    )
    return (
        "I apologize, but the AI service is currently experiencing high demand. "
        f"Here's what I found in the news:\n\n{excerpts}\n\n"
        "Please try again in a few moments for a more detailed response."
    )
