from typing import Dict, Iterable, List, Optional

from gateway.providers.types import Message
from gateway.services.retrieval import RetrievedPage

CONTEXT_CHARS_PER_PAGE = 800
CONTINUE_CONTEXT_CHARS = 1500
BRAINSTORM_CONTEXT_CHARS = 1000
TAG_CONTENT_CHARS = 2000

CHAT_WITH_CONTEXT = """You are a helpful AI assistant with access to the user's notes and knowledge base.

Use the following context from the user's notes to answer questions. When referencing information from notes, cite the source using [Page Title] format.

If the context doesn't contain relevant information, say so and answer based on your general knowledge.

Context from user's notes:
{context}

Guidelines:
- Be concise and helpful
- Cite sources with [Page Title] when using information from notes
- If you're not sure about something, say so
- Format responses with markdown when appropriate"""

CHAT_WITHOUT_CONTEXT = """You are a helpful AI assistant. The user hasn't added any notes with relevant context yet, so answer based on your general knowledge.

Be concise and helpful. Format responses with markdown when appropriate."""

CONTINUE = """You are a writing assistant helping to continue a document.

Based on the context provided, continue writing in the same style, tone, and format.
Write 2-3 paragraphs that naturally flow from the existing content.

Guidelines:
- Match the existing writing style
- Maintain the same level of formality
- Keep the same topic focus
- Don't repeat what was already written
- Don't add meta-commentary like "Here's the continuation..."

Return ONLY the continuation text, nothing else."""

INLINE: Dict[str, str] = {
    "expand": (
        "You are a writing assistant. Expand the following text with more detail, examples, and explanations.\n"
        "Maintain the original tone, style, and voice. Add relevant context and elaboration.\n"
        "Return ONLY the expanded text, no explanations or meta-commentary."
    ),
    "summarize": (
        "You are a writing assistant. Summarize the following text concisely while keeping the key points.\n"
        "Aim for about 30-40% of the original length. Preserve the most important information.\n"
        "Return ONLY the summarized text, no explanations or meta-commentary."
    ),
    "rewrite": (
        "You are a writing assistant. Rewrite the following text to be clearer, more engaging, and better structured.\n"
        "Maintain the original meaning and key information. Improve flow and readability.\n"
        "Return ONLY the rewritten text, no explanations or meta-commentary."
    ),
}

TRANSLATE = """You are a professional translator.

Translate the following text to {language}.

Guidelines:
- Maintain the original meaning and tone
- Keep formatting (markdown, lists, etc.)
- Preserve proper nouns and technical terms when appropriate
- Return ONLY the translated text, no explanations"""

BRAINSTORM = """You are a creative brainstorming assistant.

Generate 5-7 unique ideas related to the given topic or context.
Each idea should be actionable and specific.

Format your response as a numbered list:
1. **Idea Title** - Brief description of the idea
2. **Idea Title** - Brief description of the idea

Keep descriptions concise (1-2 sentences each) and don't repeat similar ideas."""

SUGGEST_TAGS = """You are a tag suggestion assistant. Analyze the content and suggest 3-5 relevant tags.

Guidelines:
- Tags should be single words or short 2-3 word phrases
- Use lowercase only
- Be specific and descriptive
- Consider reusing existing tags when relevant

{existing}

Return ONLY a JSON array of suggested tags, nothing else.
Example: ["react", "web development", "hooks", "frontend"]"""

CONNECTION_TEST = 'Say "Connection test successful" and nothing else.'

SUPPORTED_LANGUAGES = [
    "English", "Spanish", "French", "German", "Italian", "Portuguese",
    "Chinese", "Japanese", "Korean", "Russian", "Arabic", "Hindi",
    "Dutch", "Swedish", "Polish", "Turkish", "Vietnamese", "Thai",
    "Indonesian", "Greek", "Hebrew", "Czech", "Romanian", "Hungarian",
]


def normalize_language(name: str) -> Optional[str]:
    wanted = name.strip().lower()
    return next((lang for lang in SUPPORTED_LANGUAGES if lang.lower() == wanted), None)


def render_context(pages: Iterable[RetrievedPage]) -> str:
    parts: List[str] = []
    for page in pages:
        parts.append(f"[{page.title}]:\n{page.content[:CONTEXT_CHARS_PER_PAGE]}")
    return "\n\n---\n\n".join(parts)


def build_chat_messages(message: str, pages: List[RetrievedPage]) -> List[Message]:
    context = render_context(pages)
    system = CHAT_WITH_CONTEXT.format(context=context) if context else CHAT_WITHOUT_CONTEXT
    return [Message(role="system", content=system), Message(role="user", content=message)]


def build_continue_messages(context: str, page_title: Optional[str] = None) -> List[Message]:
    tail = context[-CONTINUE_CONTEXT_CHARS:]
    if page_title:
        user = f'Page: "{page_title}"\n\nContinue from:\n\n{tail}'
    else:
        user = f"Continue from:\n\n{tail}"
    return [Message(role="system", content=CONTINUE), Message(role="user", content=user)]


def build_brainstorm_messages(
    topic: Optional[str], context: Optional[str], page_title: Optional[str] = None
) -> List[Message]:
    if topic:
        user = f"Brainstorm ideas about: {topic}"
    else:
        snippet = (context or "")[:BRAINSTORM_CONTEXT_CHARS]
        source = f'this content from "{page_title}"' if page_title else "this content"
        user = f"Based on {source}:\n\n{snippet}\n\nBrainstorm related ideas:"
    return [Message(role="system", content=BRAINSTORM), Message(role="user", content=user)]


def build_tag_messages(text: str, existing_tags: List[str]) -> List[Message]:
    existing = ""
    if existing_tags:
        existing = f"Existing tags the user has (prefer these when relevant): {', '.join(existing_tags)}"
    return [
        Message(role="system", content=SUGGEST_TAGS.format(existing=existing)),
        Message(role="user", content=text[:TAG_CONTENT_CHARS]),
    ]
