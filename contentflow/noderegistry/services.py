"""
Content services called by the built-in node executors.

TemplateContentService is deterministic and offline; it is the default and
what the tests run against. OpenAIContentService drives the OpenAI API and
expects OPENAI_API_KEY in the environment.
"""
import re
import time
from abc import ABC, abstractmethod
from logging import getLogger
from typing import Any, Dict, List, Optional

logger = getLogger(__name__)

DEFAULT_TEXT_MODEL = "gpt-4o-mini"
DEFAULT_IMAGE_MODEL = "dall-e-3"

_LIST_PREFIX = re.compile(r"^\d+\.?\s*")


def parse_numbered_list(text: str) -> List[str]:
    """Strip '1.' style prefixes; falls back to the whole text when nothing is left."""
    items = [_LIST_PREFIX.sub("", line).strip() for line in text.split("\n")]
    items = [item for item in items if item]
    return items or [text.strip()]


class ContentService(ABC):

    @abstractmethod
    async def generate_ideas(self, topic: str, count: int = 5) -> List[str]:
        pass

    @abstractmethod
    async def generate_draft(self, prompt: str, tone: Optional[str] = None) -> str:
        pass

    @abstractmethod
    async def suggest_images(self, query: str, count: int = 2) -> List[Dict[str, Any]]:
        pass


class TemplateContentService(ContentService):

    async def generate_ideas(self, topic: str, count: int = 5) -> List[str]:
        if not topic:
            raise ValueError("Topic cannot be empty.")
        ideas = [
            f"{topic} - strategy guide for beginners",
            f"How to use {topic} for business growth",
            f"10 trends in {topic} for 2025",
            f"The ultimate {topic} checklist",
            f"Why {topic} matters for your brand",
        ]
        return ideas[:count]

    async def generate_draft(self, prompt: str, tone: Optional[str] = None) -> str:
        if not prompt:
            raise ValueError("Prompt cannot be empty.")
        voice = f" in a {tone} tone" if tone else ""
        return (
            f"# {prompt}\n\n"
            f"This is a generated draft based on your prompt{voice}. It would contain multiple "
            "paragraphs of relevant content that addresses the topic comprehensively.\n\n"
            "## Key Points\n\n"
            "- First important point about the topic\n"
            "- Second key consideration\n"
            "- Third strategic element\n\n"
            "## Conclusion\n\n"
            f"Summarizing thoughts about {prompt} and next steps to consider."
        )

    async def suggest_images(self, query: str, count: int = 2) -> List[Dict[str, Any]]:
        if not query:
            raise ValueError("Query cannot be empty.")
        slug = re.sub(r"[^a-z0-9]+", "-", query.lower()).strip("-") or "image"
        return [
            {
                "id": f"img_{slug}_{i}",
                "url": f"https://via.placeholder.com/600?text={slug}-{i}",
                "thumbUrl": "https://via.placeholder.com/150",
                "alt": f"Image for {query} {i}",
                "source": "template",
            }
            for i in range(1, count + 1)
        ]


class OpenAIContentService(ContentService):

    def __init__(self, text_model: str = DEFAULT_TEXT_MODEL, image_model: str = DEFAULT_IMAGE_MODEL):
        self.text_model = text_model
        self.image_model = image_model
        self._client = None

    def _get_client(self):
        if self._client is None:
            import openai
            self._client = openai.AsyncOpenAI()
        return self._client

    async def _complete(self, prompt: str, max_tokens: int = 600) -> str:
        t0 = time.time()
        response = await self._get_client().chat.completions.create(
            model=self.text_model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=max_tokens,
        )
        logger.debug("%s completion in %.0fms", self.text_model, (time.time() - t0) * 1000)
        content = response.choices[0].message.content or ""
        if not content.strip():
            raise RuntimeError("AI response content was empty.")
        return content

    async def generate_ideas(self, topic: str, count: int = 5) -> List[str]:
        if not topic:
            raise ValueError("Topic cannot be empty.")
        content = await self._complete(
            f'Generate {count} diverse content ideas (like blog titles, social media hooks, questions) '
            f'based on the following topic: "{topic}".\nPresent them as a numbered list.'
        )
        return parse_numbered_list(content)[:count]

    async def generate_draft(self, prompt: str, tone: Optional[str] = None) -> str:
        if not prompt:
            raise ValueError("Prompt cannot be empty.")
        instructions = (
            "You are a helpful writing assistant. Write a short introductory paragraph or a brief "
            "outline for the given content idea/prompt. Keep it concise but engaging."
        )
        if tone:
            instructions += f" Use a {tone} tone."
        content = await self._complete(f"{instructions}\n\nContent Idea/Prompt: {prompt}")
        return content.strip()

    async def suggest_images(self, query: str, count: int = 2) -> List[Dict[str, Any]]:
        if not query:
            raise ValueError("Query cannot be empty.")
        resp = await self._get_client().images.generate(
            model=self.image_model,
            prompt=query,
            size="1024x1024",
            response_format="url",
            n=1,
        )
        images = []
        for i, item in enumerate(resp.data, start=1):
            images.append({
                "id": f"img_{i}",
                "url": item.url or "",
                "thumbUrl": item.url or "",
                "alt": getattr(item, "revised_prompt", "") or query,
                "source": self.image_model,
            })
        return images[:count]


def build_content_service(name: str = "template",
                          text_model: str = DEFAULT_TEXT_MODEL,
                          image_model: str = DEFAULT_IMAGE_MODEL) -> ContentService:
    if name == "template":
        return TemplateContentService()
    if name == "openai":
        return OpenAIContentService(text_model, image_model)
    raise ValueError(f"Unknown content service '{name}'")
