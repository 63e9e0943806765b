"""Process-wide parser registry, built once at startup and read-only after."""

import logging
from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping

from config import Settings, settings as default_settings
from docling_client import DoclingDocumentParser, DocumentParser
from errors import InvalidParser
from models import ParserDescriptor
from vision_client import OllamaVisionClient, OpenAIVisionClient, VisionClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParserRegistry:
    vision: Mapping[str, VisionClient]
    document: Mapping[str, DocumentParser]

    def vision_parser(self, name: str) -> VisionClient:
        try:
            return self.vision[name]
        except KeyError:
            raise InvalidParser(
                f"Invalid vision parser: {name}",
                parser=name,
                available=sorted(self.vision),
            ) from None

    def document_parser(self, name: str) -> DocumentParser:
        try:
            return self.document[name]
        except KeyError:
            raise InvalidParser(
                f"Invalid document parser: {name}",
                parser=name,
                available=sorted(self.document),
            ) from None

    def descriptors(self) -> list[ParserDescriptor]:
        out = [
            ParserDescriptor(
                name=p.name,
                kind="vision",
                enabled=p.enabled,
                api_key_required=p.api_key_required,
                api_url_required=p.api_url_required,
            )
            for p in self.vision.values()
        ]
        out += [
            ParserDescriptor(
                name=p.name,
                kind="document",
                enabled=p.enabled,
                api_key_required=p.api_key_required,
            )
            for p in self.document.values()
        ]
        return out

    async def close(self) -> None:
        for parser in self.vision.values():
            await parser.close()


def build_registry(config: Settings | None = None) -> ParserRegistry:
    """Instantiate every backend variant and keep the enabled ones."""
    config = config or default_settings

    vision: list[VisionClient] = [
        OllamaVisionClient(
            base_url=config.OLLAMA_URL,
            temperature=config.INFERENCE_TEMPERATURE,
            local=config.is_local,
        ),
        OpenAIVisionClient(
            base_url=config.OPENAI_API_URL,
            api_key=config.OPENAI_API_KEY,
            temperature=config.INFERENCE_TEMPERATURE,
            timeout=config.INFERENCE_TIMEOUT_SECONDS,
        ),
    ]
    document: list[DocumentParser] = [
        DoclingDocumentParser(base_url=config.DOCLING_URL, timeout=config.DOCLING_TIMEOUT_SECONDS),
    ]

    registry = ParserRegistry(
        vision=MappingProxyType({p.name: p for p in vision if p.enabled}),
        document=MappingProxyType({p.name: p for p in document if p.enabled}),
    )
    logger.info(
        "Parser registry (%s): vision=%s document=%s",
        config.DEPLOYMENT_ENV, list(registry.vision), list(registry.document),
    )
    return registry


@lru_cache(maxsize=1)
def default_registry() -> ParserRegistry:
    return build_registry()
