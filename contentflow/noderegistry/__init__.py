from .ContentNodes import build_content_registry, register_content_nodes
from .services import ContentService, TemplateContentService, OpenAIContentService, build_content_service
