"""
Built-in content node types.

Each type declares typed ports, a pydantic config model and an executor
closure bound to a ContentService. Values flowing between nodes are plain
dicts shaped per DataKind:

    Idea             {topic, ideas, selectedIdea}
    Audience         {ageRange: {min, max}, gender, interests, locations}
    Draft            {prompt, draft, audienceContext}
    HashtagSet       {hashtags, source}
    Media            {query, images, selectedImage}
    PlatformSettings {platform, postSettings}
    CombinedContent  {platform, prompt, draft, media, hashtags, audience, postSettings, formattedContent}
    Preview          {platform, content, warnings, approvalStatus}
    StructuredText   {text, source}
"""
from datetime import datetime, timezone
from logging import getLogger
from typing import Any, Dict, List, Literal, Optional

from pydantic import ConfigDict, Field, model_validator

from ..core.Node import NodeConfig
from ..core.NodePort import InputPort, OutputPort
from ..core.NodeRegistry import NodeTypeRegistry
from ..core.Types import DataKind
from .formatting import format_content_for_platform, generate_hashtags_from_content, validate_platform_content
from .services import ContentService, TemplateContentService

logger = getLogger(__name__)

Platform = Literal["twitter", "instagram", "facebook", "linkedin", "tiktok"]


# =========================================================================================
# Configs
# =========================================================================================

class ContentNodeConfig(NodeConfig):
    model_config = ConfigDict(extra="forbid")


class TriggerConfig(ContentNodeConfig):
    text: str = ""
    source: Literal["manual", "schedule", "webhook"] = "manual"


class IdeaConfig(ContentNodeConfig):
    topic: str = ""
    count: int = Field(5, ge=1, le=10)
    # preset ideas skip the content service
    ideas: List[str] = Field(default_factory=list)
    selected_idea: Optional[str] = None


class AudienceConfig(ContentNodeConfig):
    age_min: int = Field(18, ge=13, le=100)
    age_max: int = Field(65, ge=13, le=100)
    gender: Literal["all", "female", "male", "other"] = "all"
    interests: List[str] = Field(default_factory=list)
    locations: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_age_range(self) -> "AudienceConfig":
        if self.age_min > self.age_max:
            raise ValueError("age_min must not exceed age_max")
        return self


class DraftConfig(ContentNodeConfig):
    prompt: str = ""
    tone: Optional[str] = None
    # a hand-written draft is passed through as-is
    draft: Optional[str] = None


class HashtagConfig(ContentNodeConfig):
    count: int = Field(5, ge=1, le=30)
    extra: List[str] = Field(default_factory=list)


class MediaConfig(ContentNodeConfig):
    query: str = ""
    count: int = Field(2, ge=1, le=10)
    selected_image_id: Optional[str] = None


class PlatformConfig(ContentNodeConfig):
    platform: Platform = "twitter"
    post_settings: Dict[str, Any] = Field(default_factory=dict)


class PreviewConfig(ContentNodeConfig):
    view_as: Literal["mobile", "desktop"] = "mobile"
    approval_status: Literal["pending", "approved", "rejected"] = "pending"
    feedback: str = ""


class ScheduleConfig(ContentNodeConfig):
    scheduled_time: Optional[datetime] = None
    time_zone: str = "UTC"
    recurrence: Optional[Literal["daily", "weekly", "monthly"]] = None


class PublishConfig(ContentNodeConfig):
    dry_run: bool = True


class AnalyticsConfig(ContentNodeConfig):
    metrics: List[str] = Field(default_factory=lambda: ["impressions", "engagement", "clicks"])
    goals: Dict[str, float] = Field(default_factory=dict)


Condition = Literal["hasDraft", "hasImage", "isPlatformSelected", "contentLength", "always", "never"]


class ConditionalConfig(ContentNodeConfig):
    condition: Condition = "hasDraft"
    # word count for contentLength
    threshold: int = Field(250, ge=0)


class CombineConfig(ContentNodeConfig):
    platform: Optional[Platform] = None


# =========================================================================================
# Helpers
# =========================================================================================

def audience_context(audience: Optional[Dict[str, Any]]) -> str:
    if not audience:
        return ""
    age = audience.get("ageRange") or {}
    interests = audience.get("interests") or []
    if not age and not interests:
        return ""
    context = "\nTarget audience:"
    if age:
        context += f" Age {age.get('min')}-{age.get('max')}"
    if interests:
        context += f" Interests: {', '.join(interests)}"
    return context


def _text_of(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        for key in ("draft", "formattedContent", "content", "text"):
            if isinstance(value.get(key), str) and value[key]:
                return value[key]
    return ""


def evaluate_condition(condition: str, value: Any, threshold: int = 250) -> bool:
    data = value if isinstance(value, dict) else {}
    if condition == "always":
        return True
    if condition == "never":
        return False
    if condition == "hasDraft":
        return bool(data.get("draft"))
    if condition == "hasImage":
        return bool(data.get("selectedImage") or data.get("media"))
    if condition == "isPlatformSelected":
        return bool(data.get("platform"))
    if condition == "contentLength":
        return len(_text_of(value).split()) >= threshold
    raise ValueError(f"Unknown condition '{condition}'")


def combine_parts(parts: List[Dict[str, Any]], platform: Optional[str] = None) -> Dict[str, Any]:
    """Merge heterogeneous upstream values into one CombinedContent record."""
    combined: Dict[str, Any] = {
        "platform": platform or "",
        "prompt": "",
        "draft": "",
        "media": None,
        "hashtags": [],
        "audience": None,
        "postSettings": {},
    }
    for part in parts:
        if not isinstance(part, dict):
            continue
        if "draft" in part:
            combined["draft"] = part.get("draft") or combined["draft"]
            combined["prompt"] = part.get("prompt") or combined["prompt"]
        elif "selectedImage" in part:
            combined["media"] = part.get("selectedImage")
        elif "hashtags" in part:
            combined["hashtags"] = combined["hashtags"] + [t for t in part["hashtags"] if t not in combined["hashtags"]]
        elif "selectedIdea" in part:
            combined["prompt"] = combined["prompt"] or part.get("selectedIdea") or ""
        elif "text" in part and not combined["draft"]:
            combined["draft"] = part.get("text") or ""

    if combined["platform"] and combined["draft"]:
        combined["formattedContent"] = format_content_for_platform(
            combined["draft"], combined["platform"], combined["hashtags"])
    return combined


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# =========================================================================================
# Registration
# =========================================================================================

def register_content_nodes(registry: NodeTypeRegistry, service: ContentService) -> NodeTypeRegistry:

    @registry.node_type("trigger",
                        title="Workflow Trigger",
                        description="Starts a workflow with an optional text payload.",
                        category="control",
                        outputs=[OutputPort("payload", DataKind.STRUCTURED_TEXT)],
                        config_model=TriggerConfig)
    def execute_trigger(inputs, config: TriggerConfig):
        return {"payload": {"text": config.text, "source": config.source, "triggeredAt": _now_iso()}}

    @registry.node_type("idea",
                        title="Content Idea",
                        description="Generate content ideas from a topic.",
                        category="ideation",
                        outputs=[OutputPort("idea", DataKind.IDEA)],
                        config_model=IdeaConfig)
    async def execute_idea(inputs, config: IdeaConfig):
        ideas = list(config.ideas)
        if not ideas:
            if not config.topic:
                raise ValueError("Idea node needs a topic")
            ideas = await service.generate_ideas(config.topic, config.count)
        selected = config.selected_idea or (ideas[0] if ideas else None)
        return {"idea": {"topic": config.topic, "ideas": ideas, "selectedIdea": selected}}

    @registry.node_type("audience",
                        title="Target Audience",
                        description="Describe who the content is for.",
                        category="ideation",
                        outputs=[OutputPort("audience", DataKind.AUDIENCE)],
                        config_model=AudienceConfig)
    def execute_audience(inputs, config: AudienceConfig):
        return {"audience": {
            "ageRange": {"min": config.age_min, "max": config.age_max},
            "gender": config.gender,
            "interests": list(config.interests),
            "locations": list(config.locations),
        }}

    @registry.node_type("draft",
                        title="Content Draft",
                        description="Write a draft from an idea or a prompt.",
                        category="creation",
                        inputs=[InputPort("idea", DataKind.IDEA),
                                InputPort("audience", DataKind.AUDIENCE)],
                        outputs=[OutputPort("draft", DataKind.DRAFT)],
                        config_model=DraftConfig)
    async def execute_draft(inputs, config: DraftConfig):
        idea = inputs.get("idea") or {}
        prompt = config.prompt or idea.get("selectedIdea") or ""
        context = audience_context(inputs.get("audience"))

        if config.draft:
            text = config.draft
        elif prompt:
            full_prompt = f"{prompt}\n{context}" if context else prompt
            text = await service.generate_draft(full_prompt, config.tone)
        else:
            raise ValueError("Draft node needs a prompt or an idea input")
        return {"draft": {"prompt": prompt, "draft": text, "audienceContext": context or None}}

    @registry.node_type("hashtag",
                        title="Hashtags",
                        description="Extract hashtags from a draft.",
                        category="creation",
                        inputs=[InputPort("draft", DataKind.DRAFT, required=True),
                                InputPort("idea", DataKind.IDEA)],
                        outputs=[OutputPort("hashtags", DataKind.HASHTAG_SET)],
                        config_model=HashtagConfig)
    def execute_hashtag(inputs, config: HashtagConfig):
        draft = inputs["draft"]
        text = draft.get("draft") or draft.get("prompt") or ""
        idea = inputs.get("idea")
        if idea and idea.get("selectedIdea"):
            text = f"{idea['selectedIdea']} {text}"
        tags = generate_hashtags_from_content(text, config.count)
        for tag in config.extra:
            tag = tag.lstrip("#")
            if tag and tag not in tags:
                tags.append(tag)
        return {"hashtags": {"hashtags": tags, "source": "draft"}}

    @registry.node_type("media",
                        title="Media",
                        description="Find images for the content.",
                        category="creation",
                        inputs=[InputPort("draft", DataKind.DRAFT)],
                        outputs=[OutputPort("media", DataKind.MEDIA)],
                        config_model=MediaConfig)
    async def execute_media(inputs, config: MediaConfig):
        draft = inputs.get("draft") or {}
        query = config.query or draft.get("prompt") or ""
        if not query:
            raise ValueError("Media node needs a query or a draft input")
        images = await service.suggest_images(query, config.count)
        selected = next((img for img in images if img.get("id") == config.selected_image_id), None)
        if selected is None and images:
            selected = images[0]
        return {"media": {"query": query, "images": images, "selectedImage": selected}}

    @registry.node_type("platform",
                        title="Platform",
                        description="Format the content for a social platform.",
                        category="publishing",
                        inputs=[InputPort("draft", DataKind.DRAFT, required=True),
                                InputPort("media", DataKind.MEDIA),
                                InputPort("hashtags", DataKind.HASHTAG_SET),
                                InputPort("audience", DataKind.AUDIENCE)],
                        outputs=[OutputPort("content", DataKind.COMBINED_CONTENT),
                                 OutputPort("settings", DataKind.PLATFORM_SETTINGS)],
                        config_model=PlatformConfig)
    def execute_platform(inputs, config: PlatformConfig):
        draft = inputs["draft"]
        media = inputs.get("media") or {}
        hashtags = (inputs.get("hashtags") or {}).get("hashtags") or []
        content = {
            "platform": config.platform,
            "prompt": draft.get("prompt") or "",
            "draft": draft.get("draft") or "",
            "media": media.get("selectedImage"),
            "hashtags": list(hashtags),
            "audience": inputs.get("audience"),
            "postSettings": dict(config.post_settings),
        }
        content["formattedContent"] = format_content_for_platform(content["draft"], config.platform, hashtags)
        return {
            "content": content,
            "settings": {"platform": config.platform, "postSettings": dict(config.post_settings)},
        }

    @registry.node_type("preview",
                        title="Content Preview",
                        description="Preview the content and flag platform issues.",
                        category="publishing",
                        inputs=[InputPort("content", DataKind.COMBINED_CONTENT, required=True)],
                        outputs=[OutputPort("preview", DataKind.PREVIEW),
                                 OutputPort("approved", DataKind.COMBINED_CONTENT)],
                        config_model=PreviewConfig)
    def execute_preview(inputs, config: PreviewConfig):
        content = inputs["content"]
        warnings = validate_platform_content(content)
        return {
            "preview": {
                "platform": content.get("platform"),
                "viewAs": config.view_as,
                "content": {**content, "warnings": warnings},
                "warnings": warnings,
                "approvalStatus": config.approval_status,
                "feedback": config.feedback,
            },
            "approved": {**content, "approvalStatus": config.approval_status},
        }

    @registry.node_type("schedule",
                        title="Schedule",
                        description="Set a time to publish the content.",
                        category="publishing",
                        inputs=[InputPort("content", DataKind.COMBINED_CONTENT, required=True)],
                        outputs=[OutputPort("scheduled", DataKind.COMBINED_CONTENT)],
                        config_model=ScheduleConfig)
    def execute_schedule(inputs, config: ScheduleConfig):
        when = config.scheduled_time.isoformat() if config.scheduled_time else None
        return {"scheduled": {
            **inputs["content"],
            "scheduledTime": when,
            "timeZone": config.time_zone,
            "recurrence": config.recurrence,
        }}

    @registry.node_type("publish",
                        title="Publish Content",
                        description="Publish or queue the content.",
                        category="publishing",
                        inputs=[InputPort("content", DataKind.COMBINED_CONTENT, required=True)],
                        outputs=[OutputPort("published", DataKind.COMBINED_CONTENT)],
                        config_model=PublishConfig,
                        max_instances=1)
    def execute_publish(inputs, config: PublishConfig):
        content = inputs["content"]
        if content.get("approvalStatus") == "rejected":
            raise ValueError("Content was rejected in preview")
        if config.dry_run:
            status = "dry-run"
        elif content.get("scheduledTime"):
            status = "scheduled"
        else:
            status = "published"
        logger.info("publish %s to %s", status, content.get("platform") or "<no platform>")
        return {"published": {**content, "status": status, "publishedTime": _now_iso()}}

    @registry.node_type("analytics",
                        title="Analytics Tracking",
                        description="Track the performance of published content.",
                        category="analytics",
                        inputs=[InputPort("content", DataKind.COMBINED_CONTENT, required=True)],
                        config_model=AnalyticsConfig,
                        max_instances=1,
                        terminal=True)
    def execute_analytics(inputs, config: AnalyticsConfig):
        logger.info("tracking %s for %s post", ", ".join(config.metrics),
                    inputs["content"].get("platform") or "unknown")
        return {}

    @registry.node_type("conditional",
                        title="Conditional Branch",
                        description="Route the input down the true or false branch.",
                        category="control",
                        inputs=[InputPort("input", DataKind.ANY, required=True)],
                        outputs=[OutputPort("true", DataKind.ANY, branch=True),
                                 OutputPort("false", DataKind.ANY, branch=False),
                                 OutputPort("result", DataKind.BOOLEAN)],
                        config_model=ConditionalConfig,
                        condition_port="result")
    def execute_conditional(inputs, config: ConditionalConfig):
        value = inputs["input"]
        result = evaluate_condition(config.condition, value, config.threshold)
        return {"true": value, "false": value, "result": result}

    @registry.node_type("combine",
                        title="Combine Content",
                        description="Merge drafts, media and hashtags into one post.",
                        category="creation",
                        inputs=[InputPort("parts",
                                          [DataKind.DRAFT, DataKind.MEDIA, DataKind.HASHTAG_SET,
                                           DataKind.STRUCTURED_TEXT, DataKind.IDEA],
                                          required=True,
                                          allow_multiple=True)],
                        outputs=[OutputPort("combined", DataKind.COMBINED_CONTENT)],
                        config_model=CombineConfig)
    def execute_combine(inputs, config: CombineConfig):
        return {"combined": combine_parts(inputs["parts"], config.platform)}

    return registry


def build_content_registry(service: Optional[ContentService] = None) -> NodeTypeRegistry:
    """A registry holding every built-in content node type."""
    return register_content_nodes(NodeTypeRegistry(), service or TemplateContentService())
