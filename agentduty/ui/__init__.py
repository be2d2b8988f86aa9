"""UI components for the AgentDuty feed."""

from .widgets import (
    FeedList,
    NotificationDetail,
    build_card_text,
    build_detail_text,
    build_list_text,
)
from .styles import APP_CSS, LIST_PANEL_WIDTH, MIN_SPLIT_WIDTH

__all__ = [
    "FeedList",
    "NotificationDetail",
    "build_card_text",
    "build_detail_text",
    "build_list_text",
    "APP_CSS",
    "LIST_PANEL_WIDTH",
    "MIN_SPLIT_WIDTH",
]
