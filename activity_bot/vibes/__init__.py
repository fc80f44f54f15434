from .infer import VibeInference, score_message
from .rules import VibeRules, load_vibe_rules
from .summary import ServerVibes, display_vibes, format_vibe_display, server_vibe_counts

__all__ = [
    "ServerVibes",
    "VibeInference",
    "VibeRules",
    "display_vibes",
    "format_vibe_display",
    "load_vibe_rules",
    "score_message",
    "server_vibe_counts",
]
