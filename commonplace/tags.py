"""Preset note tags."""

PRESET_TAGS: tuple[str, ...] = (
    "Business", "Economics", "Psychology", "Philosophy", "History",
    "Science", "Politics", "Arts", "Books", "Movies/TV",
    "Education", "Strategy", "Management", "Startup", "Finance",
    "Technology", "AI", "Data", "Productivity", "Career",
    "Health", "Fitness", "Mindfulness", "Food", "Cooking",
    "Travel", "Social", "Family", "Home", "Languages",
    "Literature", "Appointments", "Ideas", "Shopping",
    "Music", "Sports", "Environment", "Legal", "Research", "Writing",
)  # fmt: skip


def filter_preset_tags(tags: object) -> list[str]:
    """Keep only preset tags from an untrusted LLM value."""
    if not isinstance(tags, list):
        return []
    return [tag for tag in tags if isinstance(tag, str) and tag in PRESET_TAGS]
