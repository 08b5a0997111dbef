"""Conversation-starter prompts suggested to groups with a low health score."""

from collections.abc import Sequence

LARGE_GROUP_SIZE = 5

# (topic keywords, prompts, larger-group prompt)
TOPIC_PROMPTS: list[tuple[tuple[str, ...], tuple[str, ...], str]] = [
    (
        ("work", "job"),
        (
            "What's one work achievement you're proud of this year?",
            "If you could instantly master one professional skill, what would it be?",
        ),
        "Let's do a quick round: share one work win and one challenge you're facing",
    ),
    (
        ("hobby", "interest"),
        (
            "What hobby have you always wanted to try but haven't yet?",
            "What's a skill you've learned recently that surprised you?",
        ),
        "Show and tell time! Share something you've created or are working on",
    ),
    (
        ("music", "entertainment"),
        (
            "What song has been stuck in your head lately?",
            "If you could have dinner with any artist or musician, who would it be?",
        ),
        "Let's play two truths and a lie about our music tastes!",
    ),
]

DEFAULT_PROMPTS = (
    "What's the best piece of advice you've ever received?",
    "What's something you're looking forward to this week?",
)
DEFAULT_LARGE_GROUP_PROMPT = (
    "Let's do a quick check-in: how is everyone feeling today on a scale of 1-10?"
)


def topic_icebreakers(topic: str, member_count: int) -> list[str]:
    lowered = topic.lower()
    for keywords, prompts, large_group_prompt in TOPIC_PROMPTS:
        if any(keyword in lowered for keyword in keywords):
            break
    else:
        prompts, large_group_prompt = DEFAULT_PROMPTS, DEFAULT_LARGE_GROUP_PROMPT

    suggestions = list(prompts)
    if member_count > LARGE_GROUP_SIZE:
        suggestions.append(large_group_prompt)
    return suggestions


def general_icebreakers(member_count: int) -> list[str]:
    suggestions = [
        "What's one thing you're grateful for today?",
        "If you could teleport anywhere right now, where would you go?",
    ]
    if member_count > LARGE_GROUP_SIZE:
        suggestions.append("Let's do a word association game! I'll start with \"chat\"...")
    if member_count > 3:
        suggestions.append("What's your go-to comfort food?")
    return suggestions


def suggest_icebreakers(
    health_score: float,
    group_topics: Sequence[str],
    member_count: int,
    threshold: float = 0.5,
    limit: int = 3,
) -> list[str]:
    """Up to `limit` unique prompts, topic-specific first; empty for healthy groups."""
    if health_score >= threshold:
        return []

    suggestions: list[str] = []
    for topic in group_topics:
        suggestions.extend(topic_icebreakers(topic, member_count))
    suggestions.extend(general_icebreakers(member_count))

    # dict.fromkeys keeps first-seen order
    return list(dict.fromkeys(suggestions))[:limit]
