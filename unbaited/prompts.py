from __future__ import annotations


DEFAULT_FILTER_CRITERIA = """\
- Engagement bait: rage bait, thirst traps, "agree or disagree?", ratio requests (BUT NOT if it links to an article or substantive content)
- Vapid musings: "ugh mondays", "vibes", trend-riding with no actual thought or insight
- Personal updates without insight: moving announcements, visa news, team offsites, company culture posts
- Electoral politics: elections, political parties, candidates, voting, partisan debates
- Culture war content: racism debates, immigration policy, DEI controversy, left vs right ideology
- Low-effort replies: emoji-only, "this", "lol", "+1", "W", "L", "ratio"
- Generic complaints: "is X down?", venting without substance
- Celebrity gossip, sports drama, reality TV"""

DEFAULT_ALLOW_CRITERIA = """\
- Tech, programming, software, AI/ML, startups, founder content
- Articles or linked content - posts sharing articles, blog posts, or long-form content are valuable even if the post text is brief
- New tools, frameworks, or paradigms - especially emerging tech that may not be widely known yet
- Economics, finance, markets, investing, business news, global trade
- Intellectual discussion: philosophy, science, rationality, epistemology, decision-making, ideas
- Engineering philosophy: design principles, tradeoffs, how to build good products
- Wisdom, quotes, or life lessons - especially from founders, investors, or notable figures
- Productivity, self-improvement, or life philosophy with actual insight
- Product announcements, tutorials, tips, workflows
- Personal projects, side projects, open source
- Hiring posts, career advice, industry analysis
- Book recommendations, learning resources
- Original thoughts and opinions on any allowed topic above

IMPORTANT: Judge posts by their text content first. Images are supplementary context - never filter a post JUST because it contains an image. If the text is substantive and interesting, allow it regardless of whether there's an image.

Note: Economics and business news mentioning governments or politicians in economic context is NOT political content - allow it."""

DEFAULT_HIGHLIGHT_CRITERIA = """\
- Posts that invite discussion or debate on design, product, or AI/ML topics
- Insightful opinions or hot takes on product strategy, UX, or design systems
- AI research breakthroughs, new models, new paradigms, or technical deep dives
- Thought-provoking questions about building products or startups
- Contrarian or novel perspectives on tech industry trends
- Philosophical insights about engineering, decision-making, or epistemology"""

_PROMPT_PREFIX = (
    "You are a post classifier. Classify this post into one of three categories "
    "based on the criteria below."
)

_PROMPT_SUFFIX = """\
Respond in JSON: {"reason": "7-12 word explanation", "verdict": "filtered" | "allowed" | "highlighted"}

Classification rules:
1. If the post matches FILTER criteria -> "filtered"
2. If the post matches HIGHLIGHT criteria -> "highlighted"
3. If the post matches ALLOW criteria -> "allowed"

Posts may include earlier posts of the same thread as [Thread @author: ...] blocks,
followed by the post itself as [Reply @author: ...]. Judge the reply in that context.

Examples:
{"reason": "electoral politics discussing voting and partisan candidates", "verdict": "filtered"}
{"reason": "engagement bait asking followers to ratio this post", "verdict": "filtered"}
{"reason": "useful tech workflow tip for developer productivity", "verdict": "allowed"}
{"reason": "founder sharing startup product update and roadmap", "verdict": "allowed"}
{"reason": "thought-provoking question about AI product design choices", "verdict": "highlighted"}
{"reason": "insightful debate on UX patterns for complex workflows", "verdict": "highlighted"}"""


def construct_full_prompt(filter_criteria: str, allow_criteria: str, highlight_criteria: str) -> str:
    return (
        f"{_PROMPT_PREFIX}\n\n"
        f"FILTER these posts:\n{filter_criteria}\n\n"
        f"ALLOW these posts:\n{allow_criteria}\n\n"
        f"HIGHLIGHT these posts (most interesting, discussion-worthy):\n{highlight_criteria}\n\n"
        f"{_PROMPT_SUFFIX}"
    )


def resolve_criteria(override: str | None, default: str) -> str:
    """User-supplied criteria replace the default block when non-empty."""
    text = (override or "").strip()
    return text or default
