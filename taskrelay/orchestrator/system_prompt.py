"""System prompt builder for backend execution.

Builds the system prompt from the selected category's behavioral profile,
the attached skills' specialist instructions, and a short digest of the
conversation so far.

Example:
    prompt = build_system_prompt(plan.category, plan.skills, plan.session)
"""

from taskrelay.orchestrator.models.routing import Category, Skill, sorted_skills
from taskrelay.orchestrator.models.session import SessionSnapshot

BASE_PROMPT = "You are a helpful work assistant. Respond concisely and accurately."

CATEGORY_PROMPTS: dict[Category, str] = {
    Category.VISUAL: (
        "Focus on visual and interface work. Describe layouts precisely, "
        "prefer concrete component structure, and keep accessibility in mind."
    ),
    Category.DEEP_REASONING: (
        "Reason carefully through the problem before answering. Lay out "
        "assumptions, compare alternatives, and state the trade-offs you chose."
    ),
    Category.CREATIVE: (
        "Be inventive. Offer several distinct options and vary tone and angle "
        "between them."
    ),
    Category.WRITING: (
        "Write clear, well-structured prose. Use headings and lists where they "
        "help the reader, and match the requested format."
    ),
    Category.QUICK: (
        "Answer briefly and act directly. Skip preamble and only ask a "
        "question when required information is missing."
    ),
    Category.DEFAULT: "",
}

SKILL_PROMPTS: dict[Skill, str] = {
    Skill.INTEGRATIONS: (
        "You can act on external work tools (Notion, Linear, GitHub, Slack, "
        "Jira, Asana, Airtable) through the provided tools. Use a tool when "
        "the user asks you to create, change or look up records there."
    ),
    Skill.BROWSER_AUTOMATION: (
        "You are an expert in browser automation with Playwright. Help with "
        "test scripts, scripted interactions, scraping and screenshots, and "
        "provide runnable code when appropriate."
    ),
    Skill.GIT: (
        "You are a Git expert. Help with commit strategy, branching, rebasing "
        "and conflict resolution, and give exact git commands."
    ),
    Skill.FRONTEND_UI: (
        "You are a senior frontend developer with strong design sense. Work "
        "in modern component frameworks and CSS, and keep components accessible."
    ),
}

_SECTION_BREAK = "\n\n---\n\n"
_MAX_HISTORY_CHARS = 200


def _history_section(session: SessionSnapshot) -> str:
    """Summarize recent turns for continuity."""
    if not session.recent_turns:
        return ""
    lines = ["## Conversation so far", ""]
    for turn in session.recent_turns:
        text = turn.text[:_MAX_HISTORY_CHARS]
        lines.append(f"- [{turn.category.value}] User: {text}")
        if turn.result_summary:
            lines.append(f"  Assistant: {turn.result_summary[:_MAX_HISTORY_CHARS]}")
    return "\n".join(lines)


def build_system_prompt(
    category: Category,
    skills: frozenset[Skill],
    session: SessionSnapshot | None = None,
) -> str:
    """Build the system prompt for one execution.

    Args:
        category: Selected category.
        skills: Attached skills.
        session: Conversation snapshot, if any.

    Returns:
        System prompt text.
    """
    sections = [BASE_PROMPT]
    category_prompt = CATEGORY_PROMPTS.get(category, "")
    if category_prompt:
        sections.append(category_prompt)
    for skill in sorted_skills(skills):
        sections.append(SKILL_PROMPTS[skill])
    if session is not None:
        history = _history_section(session)
        if history:
            sections.append(history)
    return _SECTION_BREAK.join(sections)
