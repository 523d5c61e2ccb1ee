"""
Prompt builders for the agent loop.

The think prompt asks for the next action as JSON; the summarize prompt
folds newly read content into the running summary.
"""

from scout_engine.models.scout import ScoutSnapshot
from scout_engine.models.search import SearchResult, SourceFinding


THINK_SYSTEM_PROMPT = """You are a web research scout. You work toward a user's standing goal
by searching the web, reading the most relevant pages, and keeping a concise summary of
what you found.

On every turn choose exactly one action:
- "search": run new web searches. Provide 1-3 specific queries in "queries".
- "read": read one page from the candidate list. Provide its "url".
- "finish": you have enough evidence (or nothing useful remains) to write the final summary.

Never repeat a query you already ran or a page you already read.

Respond with a single JSON object:
{"action": "search" | "read" | "finish", "queries": [...], "url": "...", "reasoning": "..."}
"""

SUMMARIZE_SYSTEM_PROMPT = """You maintain the running summary for a web research scout.
Merge the new page content into the existing summary. Keep concrete facts, names, dates,
prices and places, attribute them to their source URL, and drop anything unrelated to the goal.

Set "done" to true only when the goal is answered well enough that further reading is
unlikely to add anything.

Respond with a single JSON object:
{"summary": "...", "done": true | false}
"""


def describe_scout(snapshot: ScoutSnapshot) -> str:
    """Render the scout configuration for a prompt."""
    location = snapshot.location.describe() if snapshot.location else "anywhere"
    queries = "\n".join(f"- {q}" for q in snapshot.search_queries)
    return f"""## Scout: {snapshot.title}

**Goal:** {snapshot.goal}

**Description:** {snapshot.description}

**Location:** {location}

**Suggested queries:**
{queries}
"""


def build_think_messages(
    snapshot: ScoutSnapshot,
    searched_queries: list[str],
    candidates: list[SearchResult],
    findings: list[SourceFinding],
    summary: str,
    steps_remaining: int,
) -> list[dict]:
    """
    Build the messages for a think step.

    Args:
        snapshot: Scout configuration for this run
        searched_queries: Queries already run
        candidates: Unread search results
        findings: Pages already read
        summary: Current running summary
        steps_remaining: Steps left before the ceiling

    Returns:
        Chat messages for the generation backend
    """
    searched = "\n".join(f"- {q}" for q in searched_queries) or "(none yet)"
    candidate_lines = "\n".join(
        f"- {c.url} | {c.title} | {c.description[:160]}" for c in candidates[:15]
    ) or "(none)"
    read_lines = "\n".join(f"- {f.url} | {f.title}" for f in findings) or "(none yet)"

    user_prompt = f"""{describe_scout(snapshot)}
---

## Queries already run
{searched}

## Unread candidate pages
{candidate_lines}

## Pages already read
{read_lines}

## Current summary
{summary or "(empty)"}

---

You have {steps_remaining} steps left. Choose the next action.
"""
    return [
        {"role": "system", "content": THINK_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def build_summarize_messages(
    snapshot: ScoutSnapshot,
    summary: str,
    new_findings: list[SourceFinding],
    final: bool = False,
) -> list[dict]:
    """
    Build the messages for a summarize step.

    Args:
        snapshot: Scout configuration for this run
        summary: Current running summary
        new_findings: Content read since the last summarize step
        final: Whether this is the closing summary of the run

    Returns:
        Chat messages for the generation backend
    """
    content = "\n\n".join(
        f"### {f.title or f.url}\nSource: {f.url}\n\n{f.excerpt}" for f in new_findings
    ) or "(no new content)"

    instruction = (
        "Write the final summary of everything found for this goal."
        if final
        else "Update the summary with the new content."
    )

    user_prompt = f"""{describe_scout(snapshot)}
---

## Existing summary
{summary or "(empty)"}

## New content
{content}

---

{instruction}
"""
    return [
        {"role": "system", "content": SUMMARIZE_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def digest_findings(findings: list[SourceFinding]) -> str:
    """Fallback summary listing sources when no summary was produced."""
    if not findings:
        return ""
    lines = ["Sources reviewed:"]
    for f in findings:
        lines.append(f"- {f.title or f.url} ({f.url})")
    return "\n".join(lines)
