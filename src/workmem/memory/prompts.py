"""Instruction text for the merge step, the block path and ambient mode."""

from __future__ import annotations

DOCUMENT_TEMPLATE = """\
# Working Memory

## Now
<!-- Current focus, status, blockers (1-3 bullets) -->

## Decisions
<!-- Key decisions made this session with brief rationale -->

## Modified Files
<!-- File paths only, most recent first -->

## Context
<!-- Branch, PR, architectural context, open questions -->

## Session Log

### Today
<!-- Chronological summary of work done today (2-5 bullets) -->

### This Week
<!-- Broader multi-day context if relevant -->"""

SECTIONS = ("## Now", "## Decisions", "## Modified Files", "## Context", "## Session Log")

MAX_LINES = 100

_OUTPUT_RULES = """\
Reply with the complete document only, starting with "# Working Memory". \
No preamble, no commentary, no code fences."""

MERGE_EXISTING_TEMPLATE = """\
Produce the updated working memory for {memory_file} from this session. \
The file already has content, possibly written moments ago by a concurrent session. \
Merge this session's context with the existing content into a single unified working \
memory snapshot. Both this session and the existing content represent fresh, concurrent \
work: integrate both fully and never treat either one as outdated. Working memory captures \
what's active now, not a changelog. Deduplicate overlapping information. Keep under \
{max_lines} lines total. Use the same structure: {sections}.

{output_rules}

Existing content:
{existing}"""

MERGE_NEW_TEMPLATE = """\
Produce the working memory for {memory_file} from this session. Keep under {max_lines} \
lines. Use this structure:

{template}

{output_rules}"""

BLOCK_EXISTING = (
    "Silently update {memory_file} now — same structure, fresh content. "
    "Do NOT announce this to the user. Just write and stop."
)

BLOCK_NEW = """\
Silently update {memory_file} now. Overwrite the entire file. Do NOT announce this to \
the user — just write the file and stop. Keep under {max_lines} lines. Use this exact \
structure:

{template}"""

AMBIENT_PREAMBLE = """\
AMBIENT MODE ACTIVE: Before responding, silently classify this prompt:
Intent: BUILD | DEBUG | REVIEW | PLAN | EXPLORE | CHAT
Depth: QUICK (no overhead) | STANDARD (load skills) | ESCALATE (suggest /command)

If STANDARD+: Read the ambient-router skill for classification details and skill \
selection matrix. For BUILD tasks, also load test-driven-development skill and enforce \
RED-GREEN-REFACTOR.

If QUICK: Respond normally without stating classification.
Only state classification aloud for STANDARD/ESCALATE."""


def build_merge_instruction(memory_file: str, existing: str | None) -> str:
    """Instruction for the background merge, given the content read under the lock."""
    if existing and existing.strip():
        return MERGE_EXISTING_TEMPLATE.format(
            memory_file=memory_file,
            max_lines=MAX_LINES,
            sections=", ".join(SECTIONS),
            output_rules=_OUTPUT_RULES,
            existing=existing.strip(),
        )
    return MERGE_NEW_TEMPLATE.format(
        memory_file=memory_file,
        max_lines=MAX_LINES,
        template=DOCUMENT_TEMPLATE,
        output_rules=_OUTPUT_RULES,
    )


def build_block_instruction(memory_file: str, exists: bool) -> str:
    """Instruction the host runs itself when merging synchronously."""
    if exists:
        return BLOCK_EXISTING.format(memory_file=memory_file)
    return BLOCK_NEW.format(memory_file=memory_file, max_lines=MAX_LINES, template=DOCUMENT_TEMPLATE)


def extract_document(output: str) -> str | None:
    """Pull the document out of merge output. None if it does not look like one."""
    text = output.strip()
    if text.startswith("```"):
        lines = text.splitlines()[1:]
        if lines and lines[-1].strip().startswith("```"):
            lines = lines[:-1]
        text = "\n".join(lines).strip()
    start = text.find("# Working Memory")
    if start < 0:
        return None
    text = text[start:]
    if "## Now" not in text:
        return None
    return text + "\n"
