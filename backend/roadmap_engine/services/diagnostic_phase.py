"""Phase 1: classify the goal and diagnose the learner."""
from __future__ import annotations

import re
from typing import List, Optional

from roadmap_engine.services.collaborators import InputContext, format_input_context
from roadmap_engine.services.output_schemas import (
    Diagnosis,
    DiagnosticResult,
    GoalAnalysis,
    KnowledgeGaps,
    Prerequisites,
    UserAssessment,
)
from roadmap_engine.services.plan_model import categorize_goal

PLACEHOLDER_GOAL = "your learning goal"
MAX_TIMEFRAME_DAYS = 3650

_NUMBER_WORDS = {
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
    "eleven": 11,
    "twelve": 12,
}
_UNIT_DAYS = {"day": 1, "week": 7, "month": 30, "year": 365}

# "2 weeks" counts as a deadline, "2 days a week" is a frequency.
_DEADLINE_PATTERN = re.compile(
    r"\b(?P<count>\d+|one|two|three|four|five|six|seven|eight|nine|ten|eleven|twelve)\s*(?:-\s*)?"
    r"(?P<unit>day|week|month|year)s?\b(?!\s*(?:a|an|per|each|every)\b)",
    re.IGNORECASE,
)
_SINGLE_UNIT_DEADLINE = re.compile(r"\b(?:in|within|over|for)\s+(?:a|an|one)\s+(?P<unit>day|week|month|year)\b", re.IGNORECASE)
_RELATIVE_DEADLINES = (
    (re.compile(r"\b(?:tomorrow|tonight)\b", re.IGNORECASE), 1),
    (re.compile(r"\b(?:this|next)\s+weekend\b", re.IGNORECASE), 3),
    (re.compile(r"\b(?:this|next)\s+week\b", re.IGNORECASE), 7),
    (re.compile(r"\b(?:this|next)\s+month\b", re.IGNORECASE), 30),
)
_LEAD_IN = re.compile(
    r"^\s*(?:i\s+(?:want|need|would like|'d like|have)\s+to|help me(?:\s+to)?|how (?:do i|to)|my goal is to)\s+",
    re.IGNORECASE,
)
_DEADLINE_TAIL = re.compile(
    r"\s+(?:(?:in|within|by|over|before|for)\s+(?:the\s+)?(?:next\s+)?(?:\w+\s+)?(?:days?|weeks?|months?|years?)"
    r"|(?:by\s+)?(?:tomorrow|tonight|(?:this|next)\s+(?:week|weekend|month)))\s*[.!]*\s*$",
    re.IGNORECASE,
)
_URGENT_WORDS = ("asap", "urgent", "urgently", "immediately", "right away")
_BROAD_WORDS = ("master", "become", "fluent", "career", "everything", "from scratch", "full stack", "expert")
_ADVANCED_WORDS = ("advanced", "expert", "senior", "optimize", "deepen")
_INTERMEDIATE_WORDS = ("intermediate", "improve", "get better", "level up", "brush up", "refresh")
_ABSOLUTE_BEGINNER_WORDS = ("from scratch", "never", "complete beginner", "absolute beginner", "zero", "no experience")

_SYSTEM_TYPE_BY_CATEGORY = {
    "test_prep": "test_prep",
    "skill_build": "skill_build",
    "learn_subject": "learn_subject",
}


def bounded_block(text: str, max_chars: int) -> str:
    """Trim a context block to ``max_chars`` characters, marking the cut with an ellipsis."""
    if max_chars <= 0 or len(text) <= max_chars:
        return text
    return text[: max(0, max_chars - 3)].rstrip() + "..."


def detect_timeframe_days(text: str) -> Optional[int]:
    """Return the deadline in days mentioned in ``text`` ("in 2 weeks" -> 14), if any."""
    if not text:
        return None
    match = _DEADLINE_PATTERN.search(text)
    if match:
        raw_count = match.group("count").lower()
        count = int(raw_count) if raw_count.isdigit() else _NUMBER_WORDS[raw_count]
        if count > 0:
            return min(MAX_TIMEFRAME_DAYS, count * _UNIT_DAYS[match.group("unit").lower()])
    single = _SINGLE_UNIT_DEADLINE.search(text)
    if single:
        return _UNIT_DAYS[single.group("unit").lower()]
    for pattern, days in _RELATIVE_DEADLINES:
        if pattern.search(text):
            return days
    return None


def goal_focus(goal: str) -> str:
    """Strip lead-ins and trailing deadlines: "I want to pass my calculus exam in 2 weeks" -> "pass my calculus exam"."""
    focus = _LEAD_IN.sub("", " ".join((goal or "").split()))
    focus = _DEADLINE_TAIL.sub("", focus).strip(" .!")
    return focus or goal.strip() or PLACEHOLDER_GOAL


def infer_urgency(text: str, timeframe_days: Optional[int]) -> str:
    lowered = text.lower()
    if timeframe_days is not None:
        if timeframe_days <= 7:
            return "immediate"
        if timeframe_days <= 60:
            return "short_term"
        return "long_term"
    if any(word in lowered for word in _URGENT_WORDS):
        return "immediate"
    return "short_term"


def infer_scope(text: str, timeframe_days: Optional[int]) -> str:
    lowered = text.lower()
    if timeframe_days is not None and timeframe_days <= 14:
        return "narrow"
    if any(word in lowered for word in _BROAD_WORDS):
        return "broad"
    return "moderate"


def infer_level(text: str) -> str:
    lowered = text.lower()
    if any(word in lowered for word in _ABSOLUTE_BEGINNER_WORDS):
        return "absolute_beginner"
    if any(word in lowered for word in _ADVANCED_WORDS):
        return "advanced"
    if any(word in lowered for word in _INTERMEDIATE_WORDS):
        return "intermediate"
    return "beginner"


def build_diagnostic_context(
    goal: str,
    *,
    subject: Optional[str] = None,
    user_context: Optional[str] = None,
    memory_context: Optional[str] = None,
    input_context: Optional[InputContext] = None,
    max_chars: int = 4000,
) -> str:
    sections: List[str] = [f"GOAL: {goal}"]
    if subject:
        sections.append(f"SUBJECT: {subject}")
    deadline = detect_timeframe_days(goal)
    if deadline:
        sections.append(f"DEADLINE DETECTED: {deadline} days")
    if user_context:
        sections.append(f"=== LEARNER CONTEXT ===\n{bounded_block(user_context, max_chars)}")
    if memory_context:
        sections.append(f"=== WHAT WE KNOW FROM EARLIER SESSIONS ===\n{bounded_block(memory_context, max_chars)}")
    if input_context is not None:
        sections.append(f"=== LEARNER MATERIAL ===\n{bounded_block(format_input_context(input_context), max_chars)}")
    sections.append("Diagnose this learner. Return the diagnostic JSON object.")
    return "\n\n".join(sections)


def reconcile_diagnostic(diagnostic: DiagnosticResult, goal: str) -> DiagnosticResult:
    """Overwrite the fields the system owns: the original goal, a definitive type, and a deadline stated in the goal."""
    updates = {"original": goal}
    category = categorize_goal(goal)
    system_type = _SYSTEM_TYPE_BY_CATEGORY.get(category.type)
    if system_type:
        updates["type"] = system_type
    detected = detect_timeframe_days(goal)
    if detected:
        updates["timeframe_days"] = detected
        updates["urgency"] = infer_urgency(goal, detected)
    goal_analysis = diagnostic.goal.model_copy(update=updates)
    return diagnostic.model_copy(update={"goal": goal_analysis})


def fallback_diagnostic(goal: str, input_context: Optional[InputContext] = None) -> DiagnosticResult:
    """Rule-based diagnostic built only from the raw goal text (and analyzed material, if any)."""
    topic = goal_focus(goal)
    category = categorize_goal(goal)
    goal_type = _SYSTEM_TYPE_BY_CATEGORY.get(category.type, "learn_subject")
    timeframe_days = detect_timeframe_days(goal)
    urgency = infer_urgency(goal, timeframe_days)
    scope = infer_scope(goal, timeframe_days)

    if goal_type == "test_prep":
        critical = ["Question types that carry the most marks", "Solving problems under time pressure"]
        priority = ["Most-tested topics", "Timed problem solving", "Error review"]
        why_stuck = "Re-reading notes feels productive, but the exam rewards solving unseen problems quickly."
        root_cause = "Recognition is being mistaken for recall: the material looks familiar but cannot be produced on demand."
        neglecting = ["Timed practice with past questions", "Reviewing every wrong answer"]
    elif goal_type == "skill_build":
        critical = ["The smallest working version of the skill", "A repeatable practice routine"]
        priority = ["First working result", "Deliberate drills", "One complete project"]
        why_stuck = "Tutorial-following feels like progress, but the skill only forms when you produce work alone."
        root_cause = "Too much input and too little output: very little has been built without a guide."
        neglecting = ["Building without a tutorial open", "Comparing your output with a reference"]
    else:
        critical = [f"Core vocabulary and ideas of {topic}", "Explaining the ideas without notes"]
        priority = ["Core ideas", "Worked examples", "Independent problems"]
        why_stuck = "Jumping between resources without a fixed order leaves every topic half finished."
        root_cause = "Passive consumption feels like progress; real learning comes from recall and correction."
        neglecting = ["Self-testing without notes", "Practice with immediate feedback"]

    required: List[str] = []
    focus: List[str] = []
    material_context = ""
    if input_context is not None:
        required = list(input_context.prerequisites)
        focus = list(input_context.focus_areas)
        if input_context.topic:
            material_context = f"Working from material on {input_context.topic}"
    if focus:
        critical = focus[:2] + critical[: max(0, 2 - len(focus[:2]))]

    return DiagnosticResult(
        goal=GoalAnalysis(
            original=goal,
            clarified=topic,
            type=goal_type,
            urgency=urgency,
            scope=scope,
            timeframe_days=timeframe_days,
        ),
        user=UserAssessment(
            inferred_level=infer_level(goal),
            context=material_context or "Starting a structured plan for this goal",
        ),
        gaps=KnowledgeGaps(critical=critical, important=["Common patterns and mistakes"], priority_order=priority),
        prerequisites=Prerequisites(required=required, missing=[]),
        diagnosis=Diagnosis(
            why_stuck=why_stuck,
            false_beliefs=["More resources means faster progress", "Recognizing an answer means you can produce it"],
            over_focusing=["Finding the perfect course", "Reading about the topic instead of doing it"],
            neglecting=neglecting,
            root_cause=root_cause,
        ),
    )


def format_diagnostic_block(diagnostic: DiagnosticResult, max_chars: int = 4000) -> str:
    goal = diagnostic.goal
    user = diagnostic.user
    gaps = diagnostic.gaps
    diagnosis = diagnostic.diagnosis
    lines = [
        f"GOAL: {goal.clarified}",
        f"TYPE: {goal.type}",
        f"URGENCY: {goal.urgency}",
        f"SCOPE: {goal.scope}",
        f"DEADLINE: {goal.timeframe_days} days" if goal.timeframe_days else "DEADLINE: none given",
        f"LEVEL: {user.inferred_level}",
        f"PRIOR KNOWLEDGE: {', '.join(user.prior_knowledge) or 'starting fresh'}",
        f"CONSTRAINTS: {', '.join(user.constraints) or 'none specified'}",
        f"CRITICAL GAPS: {', '.join(gaps.critical)}",
        f"PRIORITY ORDER: {' -> '.join(gaps.priority_order)}",
        f"MISSING PREREQUISITES: {', '.join(diagnostic.prerequisites.missing) or 'none'}",
        f"WHY STUCK: {diagnosis.why_stuck}",
        f"ROOT CAUSE: {diagnosis.root_cause}",
        f"NEGLECTING: {'; '.join(diagnosis.neglecting) or 'none identified'}",
    ]
    return bounded_block("\n".join(lines), max_chars)
