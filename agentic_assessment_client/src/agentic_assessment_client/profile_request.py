"""
Initialize Request Builder

Turns a caller-supplied user profile into the body of the evaluator's
initialize call.
"""

from typing import Any, Dict, List, Mapping, Optional

from agentic_assessment_client.api_models import FluencyInput, InitializeRequest

TOP_COMPETENCY_COUNT = 4

# Skills without an explicit priority sort after every prioritised skill
_UNRANKED_PRIORITY = 10 ** 6


def map_role_to_track(role: Optional[str]) -> str:
    """Map a free-text role to a career track (PM, EM or SE)."""
    role_lower = (role or "").strip().lower()
    if "product manager" in role_lower or role_lower == "pm":
        return "PM"
    if "engineering manager" in role_lower or role_lower == "em":
        return "EM"
    # Software engineers and everyone else
    return "SE"


def get_top_competencies(skills: List[Mapping[str, Any]], count: int = TOP_COMPETENCY_COUNT) -> List[Mapping[str, Any]]:
    """
    Get the top N skills by priority (lower number = more important).

    Args:
        skills: Skill dimensions from the profile
        count: Number of skills to keep

    Returns:
        Sorted list of at most ``count`` skills
    """
    def priority(skill: Mapping[str, Any]) -> float:
        value = skill.get("priority")
        return value if isinstance(value, (int, float)) else _UNRANKED_PRIORITY

    return sorted(skills, key=priority)[:count]


def _is_fluency_profile(profile: Any) -> bool:
    return (
        isinstance(profile, Mapping)
        and isinstance(profile.get("profile"), list)
        and isinstance(profile.get("metadata"), Mapping)
    )


def build_initialize_request(
    profile: Any,
    focus_skills: Optional[List[str]] = None,
    resume_id: Optional[Any] = None
) -> InitializeRequest:
    """
    Build the initialize request for a profile.

    The profile is always forwarded unchanged. When it is a fluency profile
    (``{"profile": [...], "metadata": {...}}``) the track, experience and
    fluency targets are derived from it as well: the skills named in
    ``focus_skills`` when given, otherwise the top competencies.
    """
    request = InitializeRequest(
        profile=profile,
        focus_skills=list(focus_skills) if focus_skills else None,
        resume_session_id=resume_id,
    )

    if not _is_fluency_profile(profile):
        return request

    metadata: Mapping[str, Any] = profile["metadata"]
    skills = [skill for skill in profile["profile"] if isinstance(skill, Mapping)]

    if focus_skills:
        selected = [skill for skill in skills if skill.get("code") in focus_skills]
    else:
        selected = get_top_competencies(skills)

    request.track = map_role_to_track(metadata.get("role"))
    request.experience = metadata.get("experience", metadata.get("experience_range"))
    request.fluencies = [
        FluencyInput(
            code=str(skill.get("code", "")),
            name=str(skill.get("name", "")),
            target_level=str(skill.get("proficiency", "")).lower(),
        )
        for skill in selected
    ]
    return request


def request_body(request: InitializeRequest) -> Dict[str, Any]:
    """JSON body for an initialize request (unset optionals dropped)."""
    return request.model_dump(mode="json", exclude_none=True)
