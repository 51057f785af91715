"""Three-step plans per mission category."""

from __future__ import annotations

STEP_TEMPLATES: dict[str, list[tuple[str, str]]] = {
    "safe_driving": [
        ("Review Current Coverage", "Review your current motor policy details and coverage limits."),
        ("Safe Driving Practice", "Drive safely for 3 consecutive days: keep to speed limits and avoid distractions."),
        ("Complete Safety Assessment", "Take the safe driving assessment and review your recommendations."),
    ],
    "health": [
        ("Schedule Health Checkup", "Book a preventive health checkup appointment."),
        ("Attend Appointment", "Attend the checkup and collect your results."),
        ("Upload Results", "Upload the checkup results to the health portal."),
    ],
    "family_protection": [
        ("Review Family Coverage", "Review your family's coverage and list any gaps."),
        ("Get Recommendations", "Use the family protection tool to get coverage recommendations."),
        ("Update Policy", "Update your policy or add cover based on the recommendations."),
    ],
    "financial_guardian": [
        ("Financial Assessment", "Complete the financial health assessment."),
        ("Review Life Insurance", "Check whether your life cover meets your family's future needs."),
        ("Plan Improvement", "Write down a plan to improve your financial protection."),
    ],
    "lifestyle": [
        ("Explore Options", "Browse products and services that match your lifestyle."),
        ("Compare Plans", "Compare at least two plans that fit your needs and budget."),
        ("Take Action", "Get a quote, book a consultation or enroll in a plan."),
    ],
}

DEFAULT_CATEGORY = "lifestyle"


def build_steps(category: str, count: int = 3) -> list[dict]:
    """Return ``count`` numbered step templates for a category."""
    template = STEP_TEMPLATES.get(category, STEP_TEMPLATES[DEFAULT_CATEGORY])
    steps = []
    for number in range(1, count + 1):
        title, description = template[(number - 1) % len(template)]
        steps.append({"step_number": number, "title": title, "description": description})
    return steps
