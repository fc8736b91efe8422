"""
Reminder text — titles, bodies and action buttons for each reminder kind.
"""

from __future__ import annotations

from typing import Dict, List, Tuple

from ..settings import MonitorSettings, ReminderStyle

_DISTRACTION_TITLES: Dict[ReminderStyle, str] = {
    ReminderStyle.GENTLE: "Gentle Focus Reminder",
    ReminderStyle.STANDARD: "Focus Reminder",
    ReminderStyle.ASSERTIVE: "Focus Alert!",
}

# rotated by reminder number so consecutive reminders read differently
_DISTRACTION_BODIES: Dict[ReminderStyle, Tuple[str, ...]] = {
    ReminderStyle.GENTLE: (
        "Gentle reminder: You set {focus} as your focus. Would you like to return?",
        "You've wandered from your focus task. No worries, ready to get back on track?",
        "Just a friendly nudge: Your focus session on {focus} is waiting for you.",
    ),
    ReminderStyle.STANDARD: (
        "You've been distracted {count} times. Time to refocus on {focus}?",
        "Focus check: You were working on {focus}. Ready to continue?",
        "Distraction detected! Your focus task on {focus} needs attention.",
    ),
    ReminderStyle.ASSERTIVE: (
        "Focus alert! You've deviated {count} times from {focus}. Get back on track!",
        "Stay focused! Return to your important work on {focus} now.",
        "Productivity reminder: {focus} is your priority. Don't let distractions win!",
    ),
}

DISTRACTION_ACTIONS: List[str] = ["return_to_focus", "take_break", "dismiss"]
START_WORKING_ACTION = "start_working"


def distraction_title(style: ReminderStyle) -> str:
    return _DISTRACTION_TITLES.get(ReminderStyle(style), _DISTRACTION_TITLES[ReminderStyle.STANDARD])


def distraction_body(style: ReminderStyle, focus: str, deviation_count: int, reminder_number: int = 0) -> str:
    bodies = _DISTRACTION_BODIES.get(ReminderStyle(style), _DISTRACTION_BODIES[ReminderStyle.STANDARD])
    template = bodies[reminder_number % len(bodies)]
    return template.format(focus=focus or "your focus task", count=deviation_count)


def break_reminder(settings: MonitorSettings, work_minutes: int) -> Tuple[str, str, List[str]]:
    """Title, body and one action per break type (action id = break type key)."""
    title = "Break Reminder!"
    body = f"You've been working for {work_minutes} minutes. Time to take a break!"
    return title, body, [k for k in settings.break_types]


def break_complete(break_type: str) -> Tuple[str, str, List[str]]:
    title = "Break Complete!"
    body = f"Your {break_type} break is over. Ready to get back to work?"
    return title, body, [START_WORKING_ACTION]
