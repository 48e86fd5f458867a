from .behavior_event import BehaviorEvent, EventTag
from .goal import Goal
from .goal_step import GoalStep, GoalAttempt
from .goal_suggestion import GoalSuggestion
from .ai_run import AiRun

__all__ = [
    "BehaviorEvent",
    "EventTag",
    "Goal",
    "GoalStep",
    "GoalAttempt",
    "GoalSuggestion",
    "AiRun",
]
