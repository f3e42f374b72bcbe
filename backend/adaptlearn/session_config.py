from __future__ import annotations
import json
import random
from datetime import datetime, timedelta
from typing import Any, List, Optional, Sequence, Union

from pydantic import BaseModel, Field

from .domain import Question
from .errors import NoQuestionsAvailable


ALL = "all"
COUNT_CHOICES: List[int] = [5, 10, 15, 20]


class SessionConfig(BaseModel):
    question_count: Union[int, str] = Field(default=ALL, description='"all" or a number of questions')
    timer_enabled: bool = False
    timer_minutes: int = Field(default=10, ge=1)


def question_count_options(pool_size: int) -> List[str]:
    options = [str(n) for n in COUNT_CHOICES if n <= pool_size]
    options.append(ALL)
    return options


def normalize_options(raw: Any) -> List[str]:
    """Coerce a stored options payload into an ordered list of strings."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return []
    if isinstance(raw, (list, tuple)):
        return [str(o) for o in raw]
    return []


def resolve_count(chosen: Union[int, str], pool_size: int) -> Optional[int]:
    """Return None for "all", else the requested count clamped to the pool."""
    if isinstance(chosen, str):
        if chosen.strip().lower() == ALL:
            return None
        chosen = int(chosen)
    return max(1, min(int(chosen), pool_size))


def shuffle(items: Sequence[Question], rng: random.Random) -> List[Question]:
    # Fisher-Yates
    out = list(items)
    for i in range(len(out) - 1, 0, -1):
        j = rng.randint(0, i)
        out[i], out[j] = out[j], out[i]
    return out


def build_session(
    pool: Sequence[Question],
    chosen_count: Union[int, str] = ALL,
    rng: Optional[random.Random] = None,
) -> List[Question]:
    if not pool:
        raise NoQuestionsAvailable("No questions available for this quiz.")
    count = resolve_count(chosen_count, len(pool))
    if count is None:
        return list(pool)
    return shuffle(pool, rng or random.Random())[:count]


def build_deadline(started_at: datetime, enabled: bool, minutes: Optional[int]) -> Optional[datetime]:
    if not enabled:
        return None
    if not minutes or minutes <= 0:
        raise ValueError("timer_minutes must be positive when the timer is enabled")
    return started_at + timedelta(seconds=minutes * 60)
