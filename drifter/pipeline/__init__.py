"""Daily simulation pipeline.

Turns one generator response into one DayLog and folds it into state:
  1. Sanitizer   — strip fences, repair trailing commas and truncation.
  2. Validator   — RawDayLog → DayLog conversion; required fields enforced.
  3. Resolver    — character names → roster ids.
  4. Orchestrator — prompt, generator call, retry once, fallback.
  5. Reducer     — pure GameState × DayLog → GameState.

The ending uses steps 1, 2 and 4 with its own prompt and schema.
"""

from .orchestrator import (  # noqa: F401
    DAY_LOG_SCHEMA,
    ENDING_SCHEMA,
    fallback_day_log,
    fallback_ending,
    must_force_crisis,
    simulate_day,
    simulate_ending,
)
from .reducer import DaySignals, apply_day_log, clamp, compare_states  # noqa: F401
from .resolver import resolve_character_id, resolve_day_log  # noqa: F401
from .sanitizer import (  # noqa: F401
    ResponseError,
    parse_response,
    repair_json,
    sanitize,
    strip_fences,
)
from .validator import RawDayLog, validate_day_log, validate_ending  # noqa: F401
