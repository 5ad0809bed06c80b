"""
Runtime configuration for the Classroom Engagement Analyzer.

All values are read from environment variables once at import time, with
defaults that reproduce the demo behaviour:
- a 1 second session clock
- a 3 second simulated sampling round
- alerts visible for 3 seconds
- class attention starting at 85%
"""

import os

# ──────────────────────────────────────────────────────────────
# Service
# ──────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# In-memory SQLite by default: roster and history live only as long as the process
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite://")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# ──────────────────────────────────────────────────────────────
# Session timers (seconds)
# ──────────────────────────────────────────────────────────────
CLOCK_TICK_SECONDS = float(os.getenv("CLOCK_TICK_SECONDS", "1"))
SAMPLING_INTERVAL_SECONDS = float(os.getenv("SAMPLING_INTERVAL_SECONDS", "3"))
ALERT_VISIBILITY_SECONDS = float(os.getenv("ALERT_VISIBILITY_SECONDS", "3"))

# ──────────────────────────────────────────────────────────────
# Simulated sampling
# ──────────────────────────────────────────────────────────────
INITIAL_ATTENTION = int(os.getenv("INITIAL_ATTENTION", "85"))
HAND_RAISE_PROBABILITY = float(os.getenv("HAND_RAISE_PROBABILITY", "0.1"))

CLASS_ATTENTION_STEP = 10        # overall attention moves by at most ±10 per round
CLASS_ATTENTION_RANGE = (40, 100)

STUDENT_BASELINE = 70            # per-student samples are drawn around this value
STUDENT_SPREAD = 20
STUDENT_ATTENTION_RANGE = (30, 100)

DISTRACTION_THRESHOLD = 70       # class attention below this raises a distraction alert

# Registration captures exactly this many photos per student
FACE_SAMPLES_REQUIRED = 3
