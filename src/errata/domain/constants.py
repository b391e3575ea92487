"""Centralized constants for the Errata application.

All analysis defaults live here so every layer (analyzer, service,
adapters, HTTP and CLI) imports from a single source of truth.
"""

# ---------- Problem Index ----------
DEFAULT_EXPECTED_REVIEWS = 5
UNCONFIGURED_STATUS_WEIGHT = 0.0
DEFAULT_PROBLEM_THRESHOLD = 10.0
DEFAULT_OUTLIER_PERCENTAGE = 10.0
DEFAULT_AUTO_FLAG_ENABLED = True

# ---------- Regression Diagnostic ----------
MODERATE_DEVIATION_SIGMA = 1.0
SEVERE_DEVIATION_SIGMA = 2.0
# Spreads below this are floating point noise from an exact fit.
REGRESSION_EPSILON = 1e-9

# ---------- Statuses ----------
DEFAULT_STATUS_NAMES = ["normal", "critico", "reincidente", "aprendido"]
DEFAULT_NEW_CARD_STATUS = "normal"

# ---------- Timeline ----------
TREND_WEEKS = 8
TREND_MONTHS = 6
WEEKDAY_LABELS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
NO_SUBJECT_LABEL = "No subject"

# ---------- Persistence / HTTP ----------
REQUEST_TIMEOUT = 30.0
DEFAULT_SERVER_PORT = 8777
