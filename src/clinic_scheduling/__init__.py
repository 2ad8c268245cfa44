"""
Clinic scheduling engine.

Appointment booking flow, availability resolution and the
conflict-checked reservation and work-session writes behind them.
"""

__version__ = "1.0.0"
