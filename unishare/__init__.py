"""
UniShare Gamification Service

Points, levels, badges, achievements, leaderboards and engagement analytics
for the UniShare study-resource sharing platform.

The platform features:
1. A classifier that scores every user action
2. Progress derived from the append-only action ledger
3. One-way achievements with bonus points and notifications
4. Leaderboards by department, course and timeframe
5. Platform-wide engagement analytics
"""

__version__ = "0.1.0"
