"""Race domain services: timer, scoring, leaderboards and sync.

The timer, scoring, leaderboard and sync modules are pure logic over values
already held in memory. ``rounds`` and ``scheduler`` apply that logic to the
database models and are what HTTP routes and socket handlers call into.
"""
