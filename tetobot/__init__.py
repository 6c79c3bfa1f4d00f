"""
tetobot — Engagement Economy Backend for a Discord Bot
=======================================================
Tracks message credits per user and intimacy per (user, guild), refills
and resets them on a daily schedule, and turns external votes and
purchases into credit bonuses.

Package layout::

    tetobot/
    ├── config.py          # YAML → typed Python config (economy knobs)
    ├── errors.py          # Economy failure taxonomy
    ├── tasks.py           # Daily reset loop (discord.ext.tasks)
    ├── worker.py          # Standalone scheduler entry point
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # users, guilds, user_guilds
    │   ├── repositories.py # Store protocols + SQLAlchemy implementations
    │   └── memory.py      # In-memory store (tests, dry runs)
    ├── services/
    │   ├── credit_ledger.py   # messageCredits bookkeeping
    │   ├── engagement.py      # Intimacy / daily counters
    │   ├── daily_reset.py     # Best-effort batch refill + reset
    │   ├── bonus_intake.py    # Vote / purchase webhook consumer
    │   ├── leaderboard.py     # Intimacy ranking
    │   ├── activity_service.py # Message flow used by the bot routes
    │   └── retry.py           # Exponential backoff helper
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Auth + dependency wiring
        ├── schemas.py     # Request bodies + response serializers
        ├── signatures.py  # Polar webhook signature check
        └── routes/        # Bot, webhook and admin endpoints
"""

__version__ = "0.1.0"
