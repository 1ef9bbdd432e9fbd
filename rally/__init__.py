"""
Rally — Party Scheduling for Discord
=====================================
Members create a party from a template, others sign up to role-limited
lanes with buttons, and the host (or a manager) can remove players or
close the party.  All state lives in a remote SQLite-compatible store;
the bot keeps only a small display cache in memory.

Package layout::

    rally/
    ├── config.py          # YAML → typed config, JSON → template catalog
    ├── constants.py       # Status colours, emoji, lead time, id alphabet
    ├── database/
    │   ├── d1.py          # Cloudflare D1 HTTP gateway (httpx)
    │   ├── engine.py      # Gateway protocol, SQLAlchemy gateway, run_db
    │   ├── models.py      # ORM models (schema source of truth)
    │   └── seed.py        # Class catalog seeder
    ├── engine/
    │   ├── cache.py       # DisplayCache (event id → display fields)
    │   ├── components.py  # Component custom_id parse/format
    │   ├── outcomes.py    # Rejection taxonomy + SignupResult
    │   ├── perms.py       # is_manager predicate
    │   └── signups.py     # Capacity-guarded join/switch/leave/remove
    ├── services/
    │   ├── character_service.py  # Roster + gear score lookups
    │   ├── embeds.py      # Listing embed + views
    │   ├── lifecycle.py   # Party create/close orchestration
    │   ├── names.py       # Display name resolution cache
    │   ├── party_log.py   # Append-only audit trail
    │   └── party_service.py  # Event row reads/writes
    └── bot/
        ├── core.py        # Bot subclass, cog loader
        └── cogs/
            ├── party.py       # /party create, /party close
            ├── lanes.py       # Component interaction router
            ├── characters.py  # /character
            └── callout.py     # /callout
"""

__version__ = "0.1.0"
