"""Business IDs for trades, payouts, markets and outcomes.

Prefixed so an ID alone tells which table it belongs to: trd_, pay_, mkt_, out_.
"""

import uuid


def generate_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:20]}"
