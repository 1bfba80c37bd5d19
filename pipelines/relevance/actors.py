"""
Actor matching.

Responsibilities:
- Structural equality between actor references.
- Canonical keys for set membership.

Invariant:
Type and name are compared after trimming; names are case-sensitive.
"""

from typing import Iterable, Optional, Set

from casekeeper.models import ActorRef


def actor_eq(a: Optional[ActorRef], b: Optional[ActorRef]) -> bool:
    if a is None or b is None:
        return False
    return (a.type or "").strip() == (b.type or "").strip() and (a.name or "").strip() == (b.name or "").strip()


def actor_key(actor: ActorRef) -> str:
    return f"{(actor.type or '').strip()}::{(actor.name or '').strip()}"


def actor_key_set(actors: Iterable[ActorRef]) -> Set[str]:
    return {actor_key(a) for a in actors if (a.name or "").strip()}


def add_actor(actors: Iterable[ActorRef], actor: ActorRef) -> list:
    """Append `actor` unless an equal one is already listed. Blank names are ignored."""
    out = list(actors)
    candidate = ActorRef(type=actor.type, name=(actor.name or "").strip())
    if not candidate.name:
        return out
    if not any(actor_eq(x, candidate) for x in out):
        out.append(candidate)
    return out
