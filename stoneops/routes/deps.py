from typing import Optional

from fastapi import Header


def get_actor_id(x_actor_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Who is acting, as reported by the calling frontend; recorded in the audit trail."""
    return x_actor_id.strip() if x_actor_id and x_actor_id.strip() else None
