from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ViewerContext:
    """Who is looking at the event cards. Passed explicitly, never read from globals."""
    user_id: int
    token: str
    display_name: Optional[str] = None

    @property
    def auth_header(self) -> dict:
        return {'Authorization': f'Bearer {self.token}'}
