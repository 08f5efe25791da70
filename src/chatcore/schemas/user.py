from .base import ReadModel


class UserBrief(ReadModel):
    """Compact user record embedded wherever a user is shown next to something else."""
    id: str
    display_name: str
    avatar_url: str | None = None
    is_online: bool = False
