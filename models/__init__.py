from .bookmark import Collection, Group, Item  # noqa: F401
from .share_link import ShareLink  # noqa: F401
