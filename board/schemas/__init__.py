from .posts import PostIn, PostOut, PostIdIn, LikeIn, SubmitOut, EventType, ChangeEvent  # noqa: F401
