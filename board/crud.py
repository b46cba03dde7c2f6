from .models import AsyncSessionLocal
from .models.posts import Post
from .realtime import ChangeFeed, feed
from .schemas.posts import ChangeEvent, EventType, PostOut
from sqlalchemy import select
from typing import List, Optional


def row_dict(post: Post) -> dict:
    return PostOut.model_validate(post).model_dump()


async def list_posts(ascending: bool = True) -> List[Post]:
    async with AsyncSessionLocal() as session:
        if ascending:
            order = (Post.created_at.asc(), Post.id.asc())
        else:
            order = (Post.created_at.desc(), Post.id.desc())
        res = await session.execute(select(Post).order_by(*order))
        return res.scalars().all()


async def get_post(post_id: int) -> Optional[Post]:
    async with AsyncSessionLocal() as session:
        q = await session.execute(select(Post).where(Post.id == post_id))
        return q.scalars().first()


async def create_post(content: str, username: str, parent_id: Optional[int] = None, change_feed: ChangeFeed = feed) -> Post:
    async with AsyncSessionLocal() as session:
        post = Post(content=content, username=username, parent_id=parent_id, likes=0)
        session.add(post)
        await session.commit()
        await session.refresh(post)
    await change_feed.publish(ChangeEvent(event=EventType.INSERT, new=row_dict(post)))
    return post


async def set_likes(post_id: int, likes: int, change_feed: ChangeFeed = feed) -> Optional[Post]:
    async with AsyncSessionLocal() as session:
        q = await session.execute(select(Post).where(Post.id == post_id))
        post = q.scalars().first()
        if not post:
            return None
        old = row_dict(post)
        post.likes = likes
        await session.commit()
        await session.refresh(post)
    await change_feed.publish(ChangeEvent(event=EventType.UPDATE, new=row_dict(post), old=old))
    return post


async def delete_post(post_id: int, change_feed: ChangeFeed = feed) -> bool:
    # replies are left in place
    async with AsyncSessionLocal() as session:
        q = await session.execute(select(Post).where(Post.id == post_id))
        post = q.scalars().first()
        if not post:
            return False
        old = row_dict(post)
        await session.delete(post)
        await session.commit()
    await change_feed.publish(ChangeEvent(event=EventType.DELETE, old=old))
    return True
