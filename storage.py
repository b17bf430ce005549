from datetime import timedelta
from typing import Optional

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from models import Post, utcnow

# Largest value a signed 64-bit INTEGER column holds.
MAX_ID : int = 2**63 - 1


class NotFound(Exception):
    '''No post row matches the requested id.'''

    def __init__(self, post_id: int) -> None:
        super().__init__(f'post {post_id} does not exist')
        self.post_id = post_id


class StorageError(Exception):
    '''The database rejected or failed a read or write.'''


class PostStore:
    '''Row operations on the post table.

    One instance is built per application and handed to the request
    handlers. Sessions come from the Flask-SQLAlchemy handle, so each
    request works in its own scoped session over the shared engine pool.
    '''

    def __init__(self, database: SQLAlchemy) -> None:
        self.db = database

    def init_schema(self) -> None:
        self.db.create_all()

    def insert(self, title: str, content: str) -> Post:
        now = utcnow()
        post : Post = Post(title=title, content=content, created_at=now, updated_at=now)
        self.db.session.add(post)
        self._commit()
        return post

    def get_by_id(self, post_id: int) -> Post:
        _check_range(post_id)
        try:
            post = self.db.session.get(Post, post_id)
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc
        if post is None:
            raise NotFound(post_id)
        return post

    def update_by_id(self, post_id: int, title: str, content: str) -> Post:
        post : Post = self.get_by_id(post_id)
        now = utcnow()
        # updated_at must move forward even if the clock has not.
        if post.updated_at is not None and now <= post.updated_at:
            now = post.updated_at + timedelta(microseconds=1)
        post.title = title
        post.content = content
        post.updated_at = now
        self._commit(post_id)
        return post

    def delete_by_id(self, post_id: int) -> None:
        _check_range(post_id)
        try:
            removed : int = self.db.session.query(Post).filter_by(id=post_id).delete()
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            raise StorageError(str(exc)) from exc
        self._commit()
        if removed == 0:
            raise NotFound(post_id)

    def count(self) -> int:
        return self.db.session.query(Post).count()

    def _commit(self, post_id: Optional[int] = None) -> None:
        try:
            self.db.session.commit()
        except StaleDataError as exc:
            # The row went away between the read and the write.
            self.db.session.rollback()
            if post_id is None:
                raise StorageError(str(exc)) from exc
            raise NotFound(post_id) from exc
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            raise StorageError(str(exc)) from exc


def _check_range(post_id: int) -> None:
    if not 0 < post_id <= MAX_ID:
        raise NotFound(post_id)
