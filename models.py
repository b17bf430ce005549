from flask_sqlalchemy import SQLAlchemy
from datetime import datetime, timezone
from typing import Any

db = SQLAlchemy()


def utcnow() -> datetime:
    '''Naive UTC timestamp, the form SQLite hands back.'''
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Post(db.Model):
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    title = db.Column(db.String(255), nullable=False)
    content = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'content': self.content,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
