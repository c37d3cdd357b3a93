"""
User and Profile Models
Auth identities and the public profile row the application reads
"""
from smarttryout.extensions import db
from smarttryout.models.base import RowMixin, new_id, now_utc


class User(RowMixin, db.Model):
    """Auth identity (the hosted backend keeps these in its auth schema)"""
    __tablename__ = 'users'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=now_utc)

    profile = db.relationship('Profile', backref='user', uselist=False,
                              cascade='all, delete-orphan')

    def __repr__(self):
        return f'<User {self.email}>'


class Profile(RowMixin, db.Model):
    """Profile model; role is 'teacher', 'student' or NULL"""
    __tablename__ = 'profiles'

    id = db.Column(db.String(36), db.ForeignKey('users.id'), primary_key=True)
    full_name = db.Column(db.String(200))
    role = db.Column(db.String(20), nullable=True)

    def __repr__(self):
        return f'<Profile {self.full_name} ({self.role})>'
