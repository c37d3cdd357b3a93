"""
School Model
"""
from smarttryout.extensions import db
from smarttryout.models.base import RowMixin, new_id


class School(RowMixin, db.Model):
    """School model"""
    __tablename__ = 'schools'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(200), nullable=False)

    def __repr__(self):
        return f'<School {self.name}>'
