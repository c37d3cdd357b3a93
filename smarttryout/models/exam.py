"""
Exam Model
"""
from smarttryout.extensions import db
from smarttryout.models.base import RowMixin, new_id, now_utc


class Exam(RowMixin, db.Model):
    """Exam model"""
    __tablename__ = 'exams'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    title = db.Column(db.String(200), nullable=False)
    school_id = db.Column(db.String(36), db.ForeignKey('schools.id'), nullable=True)
    duration_minutes = db.Column(db.Integer, nullable=False, default=60)
    # Generated by the application, no unique constraint (same as hosted schema)
    access_code = db.Column(db.String(40), index=True)
    pdf_url = db.Column(db.Text)
    is_published = db.Column(db.Boolean, default=False, nullable=False)
    created_by = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=now_utc)

    # Relationships
    questions = db.relationship('Question', backref='exam', lazy=True,
                                cascade='all, delete-orphan')
    attempts = db.relationship('Attempt', backref='exam', lazy=True,
                               cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Exam {self.title}>'
