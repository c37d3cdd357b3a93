"""
Question and Option Models
"""
from smarttryout.extensions import db
from smarttryout.models.base import RowMixin, new_id, now_utc


class Question(RowMixin, db.Model):
    """Question model"""
    __tablename__ = 'questions'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    exam_id = db.Column(db.String(36), db.ForeignKey('exams.id'), nullable=False, index=True)
    question_text = db.Column(db.Text, nullable=False)
    point_value = db.Column(db.Integer, default=1, nullable=False)
    order_index = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=now_utc)

    options = db.relationship('Option', backref='question', lazy=True,
                              cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Question {self.id}: {self.question_text[:50]}...>'


class Option(RowMixin, db.Model):
    """Answer option; one per question is expected to be correct"""
    __tablename__ = 'options'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    question_id = db.Column(db.String(36), db.ForeignKey('questions.id'), nullable=False, index=True)
    option_text = db.Column(db.Text, nullable=False, default='')
    is_correct = db.Column(db.Boolean, default=False, nullable=False)

    def __repr__(self):
        return f'<Option {self.option_text}{" *" if self.is_correct else ""}>'
