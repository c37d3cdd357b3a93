"""
Attempt and Answer Models
One attempt per (exam, student); answers are upserted per question
"""
from smarttryout.extensions import db
from smarttryout.models.base import RowMixin, new_id, now_utc


class Attempt(RowMixin, db.Model):
    """Exam attempt model"""
    __tablename__ = 'exam_attempts'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    exam_id = db.Column(db.String(36), db.ForeignKey('exams.id'), nullable=False, index=True)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False, index=True)
    start_time = db.Column(db.DateTime(timezone=True), default=now_utc, nullable=False)
    end_time = db.Column(db.DateTime(timezone=True))
    status = db.Column(db.String(20), default='in_progress', nullable=False)
    score = db.Column(db.Float, nullable=True)

    answers = db.relationship('Answer', backref='attempt', lazy=True,
                              cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Attempt {self.id} {self.status}>'


class Answer(RowMixin, db.Model):
    """Selected option for one question of one attempt"""
    __tablename__ = 'user_answers'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    attempt_id = db.Column(db.String(36), db.ForeignKey('exam_attempts.id'), nullable=False, index=True)
    question_id = db.Column(db.String(36), db.ForeignKey('questions.id'), nullable=False)
    selected_option_id = db.Column(db.String(36), db.ForeignKey('options.id'), nullable=True)

    __table_args__ = (
        db.UniqueConstraint(
            'attempt_id', 'question_id',
            name='unique_answer_per_question'
        ),
    )

    def __repr__(self):
        return f'<Answer Q{self.question_id} -> {self.selected_option_id}>'
