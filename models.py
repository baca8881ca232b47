# models.py
from flask_login import UserMixin
from extensions import db
from werkzeug.security import generate_password_hash, check_password_hash


class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)

    histories = db.relationship('History', backref='user', lazy=True, cascade="all, delete-orphan")

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {'id': self.id, 'username': self.username}

    def __repr__(self):
        return f'<User {self.username}>'


class History(db.Model):
    """A derivative or limit computed by a logged-in user."""
    __tablename__ = 'histories'

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(20), nullable=False)
    expression = db.Column(db.String(500), nullable=False)
    variable = db.Column(db.String(20), nullable=False, default='x')
    # derivative order or limit point, as entered
    parameter = db.Column(db.String(50), nullable=True)
    result = db.Column(db.String(500), nullable=True)
    latex = db.Column(db.Text, nullable=True)
    steps = db.Column(db.JSON, nullable=False, default=list)
    timestamp = db.Column(db.DateTime, server_default=db.func.now())

    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'kind': self.kind,
            'expression': self.expression,
            'variable': self.variable,
            'parameter': self.parameter,
            'result': self.result,
            'latex': self.latex,
            'steps': self.steps,
            'timestamp': self.timestamp.strftime('%Y-%m-%d %H:%M:%S') if self.timestamp else None,
        }

    def __repr__(self):
        return f'<History {self.kind} {self.expression}>'
