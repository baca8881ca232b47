# app.py
from flask import Flask, request, jsonify
from flask_login import login_user, current_user, logout_user, login_required
import logging
import os
import re

from extensions import db, login_manager, derivative_cache

_VARIABLE_RE = re.compile(r'^[a-zA-Z]$')
# names the parser reads as constants
RESERVED_NAMES = ('e', 'E')


def _error(message, status=400):
    return jsonify({'ok': False, 'error': message}), status


def _last_error(steps):
    if steps and steps[-1].error:
        return steps[-1].content
    return None


def create_app(test_config=None):
    app = Flask(__name__)

    # --- Configuration ---
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'a_very_secret_key_change_this_for_production')
    app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///calculus.db')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['DERIVATIVE_CACHE_SIZE'] = int(os.environ.get('DERIVATIVE_CACHE_SIZE', 256))
    if test_config is not None:
        app.config.update(test_config)

    # Initialize extensions with the app
    db.init_app(app)
    login_manager.init_app(app)
    derivative_cache.init_app(app)

    from models import User, History

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return _error('Login required', 401)

    from derivatives import calculate_derivative
    from limits import calculate_limit
    from exercises import generate_derivative_exercise, generate_limit_exercise
    from expression_adapter import format_number, latex_preview

    def record(kind, expression, variable, parameter, result, latex, steps):
        if not current_user.is_authenticated:
            return
        entry = History(kind=kind, expression=expression, variable=variable, parameter=parameter,
                        result=result, latex=latex, steps=[s.to_dict() for s in steps],
                        user_id=current_user.id)
        db.session.add(entry)
        db.session.commit()

    def read_request():
        data = request.get_json(silent=True) or {}
        expression = data.get('expression', '')
        if not isinstance(expression, str) or not expression.strip():
            raise ValueError('Expression cannot be empty.')
        variable = data.get('variable') or 'x'
        if not isinstance(variable, str) or not _VARIABLE_RE.match(variable):
            raise ValueError(f"Invalid variable '{variable}'")
        if variable in RESERVED_NAMES:
            raise ValueError(f"'{variable}' is Euler's number and cannot be used as the variable")
        return data, expression.strip(), variable

    # --- Register Routes within the app context ---
    @app.route('/')
    def index():
        return jsonify({
            'ok': True,
            'service': 'calculus-steps',
            'endpoints': [
                'POST /api/derivative', 'POST /api/limit', 'GET /api/exercise/<derivative|limit>',
                'POST /api/latex', 'POST /api/register', 'POST /api/login', 'POST /api/logout',
                'GET /api/history', 'DELETE /api/history',
            ],
            'user': current_user.username if current_user.is_authenticated else None,
        })

    @app.route('/api/derivative', methods=['POST'])
    def api_derivative():
        try:
            data, expression, variable = read_request()
            order = data.get('order', 1)
            if isinstance(order, bool) or not isinstance(order, int) or order < 1:
                raise ValueError('The order must be a positive integer')
            implicit = bool(data.get('implicit', False))
            if implicit and order != 1:
                raise ValueError('Implicit differentiation only computes the first derivative')
            if implicit and variable == 'y':
                raise ValueError("'y' is the dependent variable in implicit mode; differentiate with respect to another name")
        except ValueError as e:
            return _error(str(e))

        result = calculate_derivative(expression, variable, order=order, implicit=implicit, cache=derivative_cache)
        app.logger.debug("Derivative of %r: %s", expression, result.result)
        err = _last_error(result.steps)
        if err:
            return jsonify({'ok': False, 'error': err, **result.to_dict()}), 400

        record('derivative', expression, variable, str(order), result.result, result.latex, result.steps)
        return jsonify({'ok': True, **result.to_dict()})

    @app.route('/api/limit', methods=['POST'])
    def api_limit():
        try:
            data, expression, variable = read_request()
        except ValueError as e:
            return _error(str(e))

        point = data.get('point', 0)
        result = calculate_limit(expression, variable, point)
        app.logger.debug("Limit of %r at %r: %s", expression, point, result.result)
        err = _last_error(result.steps)
        if err:
            return jsonify({'ok': False, 'error': err, **result.to_dict()}), 400

        shown = format_number(result.result) if result.result is not None else 'does not exist'
        record('limit', expression, variable, str(point), shown, None, result.steps)
        return jsonify({'ok': True, **result.to_dict()})

    @app.route('/api/exercise/<kind>')
    def api_exercise(kind):
        category = request.args.get('category') or None
        try:
            if kind == 'derivative':
                exercise = generate_derivative_exercise(category)
            elif kind == 'limit':
                exercise = generate_limit_exercise(category)
            else:
                return _error(f"Unknown exercise kind '{kind}'", 404)
        except ValueError as e:
            return _error(str(e))
        return jsonify({'ok': True, 'exercise': exercise})

    @app.route('/api/latex', methods=['POST'])
    def api_latex():
        data = request.get_json(silent=True) or {}
        latex, err = latex_preview(str(data.get('expression', '')))
        if err:
            return _error(err)
        return jsonify({'ok': True, 'latex': latex})

    @app.route('/api/register', methods=['POST'])
    def register():
        data = request.get_json(silent=True) or {}
        username = (data.get('username') or '').strip()
        password = data.get('password') or ''
        if not 2 <= len(username) <= 80:
            return _error('Username must be between 2 and 80 characters')
        if len(password) < 6:
            return _error('Password must be at least 6 characters')
        if User.query.filter_by(username=username).first():
            return _error('That username is taken. Please choose a different one.')
        user = User(username=username)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        app.logger.info("Registered user %s", username)
        return jsonify({'ok': True, 'user': user.to_dict()}), 201

    @app.route('/api/login', methods=['POST'])
    def login():
        data = request.get_json(silent=True) or {}
        user = User.query.filter_by(username=(data.get('username') or '').strip()).first()
        if user and user.check_password(data.get('password') or ''):
            login_user(user)
            return jsonify({'ok': True, 'user': user.to_dict()})
        return _error('Login Unsuccessful. Please check username and password.', 401)

    @app.route('/api/logout', methods=['POST'])
    def logout():
        logout_user()
        return jsonify({'ok': True})

    @app.route('/api/history', methods=['GET', 'DELETE'])
    @login_required
    def manage_history():
        if request.method == 'GET':
            user_history = History.query.filter_by(user_id=current_user.id).order_by(
                History.timestamp.desc(), History.id.desc()).all()
            return jsonify([h.to_dict() for h in user_history])
        History.query.filter_by(user_id=current_user.id).delete()
        db.session.commit()
        return jsonify({'ok': True, 'message': 'History cleared'})

    with app.app_context():
        db.create_all()

    return app


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    app = create_app()
    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port, debug=True)
