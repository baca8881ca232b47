# extensions.py
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager

from result_cache import ResultCache

# Create extension objects
db = SQLAlchemy()
login_manager = LoginManager()
derivative_cache = ResultCache()
