from flask import Blueprint

bp = Blueprint("core", __name__)
api_bp = Blueprint("core_api", __name__)
# импортируем маршруты, чтобы они зарегистрировались
from . import routes  # noqa: E402,F401
